"""
Batch generation job orchestrator.

Turns catalog selections into two-phase bulk-inference jobs, drives them
through their lifecycle, and reports progress to clients.
"""

__version__ = "0.1.0"
