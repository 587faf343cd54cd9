"""Boundary layer: persistence and the external bulk-inference gateway."""
