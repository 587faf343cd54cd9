"""
Observability module.

Logging configuration, log context (correlation and job ids), structured
logging helpers and request middleware.
"""

from batchgen.observability.correlation import (
    bound_job,
    get_correlation_id,
    get_job_id,
    set_correlation_id,
)
from batchgen.observability.logger import LogContextFilter, configure_logging

__all__ = [
    "LogContextFilter",
    "bound_job",
    "configure_logging",
    "get_correlation_id",
    "get_job_id",
    "set_correlation_id",
]
