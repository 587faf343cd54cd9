"""
Logger configuration.

Stdout handler with ISO-style timestamps. Every record carries the request
correlation id and the job id bound by the pipeline driver, so one job can
be followed across the API, the stream and the worker.

Dependencies: logging (stdlib)
System role: Centralized logging configuration
"""

import logging
import sys

from batchgen.observability.correlation import get_correlation_id, get_job_id

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s|%(job_id)s] %(message)s"

QUIET_LOGGERS = ("httpx", "openai", "sqlalchemy.engine", "celery.beat")


class LogContextFilter(logging.Filter):
    """Fill correlation_id and job_id on every record; explicit extra wins."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = get_correlation_id() or "-"
        if not hasattr(record, "job_id"):
            record.job_id = get_job_id() or "-"
        return True


def configure_logging(level: str = "INFO") -> None:
    """
    Replace root handlers with one stdout handler.

    Args:
        level: Root log level name
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(LogContextFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S"))

    root_logger.setLevel(level.upper())
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
