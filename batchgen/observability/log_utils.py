"""
Structured logging helpers.

Values passed through `extra=` must never break a log call, and orchestrator
exceptions should land in logs with their details flattened next to the
message.

Dependencies: logging (stdlib), batchgen.core.exceptions
System role: Logging helper functions
"""

import enum
import logging
from typing import Any
from uuid import UUID

from batchgen.core.exceptions import BatchGenerationException


def safe_log_value(value: Any, max_length: int = 500) -> str:
    """
    Render a value for a log record without raising.

    Collections are summarized by size; long strings are truncated.

    Args:
        value: Value to render
        max_length: Truncation limit

    Returns:
        str: Log-safe representation
    """
    try:
        if value is None:
            return "None"
        if isinstance(value, enum.Enum):
            text = str(value.value)
        elif isinstance(value, (str, UUID)):
            text = str(value)
        elif isinstance(value, (list, tuple, set, frozenset)):
            text = f"{type(value).__name__}({len(value)} items)"
        elif isinstance(value, dict):
            text = f"dict({len(value)} keys)"
        else:
            text = str(value)
    except Exception as e:
        return f"<unrenderable {type(e).__name__}>"

    if len(text) > max_length:
        return f"{text[:max_length]}... ({len(text)} chars)"
    return text


def exception_context(exc: BaseException) -> dict[str, str]:
    """Error type and message, plus details for orchestrator exceptions."""
    context = {"error_type": type(exc).__name__}
    if isinstance(exc, BatchGenerationException):
        context["error_msg"] = safe_log_value(exc.message)
        for key, value in exc.details.items():
            context.setdefault(f"detail_{key}", safe_log_value(value))
    else:
        context["error_msg"] = safe_log_value(str(exc))
    return context


def log_exception_with_context(
    logger: logging.Logger,
    message: str,
    exc: BaseException,
    **context,
) -> None:
    """
    Log an exception at error level with its traceback and structured context.

    Args:
        logger: Logger instance
        message: Log message
        exc: Exception instance
        **context: Additional context (job_id, owner, ...)
    """
    extra = {key: safe_log_value(value) for key, value in context.items()}
    extra.update(exception_context(exc))
    logger.error(message, exc_info=exc, extra=extra)
