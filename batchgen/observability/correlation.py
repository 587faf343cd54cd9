"""
Log context variables.

A correlation id ties log lines to one HTTP request; a job id ties them to
one generation job across driver steps, whichever entry point (stream,
worker, operator trigger) runs the driver.

Dependencies: contextvars
System role: Request and job tracing across async boundaries
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator
from uuid import UUID

correlation_id_ctx: ContextVar[str] = ContextVar("correlation_id", default="")
job_id_ctx: ContextVar[str] = ContextVar("job_id", default="")


def set_correlation_id(correlation_id: str | None = None) -> str:
    """
    Bind a correlation id, generating one when the caller sent none.

    Returns:
        str: The bound id
    """
    value = correlation_id or uuid.uuid4().hex
    correlation_id_ctx.set(value)
    return value


def get_correlation_id() -> str:
    return correlation_id_ctx.get()


def clear_correlation_id() -> None:
    correlation_id_ctx.set("")


def get_job_id() -> str:
    return job_id_ctx.get()


@contextmanager
def bound_job(job_id: UUID | str) -> Iterator[None]:
    """Attach job_id to every log record emitted inside the block."""
    token = job_id_ctx.set(str(job_id))
    try:
        yield
    finally:
        job_id_ctx.reset(token)
