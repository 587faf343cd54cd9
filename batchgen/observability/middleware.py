"""
Request middleware.

CorrelationMiddleware binds a correlation id per request and echoes it;
RequestLoggingMiddleware writes one line per request with status, timing
and, for the streaming endpoint, the job id the response announces.

Dependencies: fastapi, starlette, batchgen.observability
System role: Request/response observability
"""

import logging
import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from batchgen.observability.correlation import clear_correlation_id, set_correlation_id
from batchgen.observability.log_utils import log_exception_with_context

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
JOB_ID_HEADER = "X-Job-Id"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request once it has a response (or failed)."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        method = request.method
        path = request.url.path

        try:
            response: Response = await call_next(request)
        except Exception as e:
            log_exception_with_context(
                logger,
                f"{method} {path} - unhandled error",
                e,
                method=method,
                path=path,
                elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            raise

        # Streaming bodies are still being produced; this times the headers only
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            f"{method} {path} - {response.status_code}",
            extra={
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "elapsed_ms": round((time.perf_counter() - started) * 1000, 2),
                "client_host": request.client.host if request.client else None,
                "announced_job_id": response.headers.get(JOB_ID_HEADER),
            },
        )
        return response


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Bind a correlation id for the request and echo it in the response."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = set_correlation_id(request.headers.get(CORRELATION_HEADER))
        try:
            response: Response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers[CORRELATION_HEADER] = correlation_id
        return response
