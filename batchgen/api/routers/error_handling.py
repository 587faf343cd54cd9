"""
Router error handling.

Decorator mapping orchestrator exceptions to HTTP errors for every job and
generation endpoint, with structured log context.
"""

import functools
import logging
from typing import Any, Callable, TypeVar

from fastapi import HTTPException, status

from batchgen.core.exceptions import (
    BatchGenerationException,
    GatewaySubmissionError,
    JobNotFoundError,
    StorageUnavailableError,
    ValidationError,
)
from batchgen.models.common import ErrorResponse

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def error_body(error: BatchGenerationException) -> dict:
    return ErrorResponse(
        error=type(error).__name__,
        message=error.message,
        details=error.details,
    ).model_dump()


def handle_job_errors(func: F) -> F:
    """
    Decorator to transform orchestrator errors into HTTPExceptions.

    - ValidationError -> 422
    - JobNotFoundError -> 404
    - GatewaySubmissionError -> 400
    - StorageUnavailableError -> 503
    - any other orchestrator error -> 500
    """

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await func(*args, **kwargs)

        except ValidationError as e:
            logger.warning("Invalid job request", extra={"error": str(e)})
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=error_body(e)
            )

        except JobNotFoundError as e:
            logger.warning("Job not found", extra={"job_id": e.details.get("job_id")})
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error_body(e))

        except GatewaySubmissionError as e:
            logger.warning("Gateway rejected submission", extra={"error": str(e)})
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error_body(e))

        except StorageUnavailableError as e:
            logger.error("Job store unavailable", extra={"error": str(e)})
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=error_body(e)
            )

        except BatchGenerationException as e:
            logger.exception("Unexpected orchestrator failure", extra={"error": str(e)})
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=error_body(e)
            )

    return wrapper  # type: ignore
