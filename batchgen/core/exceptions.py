"""
Exception hierarchy for the batch generation orchestrator.

Provides layered exception structure for domain-specific errors.
All exceptions include context for observability and debugging.

Dependencies: None (pure domain layer)
System role: Centralized exception handling across the application
"""

from typing import Any


class BatchGenerationException(Exception):
    """Base exception for all orchestrator errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """
        Initialize base exception with message and optional context.

        Args:
            message: Human-readable error message
            details: Optional dictionary of additional context for debugging
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation including details."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ValidationError(BatchGenerationException):
    """Raised when input shape or range is invalid. Never retried."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize validation error.

        Args:
            message: Error message
            field: Field name that failed validation
            details: Additional context
        """
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details)


class JobNotFoundError(BatchGenerationException):
    """Raised when a job cannot be found."""

    def __init__(self, job_id: str, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details["job_id"] = job_id
        super().__init__(f"Job not found: {job_id}", details)


class StaleJobStateError(BatchGenerationException):
    """Raised when a conditional update loses against another driver."""

    def __init__(
        self,
        job_id: str,
        expected_state: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize stale state conflict.

        Args:
            job_id: Job whose row did not match
            expected_state: State the driver read before attempting the update
            details: Additional context
        """
        details = details or {}
        details.update({"job_id": job_id, "expected_state": expected_state})
        super().__init__(f"Job {job_id} is no longer in state {expected_state}", details)


class GatewayError(BatchGenerationException):
    """Base exception for bulk-inference gateway failures."""

    def __init__(
        self,
        message: str,
        phase: int | None = None,
        batch_ref: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if phase is not None:
            details["phase"] = phase
        if batch_ref:
            details["batch_ref"] = batch_ref
        super().__init__(message, details)


class GatewaySubmissionError(GatewayError):
    """Raised when the gateway refuses or fails a phase batch."""

    pass


class GatewayTimeoutError(GatewayError):
    """Raised when a phase batch does not reach a terminal status in time."""

    pass


class MergeInconsistencyError(BatchGenerationException):
    """Raised for a phase-1/phase-2 correlation mismatch on one row."""

    def __init__(
        self,
        message: str,
        correlation_key: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        details["correlation_key"] = correlation_key
        self.correlation_key = correlation_key
        super().__init__(message, details)


class StorageUnavailableError(BatchGenerationException):
    """Raised when the job or content store cannot be reached."""

    def __init__(
        self,
        message: str,
        not_provisioned: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize storage error.

        Args:
            message: Error message
            not_provisioned: True when the table does not exist yet
            details: Additional context
        """
        self.not_provisioned = not_provisioned
        super().__init__(message, details)
