"""Pydantic request/response and stream event schemas."""

from batchgen.models.common import CamelModel, ErrorResponse
from batchgen.models.job import (
    ActiveJobsResponse,
    BulkSubmitRequest,
    BulkSubmitResponse,
    CostBreakdownResponse,
    EstimateRequest,
    EstimateResponse,
    JobProgress,
    JobSpecRequest,
    JobStatusResponse,
    ProcessPendingResponse,
    SelectionRequest,
)
from batchgen.models.streaming import (
    BatchInfoPayload,
    CompletionSummary,
    ErrorPayload,
    ProgressEvent,
    ProgressEventType,
    ProgressPayload,
    ResultPayload,
)

__all__ = [
    "CamelModel",
    "ErrorResponse",
    "ActiveJobsResponse",
    "BulkSubmitRequest",
    "BulkSubmitResponse",
    "CostBreakdownResponse",
    "EstimateRequest",
    "EstimateResponse",
    "JobProgress",
    "JobSpecRequest",
    "JobStatusResponse",
    "ProcessPendingResponse",
    "SelectionRequest",
    "BatchInfoPayload",
    "CompletionSummary",
    "ErrorPayload",
    "ProgressEvent",
    "ProgressEventType",
    "ProgressPayload",
    "ResultPayload",
]
