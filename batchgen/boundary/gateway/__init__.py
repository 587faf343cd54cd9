"""Bulk-inference gateway boundary."""

from batchgen.boundary.gateway.base import (
    ACTIVE_BATCH_STATUSES,
    FAILURE_STATUSES,
    SUCCESS_STATUSES,
    BatchRequest,
    BatchResultRow,
    BatchStatus,
    BulkInferenceGateway,
    RequestCounts,
)
from batchgen.boundary.gateway.openai_batch_gateway import OpenAIBatchGateway

__all__ = [
    "ACTIVE_BATCH_STATUSES",
    "FAILURE_STATUSES",
    "SUCCESS_STATUSES",
    "BatchRequest",
    "BatchResultRow",
    "BatchStatus",
    "BulkInferenceGateway",
    "RequestCounts",
    "OpenAIBatchGateway",
]
