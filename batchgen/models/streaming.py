"""
Progress stream event schemas.

One NDJSON line per event; each line is an object with a single key naming
the event type.

Dependencies: pydantic
System role: Streaming protocol schemas for the synchronous generation path
"""

import json
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel

from batchgen.models.common import CamelModel


class ProgressEventType(str, Enum):
    """Server-to-client event types."""

    PROGRESS = "progress"
    RESULT = "result"
    BATCH_INFO = "batchInfo"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_EVENT_TYPES = frozenset({ProgressEventType.COMPLETE, ProgressEventType.ERROR})


class ProgressPayload(CamelModel):
    current: int
    total: int
    stage: str


class ResultPayload(CamelModel):
    """
    One finished item.

    Attributes:
        key: Correlation key of the row (makes folding idempotent)
        success: Whether the row reached the content store
        error: Failure reason
    """

    key: str
    success: bool
    error: str | None = None


class BatchInfoPayload(CamelModel):
    phase1_ref: str | None = None
    phase2_ref: str | None = None
    phase1_status: str | None = None
    phase2_status: str | None = None
    request_counts: dict[str, Any] | None = None


class CompletionSummary(CamelModel):
    """
    Authoritative final tally of a job.

    Attributes:
        job_id: Job UUID
        state: Final job state
        total: Items requested
        success_count: Rows inserted
        failed_count: Rows that failed
        estimated_cost, actual_cost, savings: Cost breakdown in USD
    """

    job_id: UUID
    state: str
    total: int
    success_count: int
    failed_count: int
    estimated_cost: float
    actual_cost: float | None = None
    savings: float | None = None


class ErrorPayload(CamelModel):
    message: str
    job_id: UUID | None = None


PAYLOAD_TYPES: dict[ProgressEventType, type[CamelModel]] = {
    ProgressEventType.PROGRESS: ProgressPayload,
    ProgressEventType.RESULT: ResultPayload,
    ProgressEventType.BATCH_INFO: BatchInfoPayload,
    ProgressEventType.COMPLETE: CompletionSummary,
    ProgressEventType.ERROR: ErrorPayload,
}


class ProgressEvent(BaseModel):
    """
    Tagged stream event.

    Attributes:
        type: Event type
        payload: Event-specific payload
    """

    type: ProgressEventType
    payload: CamelModel

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENT_TYPES

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire shape {type: payload}."""
        return {self.type.value: self.payload.model_dump(mode="json", by_alias=True)}

    def to_line(self) -> str:
        """Serialize as one NDJSON line."""
        return json.dumps(self.to_dict(), ensure_ascii=False) + "\n"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProgressEvent":
        """
        Parse a wire object back into an event.

        Raises:
            ValueError: Not exactly one known event key
        """
        if len(data) != 1:
            raise ValueError(f"expected one event key, got {sorted(data)}")
        tag, body = next(iter(data.items()))
        event_type = ProgressEventType(tag)
        payload = PAYLOAD_TYPES[event_type].model_validate(body)
        return cls(type=event_type, payload=payload)
