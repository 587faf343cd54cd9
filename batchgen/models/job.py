"""
Job domain models and schemas.

Request/response schemas for generation job submission, status, and
cost estimation. Wire names are camelCase; Python attributes are snake_case.

Dependencies: pydantic
System role: Job API contracts
"""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import Field, model_validator

from batchgen.models.common import CamelModel

ContentTypeLiteral = Literal["fault", "manual"]


class JobSpecRequest(CamelModel):
    """One target plus shared generation parameters."""

    brand_id: str = Field(min_length=1)
    model_id: str = Field(min_length=1)
    generation_id: str = Field(min_length=1)
    content_type: ContentTypeLiteral
    count: int = Field(description="Items to generate (1..50000)")
    language: str = "en"


class SelectionRequest(CamelModel):
    """Transitive selection: explicit generations plus everything under chosen models/brands."""

    brand_ids: list[str] = Field(default_factory=list)
    model_ids: list[str] = Field(default_factory=list)
    generation_ids: list[str] = Field(default_factory=list)
    content_type: ContentTypeLiteral
    count: int
    language: str = "en"


class BulkSubmitRequest(CamelModel):
    """Either an explicit list of specs or a selection, not both."""

    jobs: list[JobSpecRequest] | None = None
    selection: SelectionRequest | None = None

    @model_validator(mode="after")
    def _exactly_one_source(self) -> "BulkSubmitRequest":
        if (self.jobs is None) == (self.selection is None):
            raise ValueError("Provide exactly one of 'jobs' or 'selection'")
        return self


class BulkSubmitResponse(CamelModel):
    """
    Fan-out result.

    Attributes:
        job_ids: Ids of the rows that were persisted
        shortfall: Specs that could not be persisted
    """

    job_ids: list[uuid.UUID]
    shortfall: int = 0


class JobProgress(CamelModel):
    """Job progress details."""

    current: int = Field(description="Rows processed (success + failed)")
    total: int = Field(description="Rows requested")
    percentage: int = Field(description="Progress percentage (0-100)")


class CostBreakdownResponse(CamelModel):
    estimated: float
    actual: float | None = None
    savings: float | None = None


class JobStatusResponse(CamelModel):
    """Normalized view of one job, as published by the reconciliation poller."""

    id: uuid.UUID
    brand_id: str
    model_id: str
    generation_id: str
    brand_name: str | None = None
    model_name: str | None = None
    generation_name: str | None = None
    content_type: str
    count: int
    language: str
    state: str
    current_stage: str
    progress: JobProgress
    success_count: int
    failed_count: int
    phase1_ref: str | None = None
    phase2_ref: str | None = None
    phase1_status: str | None = None
    phase2_status: str | None = None
    phase1_request_counts: dict | None = None
    phase2_request_counts: dict | None = None
    error_message: str | None = None
    errors: list[str] = Field(default_factory=list)
    cost: CostBreakdownResponse
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None


class ActiveJobsResponse(CamelModel):
    jobs: list[JobStatusResponse]
    refreshed_at: datetime | None = None


class ProcessPendingResponse(CamelModel):
    """Operator force-advance result."""

    processed: int
    job_ids: list[uuid.UUID]
    states: dict[str, str] = Field(default_factory=dict)


class EstimateRequest(CamelModel):
    count: int = Field(ge=1)
    jobs: int = Field(default=1, ge=1, description="Number of jobs sharing the count")


class EstimateResponse(CamelModel):
    """Cost estimate before submission."""

    count: int
    jobs: int
    unit_price: float
    batch_discount: float
    list_price: float
    estimated_cost: float
    savings_vs_list: float
