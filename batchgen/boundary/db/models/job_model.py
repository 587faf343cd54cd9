"""
Generation job ORM model.

Tracks one bulk content-generation job through the two-phase batch
lifecycle: external batch references, progress counters, and the driver
lease used for at-most-one-driver advancement.

Dependencies: sqlalchemy, batchgen.boundary.db.base, batchgen.core.state_machine
System role: Durable job store, single source of truth for job state
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from batchgen.boundary.db.base import Base, TimestampMixin, UUIDMixin
from batchgen.core.state_machine import JobState


class GenerationJobModel(Base, UUIDMixin, TimestampMixin):
    """
    Generation job ORM model.

    Attributes:
        id: UUID primary key (auto-generated)
        brand_id, model_id, generation_id: Opaque catalog references
        content_type: "fault" or "manual"
        count: Number of items requested (1..50000)
        language: Content language code
        state: Lifecycle state (see JobState)
        current_stage: Human-readable sub-status, informational only
        progress_current: Rows processed so far (success + failed)
        progress_total: Fixed at count
        success_count, failed_count: Partition of progress_current
        phase1_ref, phase2_ref: External batch ids, null until submitted
        phase1_status, phase2_status: Last known external batch status
        phase1_request_counts, phase2_request_counts: {completed, failed, total}
        phase1_submitted_at, phase2_submitted_at: Phase timeout clocks
        completed_at: Set when the job reaches a terminal state
        error_message: Reason for state=failed
        errors: First per-row error strings, for operator triage
        lease_owner, lease_expires_at: Driver lease

    Workflow:
        1. Fan-out or the stream endpoint inserts the row with state=pending
        2. A driver claims it (pending -> processing) and takes the lease
        3. Each transition is a conditional update on (state, lease_owner)
        4. The poller reads rows and refreshes phase*_status only
    """

    __tablename__ = "generation_jobs"
    __table_args__ = (
        Index("ix_generation_jobs_state_created_at", "state", "created_at"),
    )

    brand_id: Mapped[str] = mapped_column(String(64), nullable=False)
    model_id: Mapped[str] = mapped_column(String(64), nullable=False)
    generation_id: Mapped[str] = mapped_column(String(64), nullable=False)

    content_type: Mapped[str] = mapped_column(String(16), nullable=False)
    count: Mapped[int] = mapped_column(Integer, nullable=False)
    language: Mapped[str] = mapped_column(String(8), nullable=False, default="en")

    state: Mapped[JobState] = mapped_column(
        Enum(
            JobState,
            native_enum=False,
            length=32,
            values_callable=lambda states: [state.value for state in states],
        ),
        nullable=False,
        default=JobState.PENDING,
    )
    current_stage: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="Queued",
        doc="Human-readable sub-status",
    )

    progress_current: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    progress_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    phase1_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)
    phase2_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)
    phase1_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    phase2_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    phase1_request_counts: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    phase2_request_counts: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    phase1_submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    phase2_submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    errors: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    lease_owner: Mapped[str | None] = mapped_column(String(64), nullable=True)
    lease_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"<GenerationJobModel id={self.id} state={self.state} "
            f"progress={self.progress_current}/{self.progress_total}>"
        )
