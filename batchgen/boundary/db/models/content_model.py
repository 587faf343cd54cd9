"""
Generated content ORM model.

Stores the finished rows produced by merging phase-1 content with phase-2
metadata. The (job_id, correlation_key) pair is unique, so re-running the
insert step for a job only adds rows that are missing.

Dependencies: sqlalchemy, batchgen.boundary.db.base
System role: Content store written at phase2_complete -> completed
"""

import uuid

from sqlalchemy import JSON, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from batchgen.boundary.db.base import Base, TimestampMixin, UUIDMixin


class GeneratedContentModel(Base, UUIDMixin, TimestampMixin):
    """
    One generated fault or manual article.

    Attributes:
        job_id: Owning generation job
        correlation_key: item-<n> key shared by both phases
        generation_id: Catalog generation the article is about
        content_type: "fault" or "manual"
        language: Content language code
        slug: URL slug, unique per job
        title: Question text, truncated to 100 characters
        description: Meta description or first paragraph
        body: Phase-1 generated markdown
        content_metadata: Phase-2 JSON object (stored in column "metadata")
        status: Publication status, "live" on insert
    """

    __tablename__ = "generated_content"
    __table_args__ = (
        UniqueConstraint("job_id", "correlation_key", name="uq_generated_content_job_key"),
    )

    job_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("generation_jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    correlation_key: Mapped[str] = mapped_column(String(32), nullable=False)
    generation_id: Mapped[str] = mapped_column(String(64), nullable=False)
    content_type: Mapped[str] = mapped_column(String(16), nullable=False)
    language: Mapped[str] = mapped_column(String(8), nullable=False)

    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    body: Mapped[str] = mapped_column(Text, nullable=False)
    content_metadata: Mapped[dict] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="live")
