"""
Generated content CRUD operations.

Inserts merged rows in chunks. Each chunk runs inside a savepoint; when a
chunk fails, its rows are retried one by one so a single bad row only
fails itself. Keys already present for the job are skipped, which makes
the insert step safe to resume.

Dependencies: sqlalchemy, batchgen.boundary.db.models.content_model
System role: Content store collaborator for the completed transition
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from batchgen.boundary.db.CRUD.base_crud import BaseCRUD
from batchgen.boundary.db.models.content_model import GeneratedContentModel

logger = logging.getLogger(__name__)


@dataclass
class InsertOutcome:
    """
    Result of inserting merged rows.

    Attributes:
        inserted: Correlation keys written by this call
        skipped: Keys that already existed for the job
        failed: Key -> error message for rows that could not be written
    """

    inserted: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> list[str]:
        return self.inserted + self.skipped


class ContentCRUD(BaseCRUD[GeneratedContentModel]):
    """CRUD operations for GeneratedContentModel."""

    def __init__(self) -> None:
        super().__init__(GeneratedContentModel)

    async def existing_keys(self, session: AsyncSession, job_id: UUID) -> set[str]:
        """Correlation keys already stored for a job."""
        stmt = select(GeneratedContentModel.correlation_key).where(
            GeneratedContentModel.job_id == job_id
        )
        result = await session.execute(stmt)
        return set(result.scalars().all())

    async def count_for_job(self, session: AsyncSession, job_id: UUID) -> int:
        stmt = select(func.count()).select_from(GeneratedContentModel).where(
            GeneratedContentModel.job_id == job_id
        )
        result = await session.execute(stmt)
        return int(result.scalar_one())

    async def insert_rows(
        self,
        session: AsyncSession,
        job_id: UUID,
        rows: Sequence[dict[str, Any]],
        chunk_size: int = 500,
    ) -> InsertOutcome:
        """
        Insert merged rows for a job.

        Args:
            session: Async database session (caller commits)
            job_id: Owning job
            rows: Column dicts, each with a correlation_key
            chunk_size: Rows per savepoint

        Returns:
            InsertOutcome: Inserted, skipped, and failed keys
        """
        outcome = InsertOutcome()
        existing = await self.existing_keys(session, job_id)

        pending: list[dict[str, Any]] = []
        for row in rows:
            if row["correlation_key"] in existing:
                outcome.skipped.append(row["correlation_key"])
            else:
                pending.append(row)

        for start in range(0, len(pending), chunk_size):
            chunk = pending[start : start + chunk_size]
            try:
                async with session.begin_nested():
                    session.add_all(
                        [GeneratedContentModel(job_id=job_id, **row) for row in chunk]
                    )
                outcome.inserted.extend(row["correlation_key"] for row in chunk)
            except SQLAlchemyError as e:
                logger.warning(
                    f"{__name__}:insert_rows - Chunk insert failed, retrying row by row",
                    extra={"job_id": str(job_id), "chunk_start": start, "error": str(e)},
                )
                await self._insert_individually(session, job_id, chunk, outcome)

        return outcome

    async def _insert_individually(
        self,
        session: AsyncSession,
        job_id: UUID,
        chunk: Sequence[dict[str, Any]],
        outcome: InsertOutcome,
    ) -> None:
        for row in chunk:
            key = row["correlation_key"]
            try:
                async with session.begin_nested():
                    session.add(GeneratedContentModel(job_id=job_id, **row))
                outcome.inserted.append(key)
            except SQLAlchemyError as e:
                logger.error(
                    f"{__name__}:insert_rows - Row insert failed",
                    extra={"job_id": str(job_id), "correlation_key": key, "error": str(e)},
                )
                outcome.failed[key] = f"insert failed: {type(e).__name__}"


content_crud = ContentCRUD()
