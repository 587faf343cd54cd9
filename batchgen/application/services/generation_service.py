"""
Generation service for the single-job streaming path.

Validates one spec, creates its job already claimed by a fresh driver (so
the background worker never sees it as pending), and exposes the driver's
events as NDJSON lines.

Dependencies: sqlalchemy, batchgen.boundary.db.CRUD, batchgen.core
System role: Synchronous generation orchestration behind the stream router
"""

import logging
from typing import AsyncIterator, Callable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from batchgen.boundary.db.CRUD import job_crud
from batchgen.configs.settings import Settings
from batchgen.core.job_spec_builder import build_single_spec
from batchgen.core.pipeline import PipelineDriver
from batchgen.models.job import JobSpecRequest

logger = logging.getLogger(__name__)


class GenerationService:
    """Starts and streams single synchronous generation jobs."""

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings,
        driver_factory: Callable[[], PipelineDriver],
    ) -> None:
        self.db = db
        self.settings = settings
        self.driver_factory = driver_factory

    async def start(self, request: JobSpecRequest) -> tuple[UUID, AsyncIterator[str]]:
        """
        Validate, persist, and start streaming one job.

        Args:
            request: Single-target spec

        Returns:
            (job id, async iterator of NDJSON lines)

        Raises:
            ValidationError: Invalid spec, raised before any row is created
        """
        orchestrator = self.settings.orchestrator
        spec = build_single_spec(
            request.brand_id,
            request.model_id,
            request.generation_id,
            request.content_type,
            request.count,
            request.language,
            max_count=orchestrator.max_count,
            languages=orchestrator.languages,
        )

        driver = self.driver_factory()
        job = await job_crud.create_pending(
            self.db,
            brand_id=spec.target.brand_id,
            model_id=spec.target.model_id,
            generation_id=spec.target.generation_id,
            content_type=spec.content_type.value,
            count=spec.count,
            language=spec.language,
        )
        job_id = job.id
        await job_crud.claim(self.db, job_id, driver.owner, driver.lease_ttl)
        await self.db.commit()

        logger.info(
            f"{__name__}:start - Streaming job created",
            extra={"job_id": str(job_id), "count": spec.count, "owner": driver.owner},
        )
        return job_id, self._lines(driver, job_id)

    async def _lines(self, driver: PipelineDriver, job_id: UUID) -> AsyncIterator[str]:
        events = driver.run(job_id)
        try:
            async for event in events:
                yield event.to_line()
        finally:
            await events.aclose()
