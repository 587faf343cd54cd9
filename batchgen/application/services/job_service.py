"""
Job service orchestrator.

Bulk submission fan-out, single-job status, the active-job snapshot,
operator force-advance, and cost estimates.

Dependencies: sqlalchemy, kombu, batchgen.boundary.db.CRUD, batchgen.core, batchgen.workers
System role: Multi-job path orchestration behind the jobs router
"""

import logging
from typing import Callable, Sequence
from uuid import UUID

from kombu.exceptions import OperationalError as BrokerError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from batchgen.boundary.db.CRUD import catalog_crud, job_crud
from batchgen.configs.settings import Settings
from batchgen.core.cost_estimator import UnitPrices, estimate_cost
from batchgen.core.exceptions import ValidationError
from batchgen.core.job_spec_builder import (
    JobSpec,
    Selection,
    build_job_specs,
    build_single_spec,
)
from batchgen.core.pipeline import PipelineDriver
from batchgen.core.reconciliation import ReconciliationPoller, build_status_entry
from batchgen.models.job import (
    ActiveJobsResponse,
    BulkSubmitRequest,
    BulkSubmitResponse,
    EstimateResponse,
    JobSpecRequest,
    JobStatusResponse,
    ProcessPendingResponse,
    SelectionRequest,
)
from batchgen.workers.tasks.job_advancement import advance_generation_jobs

logger = logging.getLogger(__name__)


class JobService:
    """
    Job service orchestrator for the fire-and-forget path.

    Fan-out never runs the pipeline itself; created jobs are advanced by the
    background worker (or an operator trigger) and observed via the poller.
    """

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings,
        poller: ReconciliationPoller | None = None,
        driver_factory: Callable[[], PipelineDriver] | None = None,
    ) -> None:
        """
        Initialize job service.

        Args:
            db: AsyncSession for database operations
            settings: Application settings
            poller: Reconciliation poller backing the active snapshot
            driver_factory: Builds a pipeline driver for process-pending
        """
        self.db = db
        self.settings = settings
        self.poller = poller
        self.driver_factory = driver_factory
        self.prices = UnitPrices.from_settings(settings.pricing)

    def _check_request_size(self, size: int) -> None:
        limit = self.settings.orchestrator.max_jobs_per_request
        if size > limit:
            raise ValidationError(
                f"At most {limit} jobs per request",
                field="jobs",
                details={"requested": size},
            )

    async def submit(self, request: BulkSubmitRequest) -> BulkSubmitResponse:
        """Dispatch a bulk request to the explicit-list or selection path."""
        if request.selection is not None:
            return await self.submit_selection(request.selection)
        return await self.submit_bulk(request.jobs or [])

    async def submit_bulk(self, specs: Sequence[JobSpecRequest]) -> BulkSubmitResponse:
        """
        Create one pending job per explicit spec.

        Args:
            specs: Spec requests (validated all together before any insert)

        Returns:
            BulkSubmitResponse: Created ids plus shortfall

        Raises:
            ValidationError: Any spec is invalid, or too many specs
        """
        if not specs:
            raise ValidationError("empty selection", field="jobs")
        self._check_request_size(len(specs))

        orchestrator = self.settings.orchestrator
        job_specs = [
            build_single_spec(
                spec.brand_id,
                spec.model_id,
                spec.generation_id,
                spec.content_type,
                spec.count,
                spec.language,
                max_count=orchestrator.max_count,
                languages=orchestrator.languages,
            )
            for spec in specs
        ]
        return await self._fan_out(job_specs)

    async def submit_selection(self, selection: SelectionRequest) -> BulkSubmitResponse:
        """
        Resolve a brand/model/generation selection and fan out one job per generation.

        Raises:
            ValidationError: Invalid parameters, empty selection, or too many generations
        """
        orchestrator = self.settings.orchestrator
        job_specs = await build_job_specs(
            self.db,
            Selection(
                brand_ids=tuple(selection.brand_ids),
                model_ids=tuple(selection.model_ids),
                generation_ids=tuple(selection.generation_ids),
            ),
            selection.content_type,
            selection.count,
            selection.language,
            max_count=orchestrator.max_count,
            languages=orchestrator.languages,
        )
        self._check_request_size(len(job_specs))
        return await self._fan_out(job_specs)

    async def _fan_out(self, job_specs: Sequence[JobSpec]) -> BulkSubmitResponse:
        """Persist each spec in its own transaction; later failures keep earlier rows."""
        job_ids: list[UUID] = []
        shortfall = 0

        for spec in job_specs:
            try:
                job = await job_crud.create_pending(
                    self.db,
                    brand_id=spec.target.brand_id,
                    model_id=spec.target.model_id,
                    generation_id=spec.target.generation_id,
                    content_type=spec.content_type.value,
                    count=spec.count,
                    language=spec.language,
                )
                await self.db.commit()
                job_ids.append(job.id)
            except SQLAlchemyError as e:
                await self.db.rollback()
                shortfall += 1
                logger.error(
                    f"{__name__}:_fan_out - Failed to persist job",
                    extra={"generation_id": spec.target.generation_id, "error": str(e)},
                )

        logger.info(
            f"{__name__}:_fan_out - Jobs created",
            extra={"created": len(job_ids), "shortfall": shortfall},
        )
        if job_ids and self.settings.orchestrator.trigger_worker_on_submit:
            self._trigger_worker()
        return BulkSubmitResponse(job_ids=job_ids, shortfall=shortfall)

    def _trigger_worker(self) -> None:
        """Enqueue an immediate worker pass. Fire-and-forget."""
        try:
            advance_generation_jobs.delay()
        except BrokerError as e:
            logger.warning(
                f"{__name__}:_trigger_worker - Broker unavailable, worker will pick jobs up on schedule",
                extra={"error": str(e)},
            )

    async def get_job_status(self, job_id: UUID) -> JobStatusResponse:
        """
        Get a single job's normalized status.

        Raises:
            JobNotFoundError: If job doesn't exist
        """
        job = await job_crud.get_or_raise(self.db, job_id)
        brand_names = await catalog_crud.brand_names(self.db, [job.brand_id])
        model_names = await catalog_crud.model_names(self.db, [job.model_id])
        generation_names = await catalog_crud.generation_names(self.db, [job.generation_id])
        return build_status_entry(job, self.prices, brand_names, model_names, generation_names)

    async def list_active(self) -> ActiveJobsResponse:
        """Current poller snapshot."""
        if self.poller is None:
            raise RuntimeError("JobService was built without a poller")
        jobs = await self.poller.current()
        return ActiveJobsResponse(jobs=jobs, refreshed_at=self.poller.refreshed_at)

    async def process_pending(self) -> ProcessPendingResponse:
        """Operator trigger: advance pending jobs now, then refresh the snapshot."""
        if self.poller is None:
            raise RuntimeError("JobService was built without a poller")
        results = await self.poller.process_pending_now()
        await self.poller.tick()
        return ProcessPendingResponse(
            processed=len(results),
            job_ids=[result.job_id for result in results],
            states={str(result.job_id): result.state.value for result in results},
        )

    def estimate(self, count: int, jobs: int = 1) -> EstimateResponse:
        """
        Estimate the cost of `jobs` jobs of `count` items each.

        Raises:
            ValidationError: count outside 1..max_count
        """
        max_count = self.settings.orchestrator.max_count
        if not 1 <= count <= max_count:
            raise ValidationError(f"Count must be between 1 and {max_count}", field="count")

        items = count * jobs
        estimated = estimate_cost(items, self.prices)
        list_price = round(items * self.prices.unit_price, 6)
        return EstimateResponse(
            count=count,
            jobs=jobs,
            unit_price=self.prices.unit_price,
            batch_discount=self.prices.batch_discount,
            list_price=list_price,
            estimated_cost=estimated,
            savings_vs_list=round(list_price - estimated, 6),
        )
