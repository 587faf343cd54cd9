"""
Active-job reconciliation poller.

On a fixed interval, reads the jobs worth showing (non-terminal, or terminal
within the retention window), optionally refreshes their phase statuses from
the gateway, resolves catalog names with one batched lookup per id set, and
republishes a snapshot sorted by creation time, newest first.

The poller never changes a job's state. A job table that does not exist yet
yields an empty snapshot; any other storage failure raises
StorageUnavailableError.

Dependencies: sqlalchemy, batchgen.boundary, batchgen.core
System role: Status source for the multi-job path (REST snapshot and websocket)
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Sequence
from uuid import UUID

from sqlalchemy.exc import OperationalError, ProgrammingError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from batchgen.boundary.db.base import utcnow
from batchgen.boundary.db.CRUD import catalog_crud, job_crud
from batchgen.boundary.db.models import GenerationJobModel
from batchgen.boundary.gateway.base import BatchStatus, BulkInferenceGateway
from batchgen.configs.settings import Settings
from batchgen.core.cost_estimator import UnitPrices, cost_breakdown
from batchgen.core.exceptions import GatewayError, StorageUnavailableError
from batchgen.core.pipeline import PipelineDriver, StepResult
from batchgen.core.state_machine import WAITING_STATES, JobState
from batchgen.models.job import CostBreakdownResponse, JobProgress, JobStatusResponse

logger = logging.getLogger(__name__)

UNDEFINED_TABLE_SQLSTATE = "42P01"

SnapshotListener = Callable[[list[JobStatusResponse]], Awaitable[None]]


def is_undefined_table(error: BaseException) -> bool:
    """
    Detect "relation does not exist" across drivers.

    Checks the driver error class and SQLSTATE first (asyncpg/psycopg expose
    42P01); SQLite reports no distinct code, so its message is the fallback.
    """
    orig = getattr(error, "orig", None)
    for candidate in (error, orig, getattr(orig, "__cause__", None)):
        if candidate is None:
            continue
        if type(candidate).__name__ == "UndefinedTableError":
            return True
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code == UNDEFINED_TABLE_SQLSTATE:
            return True

    if isinstance(error, OperationalError):
        return "no such table" in str(orig if orig is not None else error).lower()
    return False


def build_status_entry(
    job: GenerationJobModel,
    prices: UnitPrices,
    brand_names: dict[str, str] | None = None,
    model_names: dict[str, str] | None = None,
    generation_names: dict[str, str] | None = None,
    refreshed: dict[int, BatchStatus] | None = None,
) -> JobStatusResponse:
    """
    Normalize a job row into its published form.

    Args:
        job: Job row
        prices: Unit prices for the cost breakdown
        brand_names, model_names, generation_names: Resolved display names
        refreshed: Phase -> latest gateway status read this tick
    """
    refreshed = refreshed or {}
    phase_status = {1: job.phase1_status, 2: job.phase2_status}
    phase_counts = {1: job.phase1_request_counts, 2: job.phase2_request_counts}
    for phase, status in refreshed.items():
        phase_status[phase] = status.status
        # Request counts are final only once the phase is terminal
        if status.is_terminal and status.request_counts is not None:
            phase_counts[phase] = status.request_counts.to_dict()

    breakdown = cost_breakdown(job.count, prices, phase_counts[1], phase_counts[2])
    total = job.progress_total or job.count
    percentage = int(job.progress_current * 100 / total) if total else 0

    return JobStatusResponse(
        id=job.id,
        brand_id=job.brand_id,
        model_id=job.model_id,
        generation_id=job.generation_id,
        brand_name=(brand_names or {}).get(job.brand_id),
        model_name=(model_names or {}).get(job.model_id),
        generation_name=(generation_names or {}).get(job.generation_id),
        content_type=job.content_type,
        count=job.count,
        language=job.language,
        state=job.state.value,
        current_stage=job.current_stage,
        progress=JobProgress(current=job.progress_current, total=total, percentage=percentage),
        success_count=job.success_count,
        failed_count=job.failed_count,
        phase1_ref=job.phase1_ref,
        phase2_ref=job.phase2_ref,
        phase1_status=phase_status[1],
        phase2_status=phase_status[2],
        phase1_request_counts=phase_counts[1],
        phase2_request_counts=phase_counts[2],
        error_message=job.error_message,
        errors=list(job.errors or []),
        cost=CostBreakdownResponse(**breakdown.to_dict()),
        created_at=job.created_at,
        updated_at=job.updated_at,
        completed_at=job.completed_at,
    )


class ReconciliationPoller:
    """
    Periodic reader and republisher of active jobs.

    Bound to a scope: call start() when the scope opens (application startup,
    websocket accept) and stop() when it closes.

    Attributes:
        interval: Seconds between ticks
        snapshot: Last published snapshot (None before the first tick)
        refreshed_at: When the snapshot was taken
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        gateway: BulkInferenceGateway | None = None,
        interval: float | None = None,
        retention: timedelta | None = None,
        refresh_phase_status: bool | None = None,
        on_snapshot: SnapshotListener | None = None,
        driver_factory: Callable[[], PipelineDriver] | None = None,
    ) -> None:
        """
        Initialize the poller.

        Args:
            session_factory: Opens one session per tick
            settings: Application settings
            gateway: Used to refresh phase statuses; refresh is skipped without one
            interval: Override of the configured tick interval
            retention: Override of the terminal-job retention window
            refresh_phase_status: Override of the configured refresh flag
            on_snapshot: Awaited with every new snapshot
            driver_factory: Builds a driver for process_pending_now()
        """
        orchestrator = settings.orchestrator
        self._session_factory = session_factory
        self._gateway = gateway
        self._prices = UnitPrices.from_settings(settings.pricing)
        self.interval = interval if interval is not None else orchestrator.poller_interval_seconds
        self._retention = retention or timedelta(hours=orchestrator.poller_retention_hours)
        self._refresh = (
            refresh_phase_status
            if refresh_phase_status is not None
            else orchestrator.poller_refresh_phase_status
        )
        self._on_snapshot = on_snapshot
        self._driver_factory = driver_factory
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None
        self.snapshot: list[JobStatusResponse] | None = None
        self.refreshed_at: datetime | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> list[JobStatusResponse]:
        """
        Take and publish one snapshot.

        Returns:
            list[JobStatusResponse]: Entries sorted by created_at descending

        Raises:
            StorageUnavailableError: Store failure other than a missing table
        """
        cutoff = utcnow() - self._retention
        try:
            async with self._session_factory() as session:
                jobs = list(await job_crud.list_visible(session, cutoff))
                refreshed = await self._refresh_phase_statuses(session, jobs)
                brand_names = await catalog_crud.brand_names(session, {j.brand_id for j in jobs})
                model_names = await catalog_crud.model_names(session, {j.model_id for j in jobs})
                generation_names = await catalog_crud.generation_names(
                    session, {j.generation_id for j in jobs}
                )
                await session.commit()
        except (ProgrammingError, OperationalError) as e:
            if not is_undefined_table(e):
                raise StorageUnavailableError(f"Job store query failed: {e}") from e
            logger.info(f"{__name__}:tick - Job table not provisioned, publishing empty snapshot")
            jobs, refreshed = [], {}
            brand_names = model_names = generation_names = {}
        except (SQLAlchemyError, OSError) as e:
            raise StorageUnavailableError(f"Job store unavailable: {e}") from e

        entries = [
            build_status_entry(
                job,
                self._prices,
                brand_names,
                model_names,
                generation_names,
                refreshed.get(job.id),
            )
            for job in jobs
        ]
        entries.sort(key=lambda entry: entry.created_at, reverse=True)

        self.snapshot = entries
        self.refreshed_at = utcnow()
        if self._on_snapshot is not None:
            await self._on_snapshot(entries)
        return entries

    async def _refresh_phase_statuses(
        self, session: AsyncSession, jobs: Sequence[GenerationJobModel]
    ) -> dict[UUID, dict[int, BatchStatus]]:
        """
        Read gateway status for jobs waiting on a phase.

        Writes the status column only; request counts are written once the
        phase is terminal.
        """
        if not self._refresh or self._gateway is None:
            return {}

        waiting = [
            (job, WAITING_STATES[job.state])
            for job in jobs
            if job.state in WAITING_STATES and getattr(job, f"phase{WAITING_STATES[job.state]}_ref")
        ]
        if not waiting:
            return {}

        statuses = await asyncio.gather(
            *(self._gateway.get_status(getattr(job, f"phase{phase}_ref")) for job, phase in waiting),
            return_exceptions=True,
        )

        refreshed: dict[UUID, dict[int, BatchStatus]] = {}
        for (job, phase), status in zip(waiting, statuses):
            if isinstance(status, GatewayError):
                logger.warning(
                    f"{__name__}:_refresh_phase_statuses - Status read failed",
                    extra={"job_id": str(job.id), "phase": phase, "error": str(status)},
                )
                continue
            if isinstance(status, BaseException):
                raise status
            refreshed[job.id] = {phase: status}
            if status.status != getattr(job, f"phase{phase}_status"):
                counts = None
                if status.is_terminal and status.request_counts is not None:
                    counts = status.request_counts.to_dict()
                await job_crud.update_phase_status(session, job.id, phase, status.status, counts)
        return refreshed

    async def current(self) -> list[JobStatusResponse]:
        """Last snapshot, taking one first if the poller has not ticked yet."""
        if self.snapshot is None:
            return await self.tick()
        return self.snapshot

    def start(self) -> None:
        """Start ticking in the background. No-op if already running."""
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop(self._stop_event))
        logger.info(
            f"{__name__}:start - Reconciliation poller started",
            extra={"interval": self.interval},
        )

    async def stop(self) -> None:
        """Stop ticking and wait for the loop to exit."""
        if self._task is None or self._stop_event is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        logger.info(f"{__name__}:stop - Reconciliation poller stopped")

    async def _loop(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await self.tick()
            except StorageUnavailableError as e:
                logger.error(
                    f"{__name__}:_loop - Tick failed, keeping previous snapshot",
                    extra={"error": e.message},
                )
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    async def process_pending_now(self) -> list[StepResult]:
        """
        Advance pending jobs out-of-band, bypassing the worker's schedule.

        Raises:
            RuntimeError: Poller was built without a driver factory
        """
        if self._driver_factory is None:
            raise RuntimeError("process_pending_now requires a driver factory")
        driver = self._driver_factory()
        results = await driver.advance_available(states=(JobState.PENDING,))
        logger.info(
            f"{__name__}:process_pending_now - Pending jobs advanced",
            extra={"advanced": len(results)},
        )
        return results

