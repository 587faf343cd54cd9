"""
Two-phase batch pipeline driver.

Advances one job at a time through
pending -> processing -> phase1_created -> phase1_complete ->
phase2_created -> phase2_complete -> completed (or failed).

Every step runs in its own session, checks and renews the driver lease,
and commits through conditional updates, so two drivers can never both
submit the same job. The streaming path runs the driver in a detached task:
a disconnecting client stops the loop between steps, the lease is released,
and the background worker resumes the job later.

Dependencies: sqlalchemy, batchgen.boundary, batchgen.core
System role: Job state machine driver for the stream path and the worker
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Sequence
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from batchgen.boundary.db.base import as_utc, utcnow
from batchgen.boundary.db.CRUD import catalog_crud, content_crud, job_crud
from batchgen.boundary.db.models import GenerationJobModel
from batchgen.boundary.gateway.base import BulkInferenceGateway
from batchgen.configs.settings import Settings
from batchgen.core.cost_estimator import UnitPrices, cost_breakdown
from batchgen.core.exceptions import (
    GatewayError,
    GatewaySubmissionError,
    GatewayTimeoutError,
    JobNotFoundError,
    StaleJobStateError,
    StorageUnavailableError,
)
from batchgen.core.merge import index_rows, merge_phase_outputs
from batchgen.core.prompt_templates import (
    TargetLabels,
    build_content_requests,
    build_metadata_request,
    correlation_key,
    key_index,
    question_for,
)
from batchgen.core.state_machine import (
    ACTIVE_STATES,
    WAITING_STATES,
    JobState,
    is_terminal,
)
from batchgen.core.stream import (
    batch_info_event,
    complete_event,
    error_event,
    progress_event,
    result_event,
)
from batchgen.models.streaming import CompletionSummary, ProgressEvent
from batchgen.observability.correlation import bound_job, job_id_ctx
from batchgen.observability.log_utils import log_exception_with_context

logger = logging.getLogger(__name__)

MAX_STEPS_PER_ADVANCE = 8


@dataclass
class StepResult:
    """
    Outcome of one driver step.

    Attributes:
        job_id: Job UUID
        state: State after the step
        transitioned: The step moved the job to a new state
        deferred: Submission postponed (gateway at its active-batch limit)
        stale: Another driver owns the job; nothing was changed
        events: Progress events produced by the step
    """

    job_id: UUID
    state: JobState
    transitioned: bool = False
    deferred: bool = False
    stale: bool = False
    events: list[ProgressEvent] = field(default_factory=list)

    @property
    def terminal(self) -> bool:
        return is_terminal(self.state)


def job_summary(job: GenerationJobModel, prices: UnitPrices) -> CompletionSummary:
    """Authoritative summary of a job, including its cost breakdown."""
    breakdown = cost_breakdown(
        job.count, prices, job.phase1_request_counts, job.phase2_request_counts
    )
    return CompletionSummary(
        job_id=job.id,
        state=job.state.value,
        total=job.progress_total,
        success_count=job.success_count,
        failed_count=job.failed_count,
        estimated_cost=breakdown.estimated,
        actual_cost=breakdown.actual,
        savings=breakdown.savings,
    )


def batch_info_for(
    job: GenerationJobModel, request_counts: dict | None = None
) -> ProgressEvent:
    if request_counts is None:
        request_counts = job.phase2_request_counts or job.phase1_request_counts
    return batch_info_event(
        job.phase1_ref,
        job.phase2_ref,
        job.phase1_status,
        job.phase2_status,
        request_counts,
    )


class PipelineDriver:
    """
    Drives generation jobs through the two-phase batch lifecycle.

    Attributes:
        owner: Lease identity of this driver instance
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: BulkInferenceGateway,
        settings: Settings,
        owner: str | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """
        Initialize the driver.

        Args:
            session_factory: Opens one session per step
            gateway: Bulk-inference gateway
            settings: Application settings (orchestrator, gateway, pricing)
            owner: Lease identity, generated when omitted
            clock: Source of "now", injectable for timeout tests
        """
        self._session_factory = session_factory
        self._gateway = gateway
        self._settings = settings
        self._orchestrator = settings.orchestrator
        self.owner = owner or f"driver-{uuid.uuid4().hex[:12]}"
        self._clock = clock
        self._prices = UnitPrices.from_settings(settings.pricing)
        self._lease_ttl = timedelta(seconds=self._orchestrator.lease_ttl_seconds)
        self._phase_timeout = timedelta(seconds=self._orchestrator.phase_timeout_seconds)
        self._handlers = {
            JobState.PROCESSING: self._submit_content_phase,
            JobState.PHASE1_CREATED: self._await_phase,
            JobState.PHASE1_COMPLETE: self._submit_metadata_phase,
            JobState.PHASE2_CREATED: self._await_phase,
            JobState.PHASE2_COMPLETE: self._merge_and_insert,
        }
        self._background: set[asyncio.Task] = set()
        # (job id, phase) -> phase status last sent in a batchInfo event
        self._reported_status: dict[tuple[UUID, int], str] = {}

    @property
    def prices(self) -> UnitPrices:
        return self._prices

    @property
    def lease_ttl(self) -> timedelta:
        return self._lease_ttl

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------

    async def claim(self, job_id: UUID) -> GenerationJobModel:
        """
        Claim a pending job (pending -> processing).

        Raises:
            StaleJobStateError: Job is not pending or another driver won
        """
        async with self._session_factory() as session:
            job = await job_crud.claim(session, job_id, self.owner, self._lease_ttl)
            await session.commit()
        logger.info(
            f"{__name__}:claim - Job claimed",
            extra={"job_id": str(job_id), "owner": self.owner},
        )
        return job

    async def acquire(self, job_id: UUID) -> GenerationJobModel:
        """
        Claim a pending job, or take over the free lease of an in-flight one.

        Raises:
            JobNotFoundError: No such job
            StaleJobStateError: Job is terminal or leased by another driver
        """
        async with self._session_factory() as session:
            job = await job_crud.get_or_raise(session, job_id)
            state = job.state

        if state is JobState.PENDING:
            return await self.claim(job_id)
        if is_terminal(state):
            raise StaleJobStateError(str(job_id), state.value, {"reason": "terminal"})

        async with self._session_factory() as session:
            job = await job_crud.acquire_lease(
                session, job_id, self.owner, state, self._lease_ttl
            )
            await session.commit()
        return job

    async def release(self, job_id: UUID) -> None:
        """Release this driver's lease, if it still holds it."""
        try:
            async with self._session_factory() as session:
                await job_crud.release_lease(session, job_id, self.owner)
                await session.commit()
        except SQLAlchemyError as e:
            log_exception_with_context(
                logger,
                f"{__name__}:release - Failed to release lease",
                e,
                job_id=str(job_id),
                owner=self.owner,
            )

    # ------------------------------------------------------------------
    # Stepping
    # ------------------------------------------------------------------

    async def step(self, job_id: UUID) -> StepResult:
        """
        Perform the single transition (or poll) the job's current state calls for.

        The caller must hold the lease (claim/acquire first).

        Raises:
            JobNotFoundError: No such job
            StorageUnavailableError: The store failed and the job could not be marked failed
        """
        async with self._session_factory() as session:
            job = await job_crud.get_or_raise(session, job_id)
            state = job.state
            if is_terminal(state):
                return StepResult(job_id, state, events=self._terminal_events(job))

            handler = self._handlers.get(state)
            if handler is None or job.lease_owner != self.owner:
                return StepResult(job_id, state, stale=True)

            try:
                if not await job_crud.renew_lease(session, job_id, self.owner, self._lease_ttl):
                    return StepResult(job_id, state, stale=True)
                result = await handler(session, job)
                await session.commit()
                return result
            except StaleJobStateError:
                await session.rollback()
                logger.warning(
                    f"{__name__}:step - Lost job to another driver",
                    extra={"job_id": str(job_id), "state": state.value, "owner": self.owner},
                )
                return StepResult(job_id, state, stale=True)
            except SQLAlchemyError as e:
                await session.rollback()
                log_exception_with_context(
                    logger,
                    f"{__name__}:step - Storage error while advancing job",
                    e,
                    job_id=str(job_id),
                    state=state.value,
                )
                storage_error = e

        return await self._fail_after_storage_error(job_id, state, storage_error)

    async def _fail(
        self,
        session: AsyncSession,
        job: GenerationJobModel,
        message: str,
        events: Sequence[ProgressEvent] = (),
        **fields,
    ) -> StepResult:
        job = await job_crud.transition(
            session,
            job.id,
            self.owner,
            job.state,
            JobState.FAILED,
            current_stage=f"Failed: {message}"[:255],
            error_message=message,
            **fields,
        )
        logger.error(
            f"{__name__}:_fail - Job failed",
            extra={"job_id": str(job.id), "reason": message},
        )
        return StepResult(
            job.id,
            JobState.FAILED,
            transitioned=True,
            events=[*events, batch_info_for(job), error_event(message, job.id)],
        )

    async def _fail_after_storage_error(
        self, job_id: UUID, state: JobState, error: SQLAlchemyError
    ) -> StepResult:
        message = f"Storage error: {type(error).__name__}"
        try:
            async with self._session_factory() as session:
                job = await job_crud.get_or_raise(session, job_id)
                result = await self._fail(session, job, message)
                await session.commit()
                return result
        except StaleJobStateError:
            return StepResult(job_id, state, stale=True)
        except SQLAlchemyError as e:
            raise StorageUnavailableError(
                "Job store unavailable", details={"job_id": str(job_id)}
            ) from e

    def _terminal_events(self, job: GenerationJobModel) -> list[ProgressEvent]:
        if job.state is JobState.COMPLETED:
            return [complete_event(job_summary(job, self._prices))]
        return [error_event(job.error_message or "Job failed", job.id)]

    async def _labels(self, session: AsyncSession, job: GenerationJobModel) -> TargetLabels:
        brands = await catalog_crud.brand_names(session, [job.brand_id])
        models = await catalog_crud.model_names(session, [job.model_id])
        generations = await catalog_crud.generation_names(session, [job.generation_id])
        return TargetLabels(
            brand=brands.get(job.brand_id, job.brand_id),
            model=models.get(job.model_id, job.model_id),
            generation=generations.get(job.generation_id, job.generation_id),
        )

    async def _defer_for_capacity(
        self, session: AsyncSession, job: GenerationJobModel
    ) -> StepResult | None:
        """Return a deferred result when the gateway is at its active-batch limit."""
        limit = self._settings.gateway.max_active_batches
        if limit <= 0:
            return None
        try:
            active = await self._gateway.count_active_batches()
        except GatewayError as e:
            logger.warning(
                f"{__name__}:_defer_for_capacity - Could not count active batches, submitting anyway",
                extra={"job_id": str(job.id), "error": str(e)},
            )
            return None
        if active < limit:
            return None

        stage = f"Waiting for batch capacity ({active}/{limit} active)"
        job = await job_crud.update_in_state(
            session, job.id, self.owner, job.state, current_stage=stage
        )
        logger.info(
            f"{__name__}:_defer_for_capacity - Gateway at batch limit",
            extra={"job_id": str(job.id), "active": active, "limit": limit},
        )
        return StepResult(
            job.id,
            job.state,
            deferred=True,
            events=[progress_event(job.progress_current, job.progress_total, stage)],
        )

    async def _submit_content_phase(
        self, session: AsyncSession, job: GenerationJobModel
    ) -> StepResult:
        """processing -> phase1_created."""
        deferred = await self._defer_for_capacity(session, job)
        if deferred is not None:
            return deferred

        labels = await self._labels(session, job)
        requests = build_content_requests(
            job.content_type,
            job.language,
            labels,
            job.count,
            self._settings.gateway.content_model,
        )
        try:
            ref = await self._gateway.submit_batch(
                1, requests, {"job_id": str(job.id), "phase": "1"}
            )
        except GatewaySubmissionError as e:
            log_exception_with_context(
                logger, f"{__name__}:_submit_content_phase - Submission refused", e,
                job_id=str(job.id),
            )
            return await self._fail(session, job, e.message)
        except GatewayError as e:
            logger.warning(
                f"{__name__}:_submit_content_phase - Submission failed, retrying later",
                extra={"job_id": str(job.id), "error": str(e)},
            )
            return StepResult(job.id, job.state)

        job = await job_crud.transition(
            session,
            job.id,
            self.owner,
            JobState.PROCESSING,
            JobState.PHASE1_CREATED,
            phase1_ref=ref,
            phase1_status="validating",
            phase1_submitted_at=self._clock(),
            current_stage=f"Phase 1 submitted ({len(requests)} requests)",
        )
        logger.info(
            f"{__name__}:_submit_content_phase - Phase 1 submitted",
            extra={"job_id": str(job.id), "batch_ref": ref, "requests": len(requests)},
        )
        self._reported_status[(job.id, 1)] = job.phase1_status
        return StepResult(
            job.id,
            job.state,
            transitioned=True,
            events=[batch_info_for(job), progress_event(0, job.progress_total, job.current_stage)],
        )

    async def _await_phase(self, session: AsyncSession, job: GenerationJobModel) -> StepResult:
        """phase{n}_created -> phase{n}_complete once the gateway reports success."""
        phase = WAITING_STATES[job.state]
        expected = job.state
        ref = getattr(job, f"phase{phase}_ref")
        submitted_at = as_utc(getattr(job, f"phase{phase}_submitted_at"))

        if submitted_at is not None and self._clock() - submitted_at > self._phase_timeout:
            timeout = GatewayTimeoutError(
                "external batch timeout", phase=phase, batch_ref=ref
            )
            log_exception_with_context(
                logger, f"{__name__}:_await_phase - Phase timed out", timeout,
                job_id=str(job.id),
            )
            return await self._fail(session, job, f"external batch timeout (phase {phase})")

        try:
            status = await self._gateway.get_status(ref)
        except GatewayError as e:
            logger.warning(
                f"{__name__}:_await_phase - Status poll failed, retrying later",
                extra={"job_id": str(job.id), "batch_ref": ref, "error": str(e)},
            )
            return StepResult(job.id, expected)

        counts = status.request_counts.to_dict() if status.request_counts else None
        status_fields = {f"phase{phase}_status": status.status}
        if counts is not None:
            status_fields[f"phase{phase}_request_counts"] = counts

        reported = self._reported_status.pop((job.id, phase), None)

        if status.is_success:
            target = JobState.PHASE1_COMPLETE if phase == 1 else JobState.PHASE2_COMPLETE
            job = await job_crud.transition(
                session,
                job.id,
                self.owner,
                expected,
                target,
                current_stage=f"Phase {phase} complete",
                **status_fields,
            )
            return StepResult(
                job.id,
                job.state,
                transitioned=True,
                events=[batch_info_for(job, counts)],
            )

        if status.is_failure:
            return await self._fail(
                session, job, f"Phase {phase} batch {status.status}", **status_fields
            )

        # Compared with what this driver last sent, not the stored column,
        # which the reconciliation poller also writes
        status_changed = status.status != reported
        self._reported_status[(job.id, phase)] = status.status
        stage = f"Phase {phase}: {status.status}"
        job = await job_crud.update_in_state(
            session,
            job.id,
            self.owner,
            expected,
            current_stage=stage,
            **{f"phase{phase}_status": status.status},
        )
        events = []
        if status_changed:
            events.append(batch_info_for(job, counts))
        total = (counts or {}).get("total") or job.progress_total
        done = (counts or {}).get("completed", 0) + (counts or {}).get("failed", 0)
        events.append(progress_event(min(done, total), total, stage))
        return StepResult(job.id, expected, events=events)

    async def _submit_metadata_phase(
        self, session: AsyncSession, job: GenerationJobModel
    ) -> StepResult:
        """phase1_complete -> phase2_created, for the rows phase 1 produced."""
        deferred = await self._defer_for_capacity(session, job)
        if deferred is not None:
            return deferred

        try:
            content_rows = await self._gateway.download_results(job.phase1_ref)
        except GatewayError as e:
            logger.warning(
                f"{__name__}:_submit_metadata_phase - Download failed, retrying later",
                extra={"job_id": str(job.id), "error": str(e)},
            )
            return StepResult(job.id, job.state)

        content_by_key, _ = index_rows(content_rows)
        labels = await self._labels(session, job)
        requests = []
        failures: dict[str, str] = {}
        for index in range(job.count):
            key = correlation_key(index)
            row = content_by_key.get(key)
            if row is None or not row.ok:
                failures[key] = row.error if row is not None else "missing content row"
                continue
            question = question_for(job.content_type, job.language, labels, index)
            requests.append(
                build_metadata_request(
                    key,
                    job.content_type,
                    question,
                    row.content or "",
                    labels,
                    self._settings.gateway.metadata_model,
                )
            )

        if not requests:
            return await self._fail(
                session,
                job,
                "Phase 1 produced no successful rows",
                events=[result_event(key, False, reason) for key, reason in failures.items()],
                progress_current=job.count,
                failed_count=job.count,
                success_count=0,
                errors=self._error_list(failures),
            )

        try:
            ref = await self._gateway.submit_batch(
                2, requests, {"job_id": str(job.id), "phase": "2"}
            )
        except GatewaySubmissionError as e:
            log_exception_with_context(
                logger, f"{__name__}:_submit_metadata_phase - Submission refused", e,
                job_id=str(job.id),
            )
            return await self._fail(session, job, e.message)
        except GatewayError as e:
            logger.warning(
                f"{__name__}:_submit_metadata_phase - Submission failed, retrying later",
                extra={"job_id": str(job.id), "error": str(e)},
            )
            return StepResult(job.id, job.state)

        job = await job_crud.transition(
            session,
            job.id,
            self.owner,
            JobState.PHASE1_COMPLETE,
            JobState.PHASE2_CREATED,
            phase2_ref=ref,
            phase2_status="validating",
            phase2_submitted_at=self._clock(),
            current_stage=f"Phase 2 submitted ({len(requests)} requests)",
        )
        logger.info(
            f"{__name__}:_submit_metadata_phase - Phase 2 submitted",
            extra={"job_id": str(job.id), "batch_ref": ref, "requests": len(requests)},
        )
        self._reported_status[(job.id, 2)] = job.phase2_status
        return StepResult(
            job.id,
            job.state,
            transitioned=True,
            events=[batch_info_for(job), progress_event(0, job.progress_total, job.current_stage)],
        )

    def _error_list(self, failures: dict[str, str]) -> list[str]:
        ordered = sorted(failures, key=key_index)[: self._orchestrator.max_recorded_errors]
        return [f"{key}: {failures[key]}" for key in ordered]

    async def _merge_and_insert(
        self, session: AsyncSession, job: GenerationJobModel
    ) -> StepResult:
        """phase2_complete -> completed: merge by correlation key, insert in chunks."""
        try:
            content_rows = await self._gateway.download_results(job.phase1_ref)
            metadata_rows = await self._gateway.download_results(job.phase2_ref)
        except GatewayError as e:
            logger.warning(
                f"{__name__}:_merge_and_insert - Download failed, retrying later",
                extra={"job_id": str(job.id), "error": str(e)},
            )
            return StepResult(job.id, job.state)

        job_id = job.id
        count = job.count
        content_type = job.content_type
        language = job.language
        labels = await self._labels(session, job)

        outcome = merge_phase_outputs(
            count,
            content_rows,
            metadata_rows,
            question_of=lambda index: question_for(content_type, language, labels, index),
            job_token=job_id.hex[:8],
            generation_id=job.generation_id,
            content_type=content_type,
            language=language,
        )

        failures = dict(outcome.failures)
        succeeded: list[str] = []
        events: list[ProgressEvent] = []
        chunk_size = self._orchestrator.insert_chunk_size
        total_rows = len(outcome.rows)

        for start in range(0, total_rows, chunk_size):
            chunk = outcome.rows[start : start + chunk_size]
            inserted = await content_crud.insert_rows(session, job_id, chunk, chunk_size)
            succeeded.extend(inserted.succeeded)
            failures.update(inserted.failed)

            processed = len(succeeded) + len(failures)
            stage = f"Inserting rows {min(start + chunk_size, total_rows)}/{total_rows}"
            if processed > job.progress_current:
                job = await job_crud.update_in_state(
                    session,
                    job_id,
                    self.owner,
                    JobState.PHASE2_COMPLETE,
                    progress_current=processed,
                    success_count=len(succeeded),
                    failed_count=len(failures),
                    current_stage=stage,
                )
            await session.commit()
            events.append(progress_event(processed, count, stage))

        results = [
            result_event(key, False, failures[key])
            if key in failures
            else result_event(key, True)
            for key in (correlation_key(index) for index in range(count))
        ]
        counters = {
            "progress_current": len(succeeded) + len(failures),
            "success_count": len(succeeded),
            "failed_count": len(failures),
            "errors": self._error_list(failures),
        }

        if not succeeded:
            return await self._fail(
                session, job, "Every row failed to merge or insert", events=[*events, *results],
                **counters,
            )

        job = await job_crud.transition(
            session,
            job_id,
            self.owner,
            JobState.PHASE2_COMPLETE,
            JobState.COMPLETED,
            current_stage=f"Completed: {len(succeeded)} succeeded, {len(failures)} failed",
            **counters,
        )
        logger.info(
            f"{__name__}:_merge_and_insert - Job completed",
            extra={
                "job_id": str(job_id),
                "success_count": job.success_count,
                "failed_count": job.failed_count,
            },
        )
        return StepResult(
            job_id,
            job.state,
            transitioned=True,
            events=[
                *events,
                *results,
                progress_event(job.progress_current, job.progress_total, job.current_stage),
                complete_event(job_summary(job, self._prices)),
            ],
        )

    # ------------------------------------------------------------------
    # Loops
    # ------------------------------------------------------------------

    async def advance_once(self, job_id: UUID) -> StepResult | None:
        """
        Take the job's lease and step it until it has to wait.

        Returns:
            StepResult | None: Last step result, None if the job was not available
        """
        with bound_job(job_id):
            try:
                await self.acquire(job_id)
            except (StaleJobStateError, JobNotFoundError):
                return None

            result = None
            try:
                for _ in range(MAX_STEPS_PER_ADVANCE):
                    result = await self.step(job_id)
                    if result.terminal or result.stale or result.deferred or not result.transitioned:
                        break
            finally:
                await self.release(job_id)
            return result

    async def advance_available(
        self,
        states: Sequence[JobState] = ACTIVE_STATES,
        limit: int | None = None,
    ) -> list[StepResult]:
        """
        Advance every job with a free lease, in parallel.

        Args:
            states: Only consider these states (e.g. PENDING for process-pending)
            limit: Maximum number of jobs to pick up

        Returns:
            list[StepResult]: One result per job that was advanced
        """
        async with self._session_factory() as session:
            jobs = await job_crud.list_advanceable(session, self.owner, states, limit)
            job_ids = [job.id for job in jobs]

        if not job_ids:
            return []

        semaphore = asyncio.Semaphore(self._orchestrator.worker_concurrency)

        async def guarded(job_id: UUID) -> StepResult | None:
            async with semaphore:
                return await self.advance_once(job_id)

        outcomes = await asyncio.gather(
            *(guarded(job_id) for job_id in job_ids), return_exceptions=True
        )
        results = []
        for job_id, outcome in zip(job_ids, outcomes):
            if isinstance(outcome, BaseException):
                log_exception_with_context(
                    logger, f"{__name__}:advance_available - Job advance failed", outcome,
                    job_id=str(job_id),
                )
            elif outcome is not None:
                results.append(outcome)

        logger.info(
            f"{__name__}:advance_available - Tick finished",
            extra={"candidates": len(job_ids), "advanced": len(results)},
        )
        return results

    async def run(self, job_id: UUID) -> AsyncIterator[ProgressEvent]:
        """
        Drive one job to a terminal state, yielding progress events.

        The work happens in a detached task. Closing this generator early
        (client disconnect) asks the task to stop after its current step;
        the task then releases the lease so the worker can resume the job.

        Yields:
            ProgressEvent: Events in order, ending with complete or error
        """
        queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()
        stop = asyncio.Event()
        task = asyncio.create_task(self._drive(job_id, queue, stop))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event
        finally:
            if not task.done():
                stop.set()
                logger.info(
                    f"{__name__}:run - Stream consumer left, driver will stop after current step",
                    extra={"job_id": str(job_id)},
                )

    async def _drive(
        self,
        job_id: UUID,
        queue: "asyncio.Queue[ProgressEvent | None]",
        stop: asyncio.Event,
    ) -> None:
        # Runs in its own task, so the binding ends with it
        job_id_ctx.set(str(job_id))
        terminal = False
        try:
            try:
                job = await self.acquire(job_id)
            except (StaleJobStateError, JobNotFoundError) as e:
                await queue.put(error_event(f"Job cannot be driven: {e.message}", job_id))
                return

            await queue.put(progress_event(job.progress_current, job.progress_total, job.current_stage))

            while not stop.is_set():
                result = await self.step(job_id)
                for event in result.events:
                    await queue.put(event)
                if result.terminal:
                    terminal = True
                    return
                if result.stale:
                    await queue.put(error_event("Job was taken over by another driver", job_id))
                    return
                if not result.transitioned:
                    try:
                        await asyncio.wait_for(
                            stop.wait(), timeout=self._orchestrator.phase_poll_interval_seconds
                        )
                    except asyncio.TimeoutError:
                        pass
        except (StorageUnavailableError, SQLAlchemyError) as e:
            log_exception_with_context(
                logger, f"{__name__}:_drive - Storage unavailable", e, job_id=str(job_id)
            )
            await queue.put(error_event("Job store unavailable", job_id))
        except Exception as e:
            log_exception_with_context(
                logger, f"{__name__}:_drive - Driver stopped on unexpected error", e,
                job_id=str(job_id),
            )
            await queue.put(error_event(f"Job driver stopped: {type(e).__name__}", job_id))
        finally:
            if not terminal:
                await self.release(job_id)
            await queue.put(None)
