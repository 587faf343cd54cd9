"""
Generation job CRUD operations.

Every state change is a conditional update keyed on the state the caller
read and on the caller's lease, so at most one driver advances a job.

Dependencies: sqlalchemy, batchgen.boundary.db.models.job_model, batchgen.core
System role: Job store operations for the pipeline driver and poller
"""

from datetime import datetime, timedelta
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from batchgen.boundary.db.base import utcnow
from batchgen.boundary.db.CRUD.base_crud import BaseCRUD
from batchgen.boundary.db.models.job_model import GenerationJobModel
from batchgen.core.exceptions import JobNotFoundError, StaleJobStateError
from batchgen.core.state_machine import (
    ACTIVE_STATES,
    JobState,
    can_transition,
    is_terminal,
)


class JobCRUD(BaseCRUD[GenerationJobModel]):
    """
    CRUD operations for GenerationJobModel.

    Extends BaseCRUD with claim/lease/transition primitives and the queries
    used by the reconciliation poller and background worker.
    """

    def __init__(self) -> None:
        super().__init__(GenerationJobModel)

    @staticmethod
    def _lease_free(owner: str, now: datetime):
        """Lease is unset, expired, or already held by owner."""
        return or_(
            GenerationJobModel.lease_owner.is_(None),
            GenerationJobModel.lease_expires_at.is_(None),
            GenerationJobModel.lease_expires_at < now,
            GenerationJobModel.lease_owner == owner,
        )

    async def create_pending(
        self,
        session: AsyncSession,
        brand_id: str,
        model_id: str,
        generation_id: str,
        content_type: str,
        count: int,
        language: str,
    ) -> GenerationJobModel:
        """
        Insert one job row in state pending.

        Returns:
            GenerationJobModel: Created row with progress_total fixed at count
        """
        return await self.create(
            session,
            brand_id=brand_id,
            model_id=model_id,
            generation_id=generation_id,
            content_type=content_type,
            count=count,
            language=language,
            state=JobState.PENDING,
            current_stage="Queued",
            progress_total=count,
            errors=[],
        )

    async def get_or_raise(self, session: AsyncSession, job_id: UUID) -> GenerationJobModel:
        job = await self.get_by_id(session, job_id)
        if job is None:
            raise JobNotFoundError(str(job_id))
        return job

    async def claim(
        self,
        session: AsyncSession,
        job_id: UUID,
        owner: str,
        lease_ttl: timedelta,
    ) -> GenerationJobModel:
        """
        Claim a pending job: pending -> processing, taking the lease.

        Args:
            session: Async database session
            job_id: Job UUID
            owner: Unique driver identity
            lease_ttl: How long the lease is valid without renewal

        Returns:
            GenerationJobModel: The claimed row

        Raises:
            StaleJobStateError: Another driver claimed it first or it is not pending
        """
        now = utcnow()
        changed = await self.update_where(
            session,
            GenerationJobModel.id == job_id,
            GenerationJobModel.state == JobState.PENDING,
            self._lease_free(owner, now),
            state=JobState.PROCESSING,
            current_stage="Claimed by driver",
            lease_owner=owner,
            lease_expires_at=now + lease_ttl,
            updated_at=now,
        )
        if changed != 1:
            raise StaleJobStateError(str(job_id), JobState.PENDING.value, {"owner": owner})
        return await self.get_or_raise(session, job_id)

    async def acquire_lease(
        self,
        session: AsyncSession,
        job_id: UUID,
        owner: str,
        expected_state: JobState,
        lease_ttl: timedelta,
    ) -> GenerationJobModel:
        """
        Take over the lease of an in-flight job whose lease is free or expired.

        Raises:
            StaleJobStateError: The state moved on or another driver holds the lease
        """
        now = utcnow()
        changed = await self.update_where(
            session,
            GenerationJobModel.id == job_id,
            GenerationJobModel.state == expected_state,
            self._lease_free(owner, now),
            lease_owner=owner,
            lease_expires_at=now + lease_ttl,
        )
        if changed != 1:
            raise StaleJobStateError(str(job_id), expected_state.value, {"owner": owner})
        return await self.get_or_raise(session, job_id)

    async def renew_lease(
        self,
        session: AsyncSession,
        job_id: UUID,
        owner: str,
        lease_ttl: timedelta,
    ) -> bool:
        """Extend a lease the caller still holds. Returns False if it was lost."""
        changed = await self.update_where(
            session,
            GenerationJobModel.id == job_id,
            GenerationJobModel.lease_owner == owner,
            lease_expires_at=utcnow() + lease_ttl,
        )
        return changed == 1

    async def release_lease(self, session: AsyncSession, job_id: UUID, owner: str) -> bool:
        """Give up the lease so another driver can resume the job immediately."""
        changed = await self.update_where(
            session,
            GenerationJobModel.id == job_id,
            GenerationJobModel.lease_owner == owner,
            lease_owner=None,
            lease_expires_at=None,
        )
        return changed == 1

    async def transition(
        self,
        session: AsyncSession,
        job_id: UUID,
        owner: str,
        expected: JobState,
        target: JobState,
        **fields: Any,
    ) -> GenerationJobModel:
        """
        Move a job from expected to target while holding the lease.

        Terminal targets stamp completed_at and drop the lease.

        Args:
            session: Async database session
            job_id: Job UUID
            owner: Lease holder
            expected: State the driver read
            target: Next state (forward successor or FAILED)
            **fields: Additional columns to set in the same update

        Raises:
            ValueError: target is not a legal successor of expected
            StaleJobStateError: The row no longer matches (state, lease_owner)
        """
        if not can_transition(expected, target):
            raise ValueError(f"Illegal transition {expected.value} -> {target.value}")

        now = utcnow()
        values: dict[str, Any] = {"state": target, "updated_at": now, **fields}
        if is_terminal(target):
            values.setdefault("completed_at", now)
            values["lease_owner"] = None
            values["lease_expires_at"] = None

        changed = await self.update_where(
            session,
            GenerationJobModel.id == job_id,
            GenerationJobModel.state == expected,
            GenerationJobModel.lease_owner == owner,
            **values,
        )
        if changed != 1:
            raise StaleJobStateError(
                str(job_id), expected.value, {"owner": owner, "target": target.value}
            )
        return await self.get_or_raise(session, job_id)

    async def update_in_state(
        self,
        session: AsyncSession,
        job_id: UUID,
        owner: str,
        expected: JobState,
        **fields: Any,
    ) -> GenerationJobModel:
        """
        Update non-state columns (stage, progress, status) under the lease.

        Raises:
            StaleJobStateError: The row no longer matches (state, lease_owner)
        """
        changed = await self.update_where(
            session,
            GenerationJobModel.id == job_id,
            GenerationJobModel.state == expected,
            GenerationJobModel.lease_owner == owner,
            updated_at=utcnow(),
            **fields,
        )
        if changed != 1:
            raise StaleJobStateError(str(job_id), expected.value, {"owner": owner})
        return await self.get_or_raise(session, job_id)

    async def update_phase_status(
        self,
        session: AsyncSession,
        job_id: UUID,
        phase: int,
        status: str,
        request_counts: dict[str, int] | None = None,
    ) -> bool:
        """
        Refresh the observational phase status columns.

        Never touches state, so it is safe for the poller to call without a lease.
        """
        values: dict[str, Any] = {f"phase{phase}_status": status}
        if request_counts is not None:
            values[f"phase{phase}_request_counts"] = request_counts
        changed = await self.update_where(
            session,
            GenerationJobModel.id == job_id,
            GenerationJobModel.state.in_(ACTIVE_STATES),
            **values,
        )
        return changed == 1

    async def list_visible(
        self,
        session: AsyncSession,
        retention_cutoff: datetime,
        limit: int | None = None,
    ) -> Sequence[GenerationJobModel]:
        """
        Jobs that are non-terminal, or reached a terminal state after retention_cutoff.

        Returns:
            Sequence of jobs ordered by created_at descending
        """
        stmt = (
            select(GenerationJobModel)
            .where(
                or_(
                    GenerationJobModel.state.in_(ACTIVE_STATES),
                    and_(
                        GenerationJobModel.completed_at.is_not(None),
                        GenerationJobModel.completed_at >= retention_cutoff,
                    ),
                )
            )
            .order_by(GenerationJobModel.created_at.desc())
            .execution_options(populate_existing=True)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await session.execute(stmt)
        return result.scalars().all()

    async def list_advanceable(
        self,
        session: AsyncSession,
        owner: str,
        states: Sequence[JobState] = ACTIVE_STATES,
        limit: int | None = None,
    ) -> Sequence[GenerationJobModel]:
        """
        Non-terminal jobs whose lease is free, oldest first.

        Args:
            session: Async database session
            owner: Driver identity (its own leases count as free)
            states: Restrict to these states (e.g. only PENDING)
            limit: Maximum number of jobs to return
        """
        stmt = (
            select(GenerationJobModel)
            .where(
                GenerationJobModel.state.in_(list(states)),
                self._lease_free(owner, utcnow()),
            )
            .order_by(GenerationJobModel.created_at.asc())
            .execution_options(populate_existing=True)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await session.execute(stmt)
        return result.scalars().all()


job_crud = JobCRUD()
