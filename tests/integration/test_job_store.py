"""
Test suite for JobCRUD against a real (SQLite) database.

Covers conditional transitions, leases, and the claim race between two
drivers.

System role: Verification of the job store's optimistic concurrency
"""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from batchgen.boundary.db.base import as_utc, utcnow
from batchgen.boundary.db.CRUD.job_crud import job_crud
from batchgen.core.exceptions import JobNotFoundError, StaleJobStateError
from batchgen.core.state_machine import JobState

LEASE = timedelta(minutes=2)


async def _create(session: AsyncSession, generation_id: str = "e90", count: int = 10):
    job = await job_crud.create_pending(
        session,
        brand_id="bmw",
        model_id="bmw-3",
        generation_id=generation_id,
        content_type="fault",
        count=count,
        language="en",
    )
    await session.commit()
    return job


class TestCreatePending:
    async def test_should_create_row_in_pending_state(self, db_session) -> None:
        # Act
        job = await _create(db_session, count=25)

        # Assert
        assert job.state is JobState.PENDING
        assert job.progress_total == 25
        assert job.progress_current == 0
        assert job.errors == []

    async def test_get_or_raise_should_raise_for_unknown_id(self, db_session) -> None:
        import uuid

        with pytest.raises(JobNotFoundError):
            await job_crud.get_or_raise(db_session, uuid.uuid4())


class TestClaim:
    """Test suite for JobCRUD.claim()."""

    async def test_claim_should_move_to_processing_and_take_lease(self, db_session) -> None:
        # Arrange
        job = await _create(db_session)

        # Act
        claimed = await job_crud.claim(db_session, job.id, "driver-a", LEASE)
        await db_session.commit()

        # Assert
        assert claimed.state is JobState.PROCESSING
        assert claimed.lease_owner == "driver-a"
        assert as_utc(claimed.lease_expires_at) > utcnow()

    async def test_second_claim_should_be_stale(self, db_session) -> None:
        job = await _create(db_session)
        await job_crud.claim(db_session, job.id, "driver-a", LEASE)
        await db_session.commit()

        with pytest.raises(StaleJobStateError):
            await job_crud.claim(db_session, job.id, "driver-b", LEASE)

    async def test_racing_claims_should_have_exactly_one_winner(self, session_factory) -> None:
        # Arrange
        async with session_factory() as session:
            job = await _create(session)

        async def attempt(owner: str) -> str | None:
            async with session_factory() as session:
                try:
                    await job_crud.claim(session, job.id, owner, LEASE)
                    await session.commit()
                    return owner
                except StaleJobStateError:
                    await session.rollback()
                    return None

        # Act
        outcomes = await asyncio.gather(attempt("driver-a"), attempt("driver-b"))

        # Assert
        winners = [owner for owner in outcomes if owner is not None]
        assert len(winners) == 1
        async with session_factory() as session:
            stored = await job_crud.get_or_raise(session, job.id)
        assert stored.lease_owner == winners[0]
        assert stored.state is JobState.PROCESSING


class TestTransition:
    """Test suite for JobCRUD.transition() and update_in_state()."""

    async def test_transition_should_require_expected_state_and_lease(self, db_session) -> None:
        # Arrange
        job = await _create(db_session)
        await job_crud.claim(db_session, job.id, "driver-a", LEASE)

        # Act / Assert
        with pytest.raises(StaleJobStateError):
            await job_crud.transition(
                db_session, job.id, "driver-b", JobState.PROCESSING, JobState.PHASE1_CREATED
            )
        moved = await job_crud.transition(
            db_session,
            job.id,
            "driver-a",
            JobState.PROCESSING,
            JobState.PHASE1_CREATED,
            phase1_ref="batch_1",
        )
        assert moved.state is JobState.PHASE1_CREATED
        assert moved.phase1_ref == "batch_1"

    async def test_illegal_transition_should_raise_value_error(self, db_session) -> None:
        job = await _create(db_session)
        await job_crud.claim(db_session, job.id, "driver-a", LEASE)

        with pytest.raises(ValueError):
            await job_crud.transition(
                db_session, job.id, "driver-a", JobState.PROCESSING, JobState.COMPLETED
            )

    async def test_terminal_transition_should_stamp_completion_and_drop_lease(
        self, db_session
    ) -> None:
        job = await _create(db_session)
        await job_crud.claim(db_session, job.id, "driver-a", LEASE)

        failed = await job_crud.transition(
            db_session,
            job.id,
            "driver-a",
            JobState.PROCESSING,
            JobState.FAILED,
            error_message="boom",
        )

        assert failed.state is JobState.FAILED
        assert failed.completed_at is not None
        assert failed.lease_owner is None
        assert failed.error_message == "boom"

    async def test_update_in_state_should_not_change_state(self, db_session) -> None:
        job = await _create(db_session)
        await job_crud.claim(db_session, job.id, "driver-a", LEASE)

        updated = await job_crud.update_in_state(
            db_session, job.id, "driver-a", JobState.PROCESSING, current_stage="Waiting"
        )

        assert updated.state is JobState.PROCESSING
        assert updated.current_stage == "Waiting"


class TestLeases:
    async def test_expired_lease_should_be_acquirable(self, db_session) -> None:
        # Arrange
        job = await _create(db_session)
        await job_crud.claim(db_session, job.id, "driver-a", timedelta(seconds=-1))

        # Act
        taken = await job_crud.acquire_lease(
            db_session, job.id, "driver-b", JobState.PROCESSING, LEASE
        )

        # Assert
        assert taken.lease_owner == "driver-b"

    async def test_live_lease_should_block_other_drivers(self, db_session) -> None:
        job = await _create(db_session)
        await job_crud.claim(db_session, job.id, "driver-a", LEASE)

        with pytest.raises(StaleJobStateError):
            await job_crud.acquire_lease(
                db_session, job.id, "driver-b", JobState.PROCESSING, LEASE
            )

    async def test_released_lease_should_free_the_job(self, db_session) -> None:
        job = await _create(db_session)
        await job_crud.claim(db_session, job.id, "driver-a", LEASE)

        assert await job_crud.release_lease(db_session, job.id, "driver-a")
        assert not await job_crud.renew_lease(db_session, job.id, "driver-a", LEASE)
        advanceable = await job_crud.list_advanceable(db_session, "driver-b")
        assert [j.id for j in advanceable] == [job.id]


class TestQueries:
    async def test_list_visible_should_hide_old_terminal_jobs(self, db_session) -> None:
        # Arrange
        active = await _create(db_session, "e90")
        recent = await _create(db_session, "f30")
        await job_crud.claim(db_session, recent.id, "d", LEASE)
        await job_crud.transition(db_session, recent.id, "d", JobState.PROCESSING, JobState.FAILED)
        old = await _create(db_session, "e70")
        await job_crud.claim(db_session, old.id, "d", LEASE)
        await job_crud.transition(
            db_session,
            old.id,
            "d",
            JobState.PROCESSING,
            JobState.FAILED,
            completed_at=utcnow() - timedelta(days=3),
        )
        await db_session.commit()

        # Act
        visible = await job_crud.list_visible(db_session, utcnow() - timedelta(hours=24))

        # Assert
        assert {job.id for job in visible} == {active.id, recent.id}

    async def test_update_phase_status_should_skip_terminal_jobs(self, db_session) -> None:
        job = await _create(db_session)
        await job_crud.claim(db_session, job.id, "d", LEASE)
        await job_crud.transition(db_session, job.id, "d", JobState.PROCESSING, JobState.FAILED)

        changed = await job_crud.update_phase_status(db_session, job.id, 1, "completed")

        assert changed is False
