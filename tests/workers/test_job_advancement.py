"""
Test suite for the job advancement task.

System role: Verification of one worker pass against a SQLite store and a
scripted gateway
"""

from unittest.mock import AsyncMock, patch

from batchgen.boundary.db.CRUD import job_crud
from batchgen.core.state_machine import JobState
from batchgen.workers import celery_app
from batchgen.workers.tasks import job_advancement


class TestAdvanceJobs:
    async def test_pass_should_submit_pending_jobs(
        self, engine, seeded_session_factory, gateway, settings
    ) -> None:
        # Arrange
        async with seeded_session_factory() as session:
            job = await job_crud.create_pending(session, "audi", "audi-a4", "b8", "fault", 3, "en")
            await session.commit()

        # Act
        with patch.object(job_advancement, "build_async_engine", return_value=engine), patch.object(
            job_advancement, "OpenAIBatchGateway", return_value=gateway
        ), patch.object(job_advancement, "get_settings", return_value=settings):
            summary = await job_advancement.advance_jobs()

        # Assert
        assert summary == {
            "advanced": 1,
            "states": {str(job.id): JobState.PHASE1_CREATED.value},
        }
        assert [phase for phase, _, _ in gateway.submissions] == [1]
        async with seeded_session_factory() as session:
            stored = await job_crud.get_or_raise(session, job.id)
        assert stored.lease_owner is None

    async def test_empty_store_should_advance_nothing(self, engine, gateway, settings) -> None:
        with patch.object(job_advancement, "build_async_engine", return_value=engine), patch.object(
            job_advancement, "OpenAIBatchGateway", return_value=gateway
        ), patch.object(job_advancement, "get_settings", return_value=settings):
            summary = await job_advancement.advance_jobs(limit=5)

        assert summary == {"advanced": 0, "states": {}}


class TestCeleryTask:
    def test_task_should_run_one_pass(self) -> None:
        summary = {"advanced": 2, "states": {}}
        with patch.object(job_advancement, "advance_jobs", AsyncMock(return_value=summary)) as run:
            assert job_advancement.advance_generation_jobs(limit=7) == summary

        run.assert_awaited_once_with(7)

    def test_beat_schedule_should_target_task(self) -> None:
        entry = celery_app.conf.beat_schedule["advance-generation-jobs"]

        assert entry["task"] == job_advancement.advance_generation_jobs.name

    def test_beat_should_pass_configured_limit(self) -> None:
        entry = celery_app.conf.beat_schedule["advance-generation-jobs"]

        assert entry["kwargs"] == {"limit": None}
