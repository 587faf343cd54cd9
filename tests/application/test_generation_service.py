"""
Test suite for GenerationService.

System role: Verification of the streaming start path (claimed creation,
NDJSON output, validation before persistence)
"""

import json

import pytest
from sqlalchemy import func, select

from batchgen.application.services.generation_service import GenerationService
from batchgen.boundary.db.CRUD import job_crud
from batchgen.boundary.db.models import GenerationJobModel
from batchgen.core.exceptions import ValidationError
from batchgen.core.pipeline import PipelineDriver
from batchgen.core.state_machine import JobState
from batchgen.models.job import JobSpecRequest


@pytest.fixture
def drivers(seeded_session_factory, gateway, settings):
    """Driver factory that remembers the drivers it built."""
    built = []

    def factory() -> PipelineDriver:
        driver = PipelineDriver(seeded_session_factory, gateway, settings)
        built.append(driver)
        return driver

    factory.built = built
    return factory


def request(**overrides) -> JobSpecRequest:
    data = {
        "brand_id": "bmw",
        "model_id": "bmw-3",
        "generation_id": "e90",
        "content_type": "fault",
        "count": 4,
    }
    data.update(overrides)
    return JobSpecRequest(**data)


class TestStart:
    async def test_job_should_be_created_already_claimed(
        self, seeded_session_factory, settings, drivers
    ) -> None:
        # Arrange
        async with seeded_session_factory() as session:
            service = GenerationService(session, settings, drivers)

            # Act
            job_id, lines = await service.start(request())

        # Assert
        async with seeded_session_factory() as session:
            job = await job_crud.get_or_raise(session, job_id)
        assert job.state is JobState.PROCESSING
        assert job.lease_owner == drivers.built[0].owner
        await lines.aclose()

    async def test_lines_should_end_with_complete_event(
        self, seeded_session_factory, settings, drivers
    ) -> None:
        # Arrange
        async with seeded_session_factory() as session:
            job_id, lines = await GenerationService(session, settings, drivers).start(request())

        # Act
        received = [json.loads(line) async for line in lines]

        # Assert
        assert all(len(event) == 1 for event in received)
        assert "progress" in received[0]
        assert "complete" in received[-1]
        summary = received[-1]["complete"]
        assert summary["jobId"] == str(job_id)
        assert summary["successCount"] == 4
        assert summary["failedCount"] == 0
        results = [event["result"] for event in received if "result" in event]
        assert [result["key"] for result in results] == [
            "item-1", "item-2", "item-3", "item-4"
        ]

    async def test_invalid_request_should_create_no_row(
        self, seeded_session_factory, settings, drivers
    ) -> None:
        # Act
        async with seeded_session_factory() as session:
            with pytest.raises(ValidationError):
                await GenerationService(session, settings, drivers).start(request(language="fr"))

        # Assert
        async with seeded_session_factory() as session:
            total = await session.scalar(select(func.count()).select_from(GenerationJobModel))
        assert total == 0
        assert drivers.built == []
