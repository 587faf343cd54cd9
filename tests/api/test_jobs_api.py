from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from batchgen.api.deps import get_job_service
from batchgen.api.main import create_app
from batchgen.core.exceptions import (
    JobNotFoundError,
    StorageUnavailableError,
    ValidationError,
)
from batchgen.models.job import (
    ActiveJobsResponse,
    BulkSubmitResponse,
    CostBreakdownResponse,
    EstimateResponse,
    JobProgress,
    JobStatusResponse,
    ProcessPendingResponse,
)


@pytest.fixture
def client():
    app = create_app()
    return TestClient(app)


@pytest.fixture
def mock_job_service(client):
    service = AsyncMock()
    service.estimate = MagicMock()
    client.app.dependency_overrides[get_job_service] = lambda: service
    return service


def status_entry(job_id) -> JobStatusResponse:
    now = datetime.now(timezone.utc)
    return JobStatusResponse(
        id=job_id,
        brand_id="bmw",
        model_id="bmw-3",
        generation_id="e90",
        brand_name="BMW",
        content_type="fault",
        count=100,
        language="en",
        state="phase1_created",
        current_stage="Phase 1: in_progress",
        progress=JobProgress(current=0, total=100, percentage=0),
        success_count=0,
        failed_count=0,
        phase1_ref="batch_abc",
        cost=CostBreakdownResponse(estimated=0.75),
        created_at=now,
        updated_at=now,
    )


class TestSubmitBulk:
    def test_should_accept_selection(self, client, mock_job_service):
        # Arrange
        job_ids = [uuid4(), uuid4(), uuid4()]
        mock_job_service.submit.return_value = BulkSubmitResponse(job_ids=job_ids)

        # Act
        response = client.post(
            "/api/v1/jobs/bulk",
            json={"selection": {"brandIds": ["bmw"], "contentType": "fault", "count": 50}},
        )

        # Assert
        assert response.status_code == 202
        assert response.json() == {"jobIds": [str(i) for i in job_ids], "shortfall": 0}
        request = mock_job_service.submit.call_args.args[0]
        assert request.selection.brand_ids == ["bmw"]
        assert request.jobs is None

    def test_both_jobs_and_selection_should_be_rejected(self, client, mock_job_service):
        response = client.post(
            "/api/v1/jobs/bulk",
            json={
                "jobs": [],
                "selection": {"brandIds": ["bmw"], "contentType": "fault", "count": 5},
            },
        )

        assert response.status_code == 422
        mock_job_service.submit.assert_not_called()

    def test_domain_validation_error_should_map_to_422(self, client, mock_job_service):
        # Arrange
        mock_job_service.submit.side_effect = ValidationError("empty selection", field="selection")

        # Act
        response = client.post(
            "/api/v1/jobs/bulk",
            json={"selection": {"brandIds": ["tesla"], "contentType": "fault", "count": 5}},
        )

        # Assert
        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["error"] == "ValidationError"
        assert detail["message"] == "empty selection"
        assert detail["details"] == {"field": "selection"}

    def test_store_outage_should_map_to_503(self, client, mock_job_service):
        mock_job_service.submit.side_effect = StorageUnavailableError("Job store unavailable")

        response = client.post(
            "/api/v1/jobs/bulk",
            json={"selection": {"brandIds": ["bmw"], "contentType": "fault", "count": 5}},
        )

        assert response.status_code == 503
        assert response.json()["detail"]["error"] == "StorageUnavailableError"


class TestGetJobStatus:
    def test_should_return_camel_case_status(self, client, mock_job_service):
        # Arrange
        job_id = uuid4()
        mock_job_service.get_job_status.return_value = status_entry(job_id)

        # Act
        response = client.get(f"/api/v1/jobs/{job_id}")

        # Assert
        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "phase1_created"
        assert data["brandName"] == "BMW"
        assert data["phase1Ref"] == "batch_abc"
        assert data["cost"] == {"estimated": 0.75, "actual": None, "savings": None}
        mock_job_service.get_job_status.assert_called_once_with(job_id)

    def test_unknown_job_should_return_404(self, client, mock_job_service):
        job_id = uuid4()
        mock_job_service.get_job_status.side_effect = JobNotFoundError(str(job_id))

        response = client.get(f"/api/v1/jobs/{job_id}")

        assert response.status_code == 404
        assert "not found" in response.json()["detail"]["message"].lower()


class TestActiveJobs:
    def test_should_return_snapshot(self, client, mock_job_service):
        # Arrange
        first, second = uuid4(), uuid4()
        mock_job_service.list_active.return_value = ActiveJobsResponse(
            jobs=[status_entry(first), status_entry(second)]
        )

        # Act
        response = client.get("/api/v1/jobs/active")

        # Assert
        assert response.status_code == 200
        assert [job["id"] for job in response.json()["jobs"]] == [str(first), str(second)]


class TestProcessPending:
    def test_should_report_advanced_jobs(self, client, mock_job_service):
        job_id = uuid4()
        mock_job_service.process_pending.return_value = ProcessPendingResponse(
            processed=1, job_ids=[job_id], states={str(job_id): "phase1_created"}
        )

        response = client.post("/api/v1/jobs/process-pending")

        assert response.status_code == 200
        assert response.json()["processed"] == 1
        assert response.json()["states"] == {str(job_id): "phase1_created"}


class TestEstimate:
    def test_should_return_estimate(self, client, mock_job_service):
        # Arrange
        mock_job_service.estimate.return_value = EstimateResponse(
            count=100,
            jobs=1,
            unit_price=0.015,
            batch_discount=0.5,
            list_price=1.5,
            estimated_cost=0.75,
            savings_vs_list=0.75,
        )

        # Act
        response = client.post("/api/v1/jobs/estimate", json={"count": 100})

        # Assert
        assert response.status_code == 200
        assert response.json()["estimatedCost"] == 0.75
        mock_job_service.estimate.assert_called_once_with(100, 1)

    def test_zero_count_should_be_rejected(self, client, mock_job_service):
        response = client.post("/api/v1/jobs/estimate", json={"count": 0})

        assert response.status_code == 422
        mock_job_service.estimate.assert_not_called()
