"""
Job API endpoints.

Routes: POST /jobs/bulk, GET /jobs/active, GET /jobs/{id},
        POST /jobs/process-pending, POST /jobs/estimate

Dependencies: batchgen.application.services.job_service, batchgen.models
System role: Multi-job (fire-and-forget) HTTP API
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from batchgen.api.deps import get_job_service
from batchgen.api.routers.error_handling import handle_job_errors
from batchgen.application.services.job_service import JobService
from batchgen.models.job import (
    ActiveJobsResponse,
    BulkSubmitRequest,
    BulkSubmitResponse,
    EstimateRequest,
    EstimateResponse,
    JobStatusResponse,
    ProcessPendingResponse,
)

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("/bulk", response_model=BulkSubmitResponse, status_code=status.HTTP_202_ACCEPTED)
@handle_job_errors
async def submit_bulk(
    request: BulkSubmitRequest,
    job_service: JobService = Depends(get_job_service),
) -> BulkSubmitResponse:
    """
    Fan out one pending job per spec (or per generation of a selection).

    Returns immediately; jobs are advanced by the background worker and
    observed through GET /jobs/active.

    Example Request:
        {"selection": {"brandIds": ["bmw"], "contentType": "fault", "count": 50}}

    Example Response:
        {"jobIds": ["..."], "shortfall": 0}
    """
    return await job_service.submit(request)


@router.get("/active", response_model=ActiveJobsResponse)
@handle_job_errors
async def list_active_jobs(
    job_service: JobService = Depends(get_job_service),
) -> ActiveJobsResponse:
    """Latest reconciliation snapshot, newest job first."""
    return await job_service.list_active()


@router.post("/process-pending", response_model=ProcessPendingResponse)
@handle_job_errors
async def process_pending_jobs(
    job_service: JobService = Depends(get_job_service),
) -> ProcessPendingResponse:
    """Operator trigger: advance pending jobs now instead of waiting for the worker."""
    return await job_service.process_pending()


@router.post("/estimate", response_model=EstimateResponse)
@handle_job_errors
async def estimate_cost(
    request: EstimateRequest,
    job_service: JobService = Depends(get_job_service),
) -> EstimateResponse:
    return job_service.estimate(request.count, request.jobs)


@router.get("/{job_id}", response_model=JobStatusResponse)
@handle_job_errors
async def get_job_status(
    job_id: UUID,
    job_service: JobService = Depends(get_job_service),
) -> JobStatusResponse:
    """
    Get job state, progress, phase refs and cost for one job.

    Raises:
        HTTPException(404): Job not found
    """
    return await job_service.get_job_status(job_id)
