"""
Streaming generation endpoint.

Routes: POST /generation/stream

The response body is newline-delimited JSON: one event object per line
({"progress": ...}, {"result": ...}, {"batchInfo": ...}, ending with
{"complete": ...} or {"error": ...}). Closing the connection stops the
driver after its current step; the job stays resumable by the worker.

Dependencies: batchgen.application.services.generation_service
System role: Single-job synchronous HTTP API
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from batchgen.api.deps import get_generation_service
from batchgen.api.routers.error_handling import handle_job_errors
from batchgen.application.services.generation_service import GenerationService
from batchgen.models.job import JobSpecRequest

logger = logging.getLogger(__name__)

NDJSON_MEDIA_TYPE = "application/x-ndjson"

router = APIRouter(prefix="/generation", tags=["generation"])


@router.post("/stream")
@handle_job_errors
async def stream_generation(
    request: JobSpecRequest,
    generation_service: GenerationService = Depends(get_generation_service),
) -> StreamingResponse:
    """
    Create one job and stream its progress until it completes or fails.

    Raises:
        HTTPException(422): Invalid spec; no job is created
    """
    job_id, lines = await generation_service.start(request)
    logger.info("Streaming generation started", extra={"job_id": str(job_id)})
    return StreamingResponse(
        lines,
        media_type=NDJSON_MEDIA_TYPE,
        headers={"X-Job-Id": str(job_id), "Cache-Control": "no-cache"},
    )
