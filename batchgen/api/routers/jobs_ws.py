"""
WebSocket job snapshot endpoint.

Each connection owns a reconciliation poller that starts on accept and stops
on disconnect, pushing every snapshot to the client.

Routes: WS /ws/jobs

Server sends:
    {"event": "snapshot", "data": {"jobs": [...], "refreshedAt": "..."}}
    {"event": "pong"}

Client sends:
    {"event": "ping"}

Dependencies: batchgen.core.reconciliation, batchgen.api.deps
System role: Push channel for the multi-job dashboard
"""

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from batchgen.api.deps import get_service_cache
from batchgen.boundary.db import get_async_session_factory
from batchgen.configs import get_settings
from batchgen.core.reconciliation import ReconciliationPoller
from batchgen.models.job import ActiveJobsResponse, JobStatusResponse

logger = logging.getLogger(__name__)
router = APIRouter(tags=["streaming"])


@router.websocket("/ws/jobs")
async def websocket_jobs(websocket: WebSocket) -> None:
    """Stream active-job snapshots for as long as the client stays connected."""
    await websocket.accept()
    logger.info("Job snapshot websocket connected", extra={"client_host": websocket.client})

    async def push(jobs: list[JobStatusResponse]) -> None:
        if websocket.application_state != WebSocketState.CONNECTED:
            return
        snapshot = ActiveJobsResponse(jobs=jobs, refreshed_at=poller.refreshed_at)
        await websocket.send_json(
            {"event": "snapshot", "data": snapshot.model_dump(mode="json", by_alias=True)}
        )

    poller = ReconciliationPoller(
        get_async_session_factory(),
        get_settings(),
        gateway=get_service_cache().gateway,
        on_snapshot=push,
    )
    poller.start()

    try:
        while True:
            raw_data = await websocket.receive_text()
            try:
                data = json.loads(raw_data)
            except json.JSONDecodeError:
                await websocket.send_json(
                    {"event": "error", "data": {"code": "INVALID_JSON", "message": "Invalid JSON format"}}
                )
                continue
            if isinstance(data, dict) and data.get("event") == "ping":
                await websocket.send_json({"event": "pong"})
    except WebSocketDisconnect:
        logger.info("Job snapshot websocket disconnected")
    finally:
        try:
            await poller.stop()
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.debug("Snapshot push interrupted by disconnect", extra={"error": str(e)})
