"""
Job advancement Celery task.

Task: advance_generation_jobs()
Flow: list jobs with a free lease -> claim/acquire -> step until waiting -> release

Each run owns its event loop, so it builds its own engine and gateway and
disposes of the engine before returning.

Dependencies: celery, batchgen.core.pipeline, batchgen.boundary
System role: Periodic worker pass over pending and in-flight jobs
"""

import asyncio
import logging

from batchgen.boundary.db.connection import build_async_engine, session_factory_for
from batchgen.boundary.gateway.openai_batch_gateway import OpenAIBatchGateway
from batchgen.configs import get_settings
from batchgen.core.pipeline import PipelineDriver
from batchgen.workers import ADVANCE_TASK_NAME, celery_app

logger = logging.getLogger(__name__)


async def advance_jobs(limit: int | None = None) -> dict:
    """
    Run one advancement pass.

    Args:
        limit: Maximum number of jobs to pick up

    Returns:
        dict: Number of jobs advanced and their resulting states
    """
    settings = get_settings()
    engine = build_async_engine()
    try:
        driver = PipelineDriver(
            session_factory_for(engine),
            OpenAIBatchGateway(settings.gateway),
            settings,
        )
        results = await driver.advance_available(limit=limit)
    finally:
        await engine.dispose()

    return {
        "advanced": len(results),
        "states": {str(result.job_id): result.state.value for result in results},
    }


@celery_app.task(name=ADVANCE_TASK_NAME)
def advance_generation_jobs(limit: int | None = None) -> dict:
    """
    Advance every generation job with a free lease.

    Args:
        limit: Maximum number of jobs to pick up this pass

    Returns:
        dict: Advancement summary
    """
    summary = asyncio.run(advance_jobs(limit))
    logger.info(
        f"{__name__}:advance_generation_jobs - Pass finished",
        extra={"advanced": summary["advanced"]},
    )
    return summary
