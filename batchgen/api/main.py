"""
FastAPI application with assembled routers.

Initializes FastAPI app with all API routers and configures uvicorn server.

Dependencies: fastapi, batchgen.api.routers, uvicorn
System role: API entry point with router assembly and server launch
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from batchgen.api.deps.dependencies import get_service_cache
from batchgen.configs import get_settings
from batchgen.observability import configure_logging
from batchgen.observability.middleware import CorrelationMiddleware, RequestLoggingMiddleware
from .routers import (
    generation_router,
    health_router,
    jobs_router,
    jobs_ws_router,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Starts the application-scoped reconciliation poller on startup and stops
    it on shutdown.
    """
    settings = get_settings()
    configure_logging(settings.log_level)
    logger = logging.getLogger("uvicorn")
    logger.info("Starting batch generation API", extra={"environment": settings.environment})

    # Startup
    cache = get_service_cache()
    poller = None
    if settings.orchestrator.poller_enabled:
        poller = cache.poller
        poller.start()
        logger.info("Reconciliation poller started")
    app.state.poller = poller

    yield

    # Shutdown
    if poller is not None:
        await poller.stop()
    cache.clear()
    logger.info("Service cache cleared")


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application with routers.

    Returns:
        FastAPI: Configured application instance with all routers registered
    """
    app = FastAPI(
        title="Batch Generation Orchestrator API",
        description="Two-phase bulk content generation jobs over a batch inference gateway",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Job-Id", "X-Correlation-ID"],
    )

    # Add observability middleware
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationMiddleware)

    # Register all routers with /api/v1 prefix for versioning
    app.include_router(health_router, prefix="/api/v1")
    app.include_router(jobs_router, prefix="/api/v1")
    app.include_router(generation_router, prefix="/api/v1")
    app.include_router(jobs_ws_router, prefix="/api/v1")

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "batchgen.api.main:app",
        host="0.0.0.0",
        port=8000,
    )
