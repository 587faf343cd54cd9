"""API routers."""

from .generation import router as generation_router
from .health import router as health_router
from .jobs import router as jobs_router
from .jobs_ws import router as jobs_ws_router

__all__ = [
    "generation_router",
    "health_router",
    "jobs_router",
    "jobs_ws_router",
]
