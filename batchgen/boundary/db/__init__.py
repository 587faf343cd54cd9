"""
Database boundary package.

Exports the declarative base, ORM models, and engine/session helpers.
"""

from batchgen.boundary.db.base import Base, TimestampMixin, UUIDMixin
from batchgen.boundary.db.connection import (
    build_async_engine,
    get_async_db,
    get_async_engine,
    get_async_session_factory,
    session_factory_for,
)
from batchgen.boundary.db.models import (
    CarBrandModel,
    CarModelModel,
    GeneratedContentModel,
    GenerationJobModel,
    ModelGenerationModel,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    "build_async_engine",
    "get_async_db",
    "get_async_engine",
    "get_async_session_factory",
    "session_factory_for",
    "CarBrandModel",
    "CarModelModel",
    "GeneratedContentModel",
    "GenerationJobModel",
    "ModelGenerationModel",
]
