"""
Dependency injection container.

Factory functions for FastAPI dependencies.

Dependencies: batchgen.configs, batchgen.application, batchgen.boundary
System role: DI container for service injection
"""

from functools import lru_cache
from typing import Callable

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from batchgen.application.services import GenerationService, JobService
from batchgen.boundary.db import get_async_db, get_async_session_factory
from batchgen.boundary.gateway.base import BulkInferenceGateway
from batchgen.configs import Settings, get_settings
from batchgen.core.pipeline import PipelineDriver
from batchgen.core.reconciliation import ReconciliationPoller

DriverFactory = Callable[[], PipelineDriver]


class ServiceCache:
    """Container for cached process-wide instances."""

    def __init__(self):
        self._gateway = None
        self._poller = None

    @property
    def gateway(self) -> BulkInferenceGateway:
        """Get cached bulk-inference gateway."""
        if self._gateway is None:
            from batchgen.boundary.gateway.openai_batch_gateway import OpenAIBatchGateway

            self._gateway = OpenAIBatchGateway(get_settings().gateway)
        return self._gateway

    def driver_factory(self) -> DriverFactory:
        """Build a factory creating one driver (one lease identity) per call."""
        settings = get_settings()
        session_factory = get_async_session_factory()
        gateway = self.gateway
        return lambda: PipelineDriver(session_factory, gateway, settings)

    @property
    def poller(self) -> ReconciliationPoller:
        """Get the application-scoped reconciliation poller (not started)."""
        if self._poller is None:
            self._poller = ReconciliationPoller(
                get_async_session_factory(),
                get_settings(),
                gateway=self.gateway,
                driver_factory=self.driver_factory(),
            )
        return self._poller

    def clear(self) -> None:
        """Clear all cached instances."""
        self._gateway = None
        self._poller = None


# Global service cache
_service_cache = ServiceCache()


def get_service_cache() -> ServiceCache:
    """Get service cache singleton."""
    return _service_cache


@lru_cache
def get_settings_dependency() -> Settings:
    """Get settings singleton."""
    return get_settings()


def get_gateway() -> BulkInferenceGateway:
    """Get the bulk-inference gateway."""
    return get_service_cache().gateway


def get_driver_factory() -> DriverFactory:
    """Get a pipeline driver factory bound to the shared gateway."""
    return get_service_cache().driver_factory()


def get_poller() -> ReconciliationPoller:
    """Get the application-scoped reconciliation poller."""
    return get_service_cache().poller


def get_job_service(
    db: AsyncSession = Depends(get_async_db),
    settings: Settings = Depends(get_settings_dependency),
    poller: ReconciliationPoller = Depends(get_poller),
    driver_factory: DriverFactory = Depends(get_driver_factory),
) -> JobService:
    """
    Get job service instance.

    Args:
        db: Async database session (injected via Depends)
        settings: Application settings
        poller: Poller backing the active-job snapshot
        driver_factory: Used by the process-pending trigger

    Returns:
        JobService: Job service instance
    """
    return JobService(db=db, settings=settings, poller=poller, driver_factory=driver_factory)


def get_generation_service(
    db: AsyncSession = Depends(get_async_db),
    settings: Settings = Depends(get_settings_dependency),
    driver_factory: DriverFactory = Depends(get_driver_factory),
) -> GenerationService:
    """
    Get generation service instance for the streaming path.

    Returns:
        GenerationService: Generation service instance
    """
    return GenerationService(db=db, settings=settings, driver_factory=driver_factory)
