"""API-specific dependencies."""

# Re-export common dependencies
from .dependencies import (
    get_driver_factory,
    get_gateway,
    get_generation_service,
    get_job_service,
    get_poller,
    get_service_cache,
    get_settings_dependency,
)

__all__ = [
    "get_driver_factory",
    "get_gateway",
    "get_generation_service",
    "get_job_service",
    "get_poller",
    "get_service_cache",
    "get_settings_dependency",
]
