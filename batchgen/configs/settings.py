"""
Application settings.

One Settings object carries every per-concern section; the API, the Celery
worker and the tests all build their collaborators from it.

Dependencies: pydantic, batchgen.configs
System role: Configuration root
"""

from functools import lru_cache

from pydantic import Field

from batchgen.configs.base import BaseSettings
from batchgen.configs.celery_config import CelerySettings
from batchgen.configs.database import DatabaseSettings
from batchgen.configs.gateway import GatewaySettings
from batchgen.configs.orchestrator import OrchestratorSettings
from batchgen.configs.pricing import PricingSettings


class Settings(BaseSettings):
    """
    Settings sections.

    Attributes:
        database: Job, content and catalog store connection (POSTGRES_*)
        gateway: Batch provider credentials and limits (OPENAI_*)
        pricing: Unit prices for cost estimates (PRICING_*)
        orchestrator: Pipeline, fan-out and poller tuning (ORCHESTRATOR_*)
        celery: Worker broker and schedule (CELERY_*)
    """

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    pricing: PricingSettings = Field(default_factory=PricingSettings)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)
    celery: CelerySettings = Field(default_factory=CelerySettings)


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, read from the environment once."""
    return Settings()
