"""
Orchestrator configuration settings.

Timing and limits for the pipeline driver, fan-out and reconciliation poller.

Dependencies: pydantic, pydantic_settings
System role: Job lifecycle tuning
"""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from batchgen.configs.base import BaseSettings


class OrchestratorSettings(BaseSettings):
    """Pipeline, fan-out and poller configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="ORCHESTRATOR_",
        case_sensitive=False,
        extra="ignore",
    )

    max_count: int = Field(default=50000, description="Upper bound for items per job")
    max_jobs_per_request: int = Field(default=100, description="Fan-out limit per request")
    languages: list[str] = Field(default=["en", "de"], description="Supported content languages")

    phase_timeout_seconds: float = Field(
        default=30 * 60,
        description="Maximum wait for one external batch to reach a terminal status",
    )
    phase_poll_interval_seconds: float = Field(
        default=15.0,
        description="Delay between gateway status polls on the streaming path",
    )
    lease_ttl_seconds: float = Field(
        default=120.0,
        description="Driver lease lifetime; renewed on every poll",
    )
    worker_concurrency: int = Field(default=10, description="Jobs advanced in parallel per worker tick")
    insert_chunk_size: int = Field(default=500, description="Rows per content insert chunk")
    max_recorded_errors: int = Field(default=100, description="Per-row errors kept on a job")

    poller_interval_seconds: float = Field(default=10.0, description="Reconciliation tick interval")
    poller_retention_hours: float = Field(
        default=24.0,
        description="How long terminal jobs stay in the active snapshot",
    )
    poller_refresh_phase_status: bool = Field(
        default=True,
        description="Refresh phase statuses from the gateway on each tick",
    )
    poller_enabled: bool = Field(default=True, description="Start the app-level poller on startup")

    trigger_worker_on_submit: bool = Field(
        default=False,
        description="Enqueue the Celery advance task right after a fan-out",
    )
