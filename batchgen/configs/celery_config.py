"""
Celery configuration settings.

Manages Celery broker and result backend configuration for the background
worker that advances generation jobs.

Dependencies: pydantic, pydantic_settings
System role: Async task queue configuration for job advancement
"""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from batchgen.configs.base import BaseSettings


class CelerySettings(BaseSettings):
    """Celery and Redis configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CELERY_",
        case_sensitive=False,
        extra="ignore",
    )

    broker_host: str = Field(default="localhost", description="Redis broker host")
    broker_port: int = Field(default=6379, description="Redis broker port")
    broker_db: int = Field(default=0, description="Redis broker database number")

    result_backend_db: int = Field(default=1, description="Redis result database number")

    task_serializer: str = Field(default="json", description="Task serialization format")
    result_serializer: str = Field(default="json", description="Result serialization format")
    accept_content: list[str] = Field(
        default=["json"],
        description="Accepted content types",
    )
    timezone: str = Field(default="UTC", description="Celery timezone")

    advance_interval_seconds: float = Field(
        default=30.0,
        description="Beat schedule for the job advancement task",
    )
    advance_batch_limit: int | None = Field(
        default=None,
        description="Maximum jobs picked up per pass (None: all with a free lease)",
    )
    advance_time_limit_seconds: int = Field(
        default=600,
        description="Hard time limit of one advancement pass",
    )

    @property
    def broker_url(self) -> str:
        """
        Construct Redis broker URL.

        Returns:
            str: Celery-compatible broker URL
        """
        return f"redis://{self.broker_host}:{self.broker_port}/{self.broker_db}"

    @property
    def result_backend_url(self) -> str:
        """
        Construct Redis result backend URL.

        Returns:
            str: Celery-compatible result backend URL
        """
        return f"redis://{self.broker_host}:{self.broker_port}/{self.result_backend_db}"
