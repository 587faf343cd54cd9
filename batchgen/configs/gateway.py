"""
Bulk-inference gateway configuration.

Credentials, models and batch parameters for the OpenAI Batch API.

Dependencies: pydantic, pydantic_settings
System role: External batch service configuration
"""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from batchgen.configs.base import BaseSettings


class GatewaySettings(BaseSettings):
    """OpenAI Batch API configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="OPENAI_",
        case_sensitive=False,
        extra="ignore",
    )

    api_key: str | None = Field(default=None, description="OpenAI API key")
    base_url: str | None = Field(default=None, description="Override for the API base URL")

    content_model: str = Field(default="gpt-4o-mini", description="Model for phase 1 (content)")
    metadata_model: str = Field(default="gpt-4o-mini", description="Model for phase 2 (metadata)")

    completion_window: str = Field(default="24h", description="Batch completion window")
    max_active_batches: int = Field(
        default=50,
        description="Concurrent batch limit enforced by the provider",
    )

    request_max_attempts: int = Field(default=3, description="Attempts per gateway call")
    request_timeout_seconds: float = Field(default=60.0, description="HTTP timeout per call")
