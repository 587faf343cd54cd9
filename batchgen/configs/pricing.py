"""
Pricing configuration for cost estimation.

Dependencies: pydantic, pydantic_settings
System role: Unit prices used by the cost estimator
"""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from batchgen.configs.base import BaseSettings


class PricingSettings(BaseSettings):
    """Per-item prices and batch discount."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PRICING_",
        case_sensitive=False,
        extra="ignore",
    )

    content_unit_price: float = Field(default=0.01, description="Phase 1 price per item (USD)")
    metadata_unit_price: float = Field(default=0.005, description="Phase 2 price per item (USD)")
    batch_discount: float = Field(
        default=0.5,
        description="Multiplier applied to list prices for batch submissions",
    )
