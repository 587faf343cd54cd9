"""
Cost estimation for two-phase batch jobs.

Pure functions: estimated cost from the requested item count, actual cost
from the request counts the gateway reports per phase, and the savings
between the two.

Dependencies: None (pure domain layer)
System role: Cost/savings figures shown next to every job
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class UnitPrices:
    """Per-item list prices and the batch discount multiplier."""

    content_unit_price: float = 0.01
    metadata_unit_price: float = 0.005
    batch_discount: float = 0.5

    @classmethod
    def from_settings(cls, pricing: Any) -> "UnitPrices":
        """Build from PricingSettings (or any object with the same attributes)."""
        return cls(
            content_unit_price=pricing.content_unit_price,
            metadata_unit_price=pricing.metadata_unit_price,
            batch_discount=pricing.batch_discount,
        )

    @property
    def unit_price(self) -> float:
        """Combined list price of one item across both phases."""
        return self.content_unit_price + self.metadata_unit_price


@dataclass(frozen=True)
class CostBreakdown:
    """
    Derived cost figures for one job.

    Attributes:
        estimated: count * unit price * discount
        actual: Weighted sum of real phase request counts, None until both are known
        savings: estimated - actual, None unless both are defined (may be negative)
    """

    estimated: float
    actual: float | None = None
    savings: float | None = None

    def to_dict(self) -> dict[str, float | None]:
        return {"estimated": self.estimated, "actual": self.actual, "savings": self.savings}


def _completed(request_counts: dict[str, Any] | None) -> int | None:
    if not request_counts:
        return None
    completed = request_counts.get("completed")
    if completed is None:
        return None
    return int(completed)


def estimate_cost(count: int, prices: UnitPrices) -> float:
    """
    Estimate the cost of a job before it runs.

    Args:
        count: Number of items requested
        prices: Unit prices and batch discount

    Returns:
        float: Estimated cost in USD
    """
    return round(count * prices.unit_price * prices.batch_discount, 6)


def actual_cost(
    phase1_counts: dict[str, Any] | None,
    phase2_counts: dict[str, Any] | None,
    prices: UnitPrices,
) -> float | None:
    """
    Compute the actual cost from the gateway's per-phase request counts.

    Returns None until both phases report a completed count.

    Args:
        phase1_counts: {"completed", "failed", "total"} for the content batch
        phase2_counts: {"completed", "failed", "total"} for the metadata batch
        prices: Unit prices and batch discount

    Returns:
        float | None: Actual cost in USD, or None if not computable yet
    """
    phase1_completed = _completed(phase1_counts)
    phase2_completed = _completed(phase2_counts)
    if phase1_completed is None or phase2_completed is None:
        return None
    weighted = (
        phase1_completed * prices.content_unit_price
        + phase2_completed * prices.metadata_unit_price
    )
    return round(weighted * prices.batch_discount, 6)


def cost_breakdown(
    count: int,
    prices: UnitPrices,
    phase1_counts: dict[str, Any] | None = None,
    phase2_counts: dict[str, Any] | None = None,
) -> CostBreakdown:
    """
    Build the full cost breakdown for a job.

    Savings are reported as-is, including negative values.
    """
    estimated = estimate_cost(count, prices)
    actual = actual_cost(phase1_counts, phase2_counts, prices)
    savings = round(estimated - actual, 6) if actual is not None else None
    return CostBreakdown(estimated=estimated, actual=actual, savings=savings)
