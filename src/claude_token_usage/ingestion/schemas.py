"""Typed schemas used by the ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from model_pricing import PricingIndex


class CostMode(str, Enum):
    """How an event's USD cost is chosen."""

    AUTO = "auto"
    PREFER_FIELD = "prefer-field"
    CALCULATE = "calculate"


@dataclass(frozen=True)
class UsageEvent:
    """One normalized usage record."""

    timestamp: datetime
    project: str
    session_id: str
    model: str | None
    input_tokens: int
    output_tokens: int
    cache_creation_tokens: int
    cache_read_tokens: int
    cost_usd: float

    @property
    def total_tokens(self) -> int:
        """Return the sum of the four token counters."""
        return self.input_tokens + self.output_tokens + self.cache_creation_tokens + self.cache_read_tokens


@dataclass(frozen=True)
class NormalizationContext:
    """Per-run dependencies for turning raw records into usage events."""

    pricing_index: PricingIndex = field(default_factory=PricingIndex)
    cost_mode: CostMode = CostMode.AUTO


@dataclass(frozen=True)
class LoadResult:
    """Batch loader output and counters."""

    events: list[UsageEvent]
    files_scanned: int
    failed_files: list[str] = field(default_factory=list)
