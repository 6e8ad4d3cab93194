"""Ingestion pipeline for Claude Code JSONL usage logs."""

from .normalizer import calculate_cost, normalize_record
from .schemas import CostMode, LoadResult, NormalizationContext, UsageEvent
from .service import EventLoader

__all__ = [
    "CostMode",
    "EventLoader",
    "LoadResult",
    "NormalizationContext",
    "UsageEvent",
    "calculate_cost",
    "normalize_record",
]
