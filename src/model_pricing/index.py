"""Longest-prefix model pricing index."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

ROUTING_PREFIXES: tuple[str, ...] = ("anthropic/", "openrouter/", "openai/")


@dataclass(frozen=True)
class Pricing:
    """USD rates per million tokens for one model key."""

    input_per_million: float
    output_per_million: float
    cache_create_per_million: float = 0.0
    cache_read_per_million: float = 0.0


@dataclass(frozen=True)
class PricingIndex:
    """Read-only `(key, Pricing)` entries ordered longest key first.

    `find` returns the first entry whose key is a prefix of the normalized model key,
    so a dated or more specific entry wins over a bare family entry.
    """

    entries: tuple[tuple[str, Pricing], ...] = ()

    @classmethod
    def from_mapping(cls, table: Mapping[str, Pricing]) -> PricingIndex:
        """Build an index from a model-keyed table without adding aliases."""
        ordered = sorted(table.items(), key=lambda item: (-len(item[0]), item[0]))
        return cls(entries=tuple(ordered))

    def find(self, model_key: str) -> Pricing | None:
        """Resolve pricing for a model identifier, or None when no prefix matches."""
        normalized = normalize_model_key(model_key)
        for prefix, pricing in self.entries:
            if normalized.startswith(prefix):
                return pricing
        return None

    def __len__(self) -> int:
        return len(self.entries)


def normalize_model_key(model_key: str) -> str:
    """Lower-case a model key and strip vendor routing prefixes."""
    normalized = model_key.lower()
    for prefix in ROUTING_PREFIXES:
        if normalized.startswith(prefix):
            normalized = normalized[len(prefix) :]
    return normalized


def build_pricing_index(table: Mapping[str, Pricing]) -> PricingIndex:
    """Merge raw entries under original and normalized keys; original keys win collisions."""
    combined: dict[str, Pricing] = dict(table)
    for model_key, pricing in table.items():
        combined.setdefault(normalize_model_key(model_key), pricing)
    return PricingIndex.from_mapping(combined)
