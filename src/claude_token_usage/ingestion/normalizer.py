"""Normalization of raw Claude Code log records into usage events."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from model_pricing import Pricing, PricingIndex

from .schemas import CostMode, NormalizationContext, UsageEvent

TOKENS_PER_MILLION = 1_000_000


def normalize_record(
    record: dict[str, Any],
    project_hint: str,
    session_hint: str,
    context: NormalizationContext,
) -> UsageEvent | None:
    """Convert one decoded JSON record into a `UsageEvent`.

    Returns None for records that do not carry usage: an unparseable timestamp,
    no usage object, or token/cost fields of the wrong type.
    """
    timestamp = _parse_timestamp(record.get("timestamp"))
    if timestamp is None:
        return None

    message = record.get("message")
    if message is None:
        message = {}
    elif not isinstance(message, dict):
        return None

    usage = message.get("usage")
    if usage is None:
        usage = record.get("usage")
    if not isinstance(usage, dict):
        return None

    input_tokens = _token_count(usage.get("input_tokens"))
    output_tokens = _token_count(usage.get("output_tokens"))
    cache_creation_tokens = _token_count(usage.get("cache_creation_input_tokens"))
    cache_read_tokens = _token_count(usage.get("cache_read_input_tokens"))
    if None in (input_tokens, output_tokens, cache_creation_tokens, cache_read_tokens):
        return None

    embedded_cost = record.get("costUSD")
    if embedded_cost is not None and (isinstance(embedded_cost, bool) or not isinstance(embedded_cost, (int, float))):
        return None

    model = message.get("model")
    if not isinstance(model, str):
        model = None

    session_id = record.get("sessionId")
    if not isinstance(session_id, str):
        session_id = session_hint

    if context.cost_mode is CostMode.CALCULATE or embedded_cost is None:
        cost_usd = calculate_cost(
            context.pricing_index,
            model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cache_creation_tokens=cache_creation_tokens,
            cache_read_tokens=cache_read_tokens,
        )
    else:
        cost_usd = float(embedded_cost)

    return UsageEvent(
        timestamp=timestamp,
        project=project_hint,
        session_id=session_id,
        model=model,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        cache_creation_tokens=cache_creation_tokens,
        cache_read_tokens=cache_read_tokens,
        cost_usd=cost_usd,
    )


def calculate_cost(
    pricing_index: PricingIndex,
    model: str | None,
    *,
    input_tokens: int,
    output_tokens: int,
    cache_creation_tokens: int,
    cache_read_tokens: int,
) -> float:
    """Calculate USD cost from token counts; unknown or missing models cost zero."""
    if model is None:
        return 0.0
    pricing = pricing_index.find(model)
    if pricing is None:
        return 0.0
    return cost_from_pricing(
        pricing,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        cache_creation_tokens=cache_creation_tokens,
        cache_read_tokens=cache_read_tokens,
    )


def cost_from_pricing(
    pricing: Pricing,
    *,
    input_tokens: int,
    output_tokens: int,
    cache_creation_tokens: int,
    cache_read_tokens: int,
) -> float:
    """Apply per-million rates; cache tokens are billed at the input rate plus their own rate."""
    priced_input_tokens = input_tokens + cache_creation_tokens + cache_read_tokens
    input_cost = (
        (priced_input_tokens / TOKENS_PER_MILLION) * pricing.input_per_million
        + (cache_creation_tokens / TOKENS_PER_MILLION) * pricing.cache_create_per_million
        + (cache_read_tokens / TOKENS_PER_MILLION) * pricing.cache_read_per_million
    )
    output_cost = (output_tokens / TOKENS_PER_MILLION) * pricing.output_per_million
    return input_cost + output_cost


def _parse_timestamp(value: Any) -> datetime | None:
    """Parse an RFC3339 timestamp with an explicit offset into a UTC datetime."""
    if not isinstance(value, str) or not value:
        return None
    normalized = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return None
    return parsed.astimezone(UTC)


def _token_count(value: Any) -> int | None:
    """Return a non-negative token count; absent means zero, invalid means None."""
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return None
    return value
