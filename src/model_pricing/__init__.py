"""Shared model pricing utilities."""

from .index import Pricing, PricingIndex, build_pricing_index, normalize_model_key
from .price_spec import (
    DEFAULT_PRICE_CACHE_PATH,
    DEFAULT_PRICE_SPEC_URL,
    PriceSpecConfig,
    get_price_spec,
    load_bundled_pricing,
    load_pricing_table,
    pricing_from_spec_entry,
)

__all__ = [
    "DEFAULT_PRICE_CACHE_PATH",
    "DEFAULT_PRICE_SPEC_URL",
    "PriceSpecConfig",
    "Pricing",
    "PricingIndex",
    "build_pricing_index",
    "get_price_spec",
    "load_bundled_pricing",
    "load_pricing_table",
    "normalize_model_key",
    "pricing_from_spec_entry",
]
