"""Price specification fetch and cache helpers."""

from __future__ import annotations

from dataclasses import dataclass
from importlib import resources
import logging
import os
from pathlib import Path
import time
from typing import Any
import urllib.request

import orjson

from .index import Pricing

LOGGER = logging.getLogger(__name__)
DEFAULT_PRICE_SPEC_URL = (
    "https://raw.githubusercontent.com/BerriAI/litellm/refs/heads/main/model_prices_and_context_window.json"
)
FETCH_TIMEOUT_SECONDS = 5
BUNDLED_PRICING_RESOURCE = "bundled_pricing.json"
_CACHE_PATH_UNSET = object()


def _default_price_cache_path() -> Path:
    """Return the default cache path following XDG conventions on Linux."""
    xdg_cache_home = os.environ.get("XDG_CACHE_HOME")
    if xdg_cache_home:
        base_cache_dir = Path(xdg_cache_home).expanduser()
    else:
        base_cache_dir = Path("~/.cache").expanduser()
    return base_cache_dir / "claude-token-usage" / "price_cache.json"


DEFAULT_PRICE_CACHE_PATH = _default_price_cache_path()


@dataclass(frozen=True)
class PriceSpecConfig:
    """Configuration for fetching and caching model pricing data.

    Attributes:
        url: Remote JSON endpoint that returns pricing metadata.
        update_interval_seconds: Minimum refresh interval for cache updates.
        cache_path: Cache location.
            - `None` disables cache reads/writes.
            - `Path` uses that explicit cache location.
            - Omitted uses `PRICE_CACHE_PATH` env var when present, otherwise
              `DEFAULT_PRICE_CACHE_PATH`.
        offline: Skip remote and cached data and use the bundled table only.
    """

    url: str = DEFAULT_PRICE_SPEC_URL
    update_interval_seconds: int = 86400
    cache_path: Path | None | object = _CACHE_PATH_UNSET
    offline: bool = False


def _fetch_from_url(url: str) -> dict[str, Any]:
    """Fetch the latest price specification from a URL."""
    try:
        with urllib.request.urlopen(url, timeout=FETCH_TIMEOUT_SECONDS) as response:
            if response.status != 200:
                raise RuntimeError(f"Failed to fetch price spec: HTTP {response.status}")
            return orjson.loads(response.read())
    except Exception as exc:  # pragma: no cover - network failures vary by runtime.
        raise RuntimeError(f"Failed to fetch price spec from {url}") from exc


def _resolve_cache_path(cache_path: Path | str | None | object) -> Path | None:
    """Resolve the effective cache path with env/default compatibility behavior."""
    if cache_path is _CACHE_PATH_UNSET:
        env_cache_path = os.environ.get("PRICE_CACHE_PATH")
        return Path(env_cache_path).expanduser() if env_cache_path else DEFAULT_PRICE_CACHE_PATH
    if cache_path is None:
        return None
    assert isinstance(cache_path, (Path, str)), f"Invalid cache_path: {cache_path}"
    return Path(cache_path).expanduser()


def get_price_spec(
    update_interval_seconds: int = 86400,
    *,
    cache_path: Path | str | None | object = _CACHE_PATH_UNSET,
    url: str = DEFAULT_PRICE_SPEC_URL,
) -> dict[str, Any]:
    """Fetch and cache model pricing data.

    A cache younger than `update_interval_seconds` is returned without fetching. An older
    cache is only read when the fetch fails; otherwise it is overwritten with fresh data.

    Args:
        update_interval_seconds: Minimum number of seconds between cache refreshes.
        cache_path: Cache file path configuration.
            - Omitted: use `PRICE_CACHE_PATH` env var if set, else default cache path.
            - `None`: disable cache.
            - `Path` or `str`: use explicit path.
        url: URL to fetch pricing JSON from.

    Returns:
        Model pricing data keyed by model code.

    Raises:
        RuntimeError: If no usable fresh/stale cache exists and remote fetch fails.
    """
    effective_cache_path = _resolve_cache_path(cache_path)

    if effective_cache_path is None:
        return _fetch_from_url(url)

    if effective_cache_path.exists():
        mtime = effective_cache_path.stat().st_mtime
        if time.time() - mtime < update_interval_seconds:
            try:
                with effective_cache_path.open("rb") as handle:
                    return orjson.loads(handle.read())
            except Exception:
                LOGGER.warning("Failed reading fresh cache at %s; refetching.", effective_cache_path)

    try:
        json_data = _fetch_from_url(url)
    except Exception as exc:
        if effective_cache_path.exists():
            try:
                with effective_cache_path.open("rb") as handle:
                    return orjson.loads(handle.read())
            except Exception:
                LOGGER.warning("Failed reading stale cache at %s after fetch error.", effective_cache_path)
        raise RuntimeError(f"Failed to fetch price spec from {url}") from exc

    try:
        effective_cache_path.parent.mkdir(parents=True, exist_ok=True)
        with effective_cache_path.open("wb") as handle:
            handle.write(orjson.dumps(json_data))
    except Exception:
        LOGGER.warning("Failed writing price cache at %s.", effective_cache_path)

    return json_data


def pricing_from_spec_entry(entry: Any) -> Pricing | None:
    """Convert one per-token LiteLLM entry into per-million `Pricing`.

    Entries without numeric input and output rates are not priceable and yield `None`.
    Missing cache rates default to zero.
    """
    if not isinstance(entry, dict):
        return None
    input_cost = _as_rate(entry.get("input_cost_per_token"))
    output_cost = _as_rate(entry.get("output_cost_per_token"))
    if input_cost is None or output_cost is None:
        return None
    cache_create_cost = _as_rate(entry.get("cache_creation_input_token_cost")) or 0.0
    cache_read_cost = _as_rate(entry.get("cache_read_input_token_cost")) or 0.0
    return Pricing(
        input_per_million=input_cost * 1_000_000,
        output_per_million=output_cost * 1_000_000,
        cache_create_per_million=cache_create_cost * 1_000_000,
        cache_read_per_million=cache_read_cost * 1_000_000,
    )


def convert_price_spec(price_spec: dict[str, Any]) -> dict[str, Pricing]:
    """Convert a raw LiteLLM price spec into a model-keyed `Pricing` table."""
    table: dict[str, Pricing] = {}
    for model_key, entry in price_spec.items():
        pricing = pricing_from_spec_entry(entry)
        if pricing is not None:
            table[model_key] = pricing
    return table


def load_bundled_pricing() -> dict[str, Pricing]:
    """Load the pricing table shipped with the package."""
    raw = resources.files(__package__).joinpath(BUNDLED_PRICING_RESOURCE).read_bytes()
    payload = orjson.loads(raw)
    table: dict[str, Pricing] = {}
    for model_key, rates in payload.items():
        table[model_key] = Pricing(
            input_per_million=float(rates["input_per_million"]),
            output_per_million=float(rates["output_per_million"]),
            cache_create_per_million=float(rates.get("cache_create_per_million", 0.0)),
            cache_read_per_million=float(rates.get("cache_read_per_million", 0.0)),
        )
    return table


def load_pricing_table(config: PriceSpecConfig | None = None) -> dict[str, Pricing]:
    """Return the merged pricing table: remote or cached data, else the bundled fallback.

    Never raises for sourcing failures; they are logged and the bundled table is used.
    """
    config = config or PriceSpecConfig()
    if config.offline:
        return load_bundled_pricing()

    try:
        price_spec = get_price_spec(
            config.update_interval_seconds,
            cache_path=config.cache_path,
            url=config.url,
        )
    except RuntimeError as exc:
        LOGGER.warning("%s; falling back to bundled pricing.", exc)
        return load_bundled_pricing()

    table = convert_price_spec(price_spec) if isinstance(price_spec, dict) else {}
    if not table:
        LOGGER.warning("Price spec from %s contained no usable entries; falling back to bundled pricing.", config.url)
        return load_bundled_pricing()
    return table


def _as_rate(value: Any) -> float | None:
    """Return a numeric rate, or None for missing and non-numeric values."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)
