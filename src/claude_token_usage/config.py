"""Layered configuration: command-line flags over config file sections over built-in defaults."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date, datetime
from enum import Enum
import logging
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import orjson

from .ingestion.schemas import CostMode
from .paths import get_config_search_paths
from .stats.schemas import Order, WeekStart

LOGGER = logging.getLogger(__name__)

COMMAND_NAMES = ("daily", "weekly", "monthly", "sessions", "blocks", "statusline")
BOOL_KEYS = frozenset({"json", "compact", "breakdown", "offline", "instances", "live", "tui"})
INT_KEYS = frozenset({"token_limit", "recent_days", "session_length_hours", "refresh_seconds"})
STRING_KEYS = frozenset({"timezone", "locale", "project"})
DATE_KEYS = frozenset({"since", "until"})
ENUM_KEYS: dict[str, type[Enum]] = {"cost_mode": CostMode, "order": Order, "start_of_week": WeekStart}
ALLOWED_SECTION_KEYS = BOOL_KEYS | INT_KEYS | STRING_KEYS | DATE_KEYS | frozenset(ENUM_KEYS)


class ConfigError(ValueError):
    """Raised for unreadable, malformed, or invalid configuration values."""


@dataclass(frozen=True)
class SectionConfig:
    """One `defaults` or `commands.<name>` section; unset keys are None."""

    json: bool | None = None
    compact: bool | None = None
    breakdown: bool | None = None
    offline: bool | None = None
    instances: bool | None = None
    live: bool | None = None
    tui: bool | None = None
    cost_mode: CostMode | None = None
    order: Order | None = None
    start_of_week: WeekStart | None = None
    timezone: str | None = None
    locale: str | None = None
    project: str | None = None
    since: date | None = None
    until: date | None = None
    token_limit: int | None = None
    recent_days: int | None = None
    session_length_hours: int | None = None
    refresh_seconds: int | None = None


@dataclass(frozen=True)
class FileConfig:
    """Parsed config file."""

    defaults: SectionConfig = field(default_factory=SectionConfig)
    commands: dict[str, SectionConfig] = field(default_factory=dict)
    path: Path | None = None

    def lookup(self, command: str, key: str) -> Any:
        """Return the command section value for `key`, else the defaults value, else None."""
        section = self.commands.get(command)
        if section is not None and getattr(section, key) is not None:
            return getattr(section, key)
        return getattr(self.defaults, key)


@dataclass(frozen=True)
class ReportSettings:
    """Fully resolved options for one report run."""

    command: str
    json: bool = False
    compact: bool = False
    breakdown: bool = False
    offline: bool = False
    instances: bool = False
    live: bool = False
    tui: bool = False
    cost_mode: CostMode = CostMode.AUTO
    order: Order = Order.DESC
    start_of_week: WeekStart = WeekStart.MONDAY
    timezone: str = "UTC"
    locale: str = "en"
    project: str | None = None
    since: date | None = None
    until: date | None = None
    token_limit: int = 500_000
    recent_days: int = 3
    session_length_hours: int = 5
    refresh_seconds: int = 5


def load_file_config(path: Path | None = None) -> FileConfig:
    """Load the config file from an explicit path or the first default location found.

    Raises:
        ConfigError: If an explicit path is missing, or the file is unreadable or invalid.
    """
    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.is_file():
            raise ConfigError(f"Config file not found: {config_path}")
    else:
        config_path = next((candidate for candidate in get_config_search_paths() if candidate.is_file()), None)
        if config_path is None:
            return FileConfig()

    try:
        with config_path.open("rb") as handle:
            raw_config = orjson.loads(handle.read())
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {config_path}: {exc}") from exc
    except orjson.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in config file {config_path}: {exc}") from exc

    LOGGER.info("Loaded config from %s.", config_path)
    return parse_file_config(raw_config, config_path)


def parse_file_config(raw_config: Any, path: Path | None = None) -> FileConfig:
    """Validate a decoded config document.

    Raises:
        ConfigError: On unknown keys, wrong types, or invalid values.
    """
    if not isinstance(raw_config, dict):
        raise ConfigError("Config root must be an object")

    unknown_keys = set(raw_config) - {"defaults", "commands"}
    if unknown_keys:
        raise ConfigError(f"Unknown configuration keys: {sorted(unknown_keys)}")

    defaults = _parse_section(raw_config.get("defaults", {}), "defaults")

    commands_data = raw_config.get("commands", {})
    if not isinstance(commands_data, dict):
        raise ConfigError("'commands' must be an object")
    unknown_commands = set(commands_data) - set(COMMAND_NAMES)
    if unknown_commands:
        raise ConfigError(f"Unknown commands in config: {sorted(unknown_commands)}")
    commands = {name: _parse_section(data, f"commands.{name}") for name, data in commands_data.items()}

    return FileConfig(defaults=defaults, commands=commands, path=path)


def resolve_report_settings(
    file_config: FileConfig,
    command: str,
    cli_values: dict[str, Any],
) -> ReportSettings:
    """Resolve every option as flag, then command section, then defaults section, then built-in.

    Args:
        file_config: Parsed config file.
        command: Report command name used to pick the `commands.<name>` section.
        cli_values: Options given explicitly on the command line; missing or None means unset.
    """
    resolved: dict[str, Any] = {"command": command}
    for settings_field in fields(ReportSettings):
        key = settings_field.name
        if key == "command":
            continue
        value = cli_values.get(key)
        if value is None:
            value = file_config.lookup(command, key)
        if value is None:
            continue
        if key in ENUM_KEYS:
            value = ENUM_KEYS[key](value)
        resolved[key] = value
    return ReportSettings(**resolved)


def parse_timezone(raw: str | None) -> ZoneInfo:
    """Parse an IANA timezone name, defaulting to UTC.

    Raises:
        ConfigError: If the name is unknown.
    """
    if raw is None:
        return ZoneInfo("UTC")
    try:
        return ZoneInfo(raw)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"Invalid timezone: {raw}.") from exc


def parse_date(raw: str | None, option_name: str = "date") -> date | None:
    """Parse a strict `YYYY-MM-DD` value.

    Raises:
        ConfigError: If the value has any other shape.
    """
    if raw is None:
        return None
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError as exc:
        raise ConfigError(f"Invalid {option_name} value: {raw}. Expected YYYY-MM-DD.") from exc


def _parse_section(data: Any, path: str) -> SectionConfig:
    if not isinstance(data, dict):
        raise ConfigError(f"'{path}' must be an object")

    unknown_keys = set(data) - ALLOWED_SECTION_KEYS
    if unknown_keys:
        raise ConfigError(f"Unknown keys in {path}: {sorted(unknown_keys)}")

    values: dict[str, Any] = {}
    for key, value in data.items():
        key_path = f"{path}.{key}"
        if value is None:
            continue
        if key in BOOL_KEYS:
            if not isinstance(value, bool):
                raise ConfigError(f"'{key_path}' must be a boolean")
            values[key] = value
        elif key in INT_KEYS:
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ConfigError(f"'{key_path}' must be a non-negative integer")
            values[key] = value
        elif key in STRING_KEYS:
            if not isinstance(value, str):
                raise ConfigError(f"'{key_path}' must be a string")
            if key == "timezone":
                parse_timezone(value)
            values[key] = value
        elif key in DATE_KEYS:
            if not isinstance(value, str):
                raise ConfigError(f"'{key_path}' must be a YYYY-MM-DD string")
            values[key] = parse_date(value, key_path)
        else:
            enum_type = ENUM_KEYS[key]
            try:
                values[key] = enum_type(value)
            except ValueError as exc:
                valid_values = [item.value for item in enum_type]
                raise ConfigError(f"'{key_path}' must be one of: {valid_values}") from exc
    return SectionConfig(**values)
