"""Tests for layered configuration loading and validation."""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Any

import orjson
import pytest

from claude_token_usage.config import (
    ConfigError,
    FileConfig,
    load_file_config,
    parse_date,
    parse_file_config,
    parse_timezone,
    resolve_report_settings,
)
from claude_token_usage.ingestion.schemas import CostMode
from claude_token_usage.stats.schemas import Order, WeekStart


def _write_config(path: Path, payload: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(orjson.dumps(payload))
    return path


def test_builtin_defaults_apply_without_config() -> None:
    """With no flags and no file, built-in defaults are used."""
    settings = resolve_report_settings(FileConfig(), "daily", {})

    assert settings.timezone == "UTC"
    assert settings.locale == "en"
    assert settings.cost_mode is CostMode.AUTO
    assert settings.order is Order.DESC
    assert settings.start_of_week is WeekStart.MONDAY
    assert (settings.token_limit, settings.recent_days, settings.session_length_hours) == (500_000, 3, 5)
    assert settings.refresh_seconds == 5
    assert not settings.json and not settings.instances


def test_flags_override_command_section_over_defaults_section() -> None:
    """Resolution order is flag, then `commands.<name>`, then `defaults`."""
    file_config = parse_file_config(
        {
            "defaults": {"timezone": "Asia/Tokyo", "order": "asc", "breakdown": True},
            "commands": {"weekly": {"order": "desc", "start_of_week": "sunday"}},
        }
    )

    weekly = resolve_report_settings(file_config, "weekly", {})
    daily = resolve_report_settings(file_config, "daily", {"timezone": "UTC"})

    assert weekly.order is Order.DESC
    assert weekly.start_of_week is WeekStart.SUNDAY
    assert weekly.timezone == "Asia/Tokyo"
    assert weekly.breakdown is True
    assert daily.order is Order.ASC
    assert daily.timezone == "UTC"


def test_false_flag_overrides_true_config_and_none_falls_through() -> None:
    """An explicit False beats the file; None leaves the option to the file."""
    file_config = parse_file_config({"defaults": {"json": True}, "commands": {"daily": {"instances": True}}})

    overridden = resolve_report_settings(file_config, "daily", {"json": False, "instances": False})
    unset = resolve_report_settings(file_config, "daily", {"json": None, "instances": None})

    assert overridden.json is False
    assert overridden.instances is False
    assert unset.json is True
    assert unset.instances is True


def test_flag_values_given_as_strings_are_coerced_to_enums() -> None:
    """Raw choice strings from the command line become enum members."""
    settings = resolve_report_settings(FileConfig(), "daily", {"cost_mode": "calculate", "order": "asc"})

    assert settings.cost_mode is CostMode.CALCULATE
    assert settings.order is Order.ASC


def test_parse_file_config_parses_dates_and_ints() -> None:
    """Date strings become dates and integers are kept."""
    file_config = parse_file_config({"commands": {"blocks": {"since": "2024-12-01", "token_limit": 0}}})

    settings = resolve_report_settings(file_config, "blocks", {})

    assert settings.since == date(2024, 12, 1)
    assert settings.token_limit == 0


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"unknown": {}},
        {"defaults": {"colour": True}},
        {"defaults": {"json": "yes"}},
        {"defaults": {"recent_days": -1}},
        {"defaults": {"recent_days": True}},
        {"defaults": {"order": "sideways"}},
        {"defaults": {"timezone": "Mars/Olympus"}},
        {"defaults": {"since": "12/01/2024"}},
        {"commands": {"yearly": {}}},
        {"commands": {"daily": []}},
    ],
)
def test_parse_file_config_rejects_invalid_documents(payload: Any) -> None:
    """Strict validation rejects unknown keys, wrong types, and bad values."""
    with pytest.raises(ConfigError):
        parse_file_config(payload)


def test_load_file_config_reads_explicit_path(tmp_path: Path) -> None:
    """An explicit config path is loaded and remembered."""
    config_path = _write_config(tmp_path / "custom.json", {"defaults": {"locale": "de"}})

    file_config = load_file_config(config_path)

    assert file_config.defaults.locale == "de"
    assert file_config.path == config_path


def test_load_file_config_errors_for_missing_explicit_path_or_bad_json(tmp_path: Path) -> None:
    """A missing explicit file or malformed JSON is a config error."""
    broken = tmp_path / "broken.json"
    broken.write_text("{not json")

    with pytest.raises(ConfigError):
        load_file_config(tmp_path / "missing.json")
    with pytest.raises(ConfigError):
        load_file_config(broken)


def test_load_file_config_searches_local_then_xdg(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Without an explicit path, the working-directory file wins over the XDG file."""
    workdir = tmp_path / "work"
    workdir.mkdir()
    xdg_home = tmp_path / "xdg"
    _write_config(xdg_home / "claude-token-usage" / "config.json", {"defaults": {"locale": "ja"}})
    monkeypatch.chdir(workdir)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg_home))

    assert load_file_config().defaults.locale == "ja"

    _write_config(workdir / "claude-token-usage.json", {"defaults": {"locale": "fr"}})
    assert load_file_config().defaults.locale == "fr"


def test_load_file_config_without_any_file_is_empty(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """No default file means no configuration."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))

    assert load_file_config() == FileConfig()


def test_parse_timezone_and_date() -> None:
    """Timezones must be IANA names and dates strict `YYYY-MM-DD`."""
    assert parse_timezone(None).key == "UTC"
    assert parse_timezone("Europe/Paris").key == "Europe/Paris"
    assert parse_date("2024-02-29") == date(2024, 2, 29)
    assert parse_date(None) is None
    with pytest.raises(ConfigError):
        parse_timezone("Not/AZone")
    with pytest.raises(ConfigError):
        parse_date("2024-2-30")
