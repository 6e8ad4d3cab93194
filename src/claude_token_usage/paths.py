"""Path utilities for claude-token-usage."""

from __future__ import annotations

import os
from pathlib import Path

APP_DIR_NAME = "claude-token-usage"
LOCAL_CONFIG_FILENAME = "claude-token-usage.json"
CLAUDE_CONFIG_DIR_ENV = "CLAUDE_CONFIG_DIR"


def get_default_config_path() -> Path:
    """Return the user config path following XDG config directory conventions."""
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config_home:
        base_config_dir = Path(xdg_config_home).expanduser()
    else:
        base_config_dir = Path("~/.config").expanduser()
    return base_config_dir / APP_DIR_NAME / "config.json"


def get_config_search_paths() -> list[Path]:
    """Return config files to try in order when no explicit path is given."""
    return [Path.cwd() / LOCAL_CONFIG_FILENAME, get_default_config_path()]


def get_default_data_dirs() -> list[Path]:
    """Return the standard Claude Code data directories."""
    return [Path("~/.config/claude").expanduser(), Path("~/.claude").expanduser()]


def resolve_data_dirs(cli_dirs: list[Path] | None = None) -> list[Path]:
    """Resolve data directories: explicit flags, else `CLAUDE_CONFIG_DIR`, else the defaults.

    `CLAUDE_CONFIG_DIR` may hold several comma-separated directories.
    """
    if cli_dirs:
        return [Path(path).expanduser() for path in cli_dirs]

    env_value = os.environ.get(CLAUDE_CONFIG_DIR_ENV, "")
    env_dirs = [Path(item.strip()).expanduser() for item in env_value.split(",") if item.strip()]
    if env_dirs:
        return env_dirs
    return get_default_data_dirs()
