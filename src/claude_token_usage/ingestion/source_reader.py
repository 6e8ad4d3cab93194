"""Discovery and line reading for Claude Code JSONL sources."""

from __future__ import annotations

from collections.abc import Iterable
import logging
import os
from pathlib import Path

import orjson

from .errors import DataDirectoryError, SourceReadError
from .normalizer import normalize_record
from .schemas import NormalizationContext, UsageEvent

LOGGER = logging.getLogger(__name__)
PROJECTS_DIR = "projects"
UNKNOWN = "unknown"
USAGE_MARKER = b'"usage"'


def discover_jsonl_files(data_dirs: Iterable[Path]) -> list[Path]:
    """Discover JSONL files under `<data_dir>/projects` in sorted path order, following symlinks."""
    files: list[Path] = []
    for data_dir in data_dirs:
        projects_root = data_dir / PROJECTS_DIR
        if not projects_root.exists():
            continue
        for dirpath, _dirnames, filenames in os.walk(projects_root, followlinks=True):
            for filename in filenames:
                path = Path(dirpath) / filename
                if path.suffix == ".jsonl" and path.is_file():
                    files.append(path)
    return sorted(files)


def validate_data_dirs(data_dirs: Iterable[Path]) -> None:
    """Fail when a configured data directory exists but cannot be scanned."""
    for data_dir in data_dirs:
        if not data_dir.exists():
            continue
        if not data_dir.is_dir():
            raise DataDirectoryError(f"Data directory is not a directory: {data_dir}")
        if not os.access(data_dir, os.R_OK | os.X_OK):
            raise DataDirectoryError(f"Data directory is not readable: {data_dir}")


def extract_project_name(path: Path) -> str:
    """Return the path component right after the innermost `projects` directory, or `unknown`."""
    parts = path.parts
    for index in range(len(parts) - 2, -1, -1):
        if parts[index] == PROJECTS_DIR:
            return parts[index + 1]
    return UNKNOWN


def session_hint_for(path: Path) -> str:
    """Return the fallback session id derived from the file name."""
    return path.stem or UNKNOWN


def read_events(
    path: Path,
    context: NormalizationContext,
    start_offset: int = 0,
    *,
    consume_partial_line: bool = True,
) -> tuple[int, list[UsageEvent]]:
    """Read and normalize usage events from `start_offset` to the end of a JSONL file.

    Args:
        path: JSONL file to read.
        context: Pricing and cost-mode context for normalization.
        start_offset: Byte offset to start reading from.
        consume_partial_line: When False, a final line without a trailing newline is
            left unread so that it can be re-read once its write has completed.

    Returns:
        The byte offset after the last consumed line, and the normalized events.

    Raises:
        SourceReadError: If the file cannot be opened or read.
    """
    project = extract_project_name(path)
    session_hint = session_hint_for(path)
    events: list[UsageEvent] = []
    position = start_offset

    try:
        with path.open("rb") as handle:
            handle.seek(start_offset)
            for raw_line in handle:
                if not raw_line.endswith(b"\n") and not consume_partial_line:
                    break
                position += len(raw_line)
                record = _decode_usage_line(raw_line)
                if record is None:
                    continue
                event = normalize_record(record, project, session_hint, context)
                if event is not None:
                    events.append(event)
    except OSError as exc:
        raise SourceReadError(f"Failed to read {path}: {exc}") from exc

    return position, events


def _decode_usage_line(raw_line: bytes) -> dict | None:
    """Decode one line when it may carry usage; malformed lines are skipped."""
    if USAGE_MARKER not in raw_line:
        return None
    try:
        payload = orjson.loads(raw_line)
    except orjson.JSONDecodeError:
        LOGGER.debug("Skipping malformed JSON line.")
        return None
    if not isinstance(payload, dict):
        return None
    return payload
