"""Incremental tail of growing Claude Code JSONL files."""

from __future__ import annotations

from collections.abc import Iterable
import logging
from pathlib import Path

from ..ingestion.errors import LiveRefreshError, SourceReadError
from ..ingestion.schemas import NormalizationContext, UsageEvent
from ..ingestion.source_reader import discover_jsonl_files, read_events

LOGGER = logging.getLogger(__name__)


class LiveTailSource:
    """Tracks per-file byte offsets and accumulates newly appended usage events.

    Offsets always point just past the last complete line consumed, so a line whose
    write is still in flight is re-read in full on a later refresh. The event list is
    append-only; events from a truncated file's old content are never retracted.
    """

    def __init__(
        self,
        data_dirs: Iterable[Path],
        context: NormalizationContext,
        offsets: dict[Path, int] | None = None,
        events: Iterable[UsageEvent] = (),
    ) -> None:
        self._data_dirs = list(data_dirs)
        self._context = context
        self._offsets: dict[Path, int] = dict(offsets or {})
        self._events: list[UsageEvent] = list(events)

    @classmethod
    def from_existing(
        cls,
        data_dirs: Iterable[Path],
        files: Iterable[Path],
        events: Iterable[UsageEvent],
        context: NormalizationContext,
    ) -> "LiveTailSource":
        """Start from an already-loaded event set, marking each file's current length as read."""
        offsets: dict[Path, int] = {}
        for path in files:
            try:
                offsets[path] = path.stat().st_size
            except OSError as exc:
                LOGGER.warning("Could not stat %s; it will be read from the start: %s", path, exc)
        return cls(data_dirs, context, offsets=offsets, events=events)

    @property
    def events(self) -> list[UsageEvent]:
        """Return every event seen so far."""
        return self._events

    @property
    def offsets(self) -> dict[Path, int]:
        """Return a copy of the per-file read offsets."""
        return dict(self._offsets)

    def refresh(self) -> int:
        """Read newly appended complete lines from every discovered file.

        Files seen for the first time are read from the start in the same refresh.

        Returns:
            Number of events appended by this refresh.

        Raises:
            LiveRefreshError: If a tracked file cannot be stat'ed or read.
        """
        added = 0
        for path in discover_jsonl_files(self._data_dirs):
            previous_offset = self._offsets.get(path, 0)
            try:
                current_length = path.stat().st_size
            except OSError as exc:
                raise LiveRefreshError(f"Failed to stat {path}: {exc}") from exc

            start = previous_offset
            if current_length < previous_offset:
                LOGGER.info("%s shrank from %d to %d bytes; re-reading from the start.", path, previous_offset, current_length)
                start = 0
            if current_length == start:
                self._offsets[path] = start
                continue

            try:
                new_offset, new_events = read_events(path, self._context, start, consume_partial_line=False)
            except SourceReadError as exc:
                raise LiveRefreshError(str(exc)) from exc

            self._offsets[path] = new_offset
            self._events.extend(new_events)
            added += len(new_events)

        if added:
            LOGGER.info("Live refresh appended %d usage events.", added)
        return added
