"""Batch loading of usage events from Claude Code JSONL files."""

from __future__ import annotations

from concurrent.futures import ProcessPoolExecutor
import logging
import os
from pathlib import Path

from .errors import SourceReadError
from .schemas import LoadResult, NormalizationContext, UsageEvent
from .source_reader import read_events

LOGGER = logging.getLogger(__name__)

# Set once per worker process by `_init_worker`.
_WORKER_CONTEXT = NormalizationContext()


class EventLoader:
    """Parses every file independently and concatenates the resulting events."""

    def __init__(self, context: NormalizationContext, max_workers: int | None = None) -> None:
        self._context = context
        self._max_workers = max_workers if max_workers is not None else (os.cpu_count() or 1)

    def load(self, files: list[Path]) -> LoadResult:
        """Load usage events from all files; unreadable files are skipped and reported."""
        workers = min(self._max_workers, len(files))
        if workers <= 1:
            outcomes = [_load_file(path, self._context) for path in files]
        else:
            chunksize = max(1, len(files) // (workers * 4))
            with ProcessPoolExecutor(max_workers=workers, initializer=_init_worker, initargs=(self._context,)) as pool:
                outcomes = list(pool.map(_load_in_worker, files, chunksize=chunksize))

        events: list[UsageEvent] = []
        failed_files: list[str] = []
        for path, file_events, error in outcomes:
            if error is not None:
                failed_files.append(str(path))
                LOGGER.warning("Skipping unreadable file %s: %s", path, error)
                continue
            events.extend(file_events)

        LOGGER.info(
            "Loaded %d usage events from %d files (%d failed).",
            len(events),
            len(files),
            len(failed_files),
        )
        return LoadResult(events=events, files_scanned=len(files), failed_files=failed_files)


def _load_file(path: Path, context: NormalizationContext) -> tuple[Path, list[UsageEvent], str | None]:
    """Load one file in a worker; read errors are returned rather than raised."""
    try:
        _, events = read_events(path, context)
    except SourceReadError as exc:
        return path, [], str(exc)
    return path, events, None


def _init_worker(context: NormalizationContext) -> None:
    """Receive the normalization context once instead of with every file."""
    global _WORKER_CONTEXT
    _WORKER_CONTEXT = context


def _load_in_worker(path: Path) -> tuple[Path, list[UsageEvent], str | None]:
    return _load_file(path, _WORKER_CONTEXT)
