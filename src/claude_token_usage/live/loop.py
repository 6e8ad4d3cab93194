"""Refresh loop and file-change notification for live mode."""

from __future__ import annotations

from collections.abc import Callable, Iterable
import logging
from pathlib import Path
import queue
import threading
from typing import Protocol

from ..ingestion.schemas import UsageEvent
from ..ingestion.source_reader import discover_jsonl_files

LOGGER = logging.getLogger(__name__)
MIN_REFRESH_SECONDS = 0.1
DEFAULT_POLL_SECONDS = 1.0

_WAKE = "wake"
_STOP = "stop"

FileSignature = dict[Path, tuple[int, int]]


class RefreshableSource(Protocol):
    @property
    def events(self) -> list[UsageEvent]: ...

    def refresh(self) -> int: ...


class LiveRefreshLoop:
    """Runs refresh, then `on_tick`, then waits for the timer or a notification.

    Every wakeup source funnels into one queue so the loop never busy-waits. All
    refreshing and rendering happens on the thread that calls `run`; `notify` and
    `stop` are safe to call from any thread or a signal handler.
    """

    def __init__(
        self,
        source: RefreshableSource,
        on_tick: Callable[[list[UsageEvent]], None],
        refresh_seconds: float = 5,
        max_cycles: int | None = None,
    ) -> None:
        self._source = source
        self._on_tick = on_tick
        self._refresh_seconds = max(float(refresh_seconds), MIN_REFRESH_SECONDS)
        self._max_cycles = max_cycles
        self._wakeups: queue.Queue[str] = queue.Queue()
        self._stop_requested = threading.Event()

    @property
    def stopped(self) -> bool:
        """Return True once a stop was requested."""
        return self._stop_requested.is_set()

    def notify(self) -> None:
        """Wake the loop early; several pending notifications count as one."""
        self._wakeups.put_nowait(_WAKE)

    def stop(self) -> None:
        """Ask the loop to exit after the current cycle."""
        self._stop_requested.set()
        self._wakeups.put_nowait(_STOP)

    def run(self) -> int:
        """Run cycles until stopped or `max_cycles` is reached.

        Returns:
            Number of completed cycles.

        Raises:
            LiveRefreshError: If a refresh cycle fails; the loop does not continue.
        """
        cycles = 0
        while not self._stop_requested.is_set():
            self._source.refresh()
            self._on_tick(self._source.events)
            cycles += 1
            if self._max_cycles is not None and cycles >= self._max_cycles:
                break
            self._wait()
        LOGGER.info("Live loop finished after %d cycles.", cycles)
        return cycles

    def _wait(self) -> None:
        try:
            self._wakeups.get(timeout=self._refresh_seconds)
        except queue.Empty:
            return
        while True:
            try:
                self._wakeups.get_nowait()
            except queue.Empty:
                return


class FileChangeNotifier(threading.Thread):
    """Daemon thread that polls JSONL file sizes and mtimes and calls back on change.

    Notifications are advisory; the refresh loop reconciles against real file lengths.
    """

    def __init__(
        self,
        data_dirs: Iterable[Path],
        on_change: Callable[[], None],
        poll_seconds: float = DEFAULT_POLL_SECONDS,
    ) -> None:
        super().__init__(name="jsonl-change-notifier", daemon=True)
        self._data_dirs = list(data_dirs)
        self._on_change = on_change
        self._poll_seconds = poll_seconds
        self._halt = threading.Event()
        self._signature = self.snapshot()

    def snapshot(self) -> FileSignature:
        """Return the `(size, mtime_ns)` of every discovered JSONL file."""
        signature: FileSignature = {}
        for path in discover_jsonl_files(self._data_dirs):
            try:
                stat_result = path.stat()
            except OSError:
                continue
            signature[path] = (stat_result.st_size, stat_result.st_mtime_ns)
        return signature

    def check(self) -> bool:
        """Compare against the previous snapshot and call back when anything changed."""
        current = self.snapshot()
        if current == self._signature:
            return False
        self._signature = current
        self._on_change()
        return True

    def run(self) -> None:
        while not self._halt.wait(self._poll_seconds):
            try:
                self.check()
            except OSError as exc:
                LOGGER.debug("Change polling failed: %s", exc)

    def stop(self) -> None:
        """Stop polling and wait for the thread to exit."""
        self._halt.set()
        if self.is_alive():
            self.join(timeout=self._poll_seconds * 2)
