"""Live tailing of Claude Code usage logs."""

from .loop import FileChangeNotifier, LiveRefreshLoop
from .source import LiveTailSource

__all__ = ["FileChangeNotifier", "LiveRefreshLoop", "LiveTailSource"]
