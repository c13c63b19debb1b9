"""Debounced change notifications feeding the analyzer.

Repeated events for one path within the debounce window collapse into a
single invalidation (or graph rebuild, for module files).
"""
import asyncio
from typing import Dict, Optional, Set

from .workspace import is_excluded_path
from ..utils.logger import OutputLog

CHANGE_KINDS = frozenset({'created', 'changed', 'deleted'})
WATCHED_SUFFIXES = ('.ts', '.tsx')


class FileWatcher:
    """Per-path debouncer in front of NestAnalyzer.handle_file_change."""

    COMPONENT = 'FileWatcher'

    def __init__(self, analyzer, log: Optional[OutputLog] = None, debounce_seconds: float = 0.3):
        """Initialize the watcher.

        Args:
            analyzer: Object with an async handle_file_change(path, event)
            log: Output log (defaults to the analyzer's)
            debounce_seconds: Quiet period before a change is processed
        """
        self.analyzer = analyzer
        self.log = log if log is not None else analyzer.log
        self.debounce_seconds = debounce_seconds
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> Set[str]:
        """Paths with a scheduled, not yet processed change."""
        return set(self._timers)

    def notify(self, path: str, event: str = 'changed'):
        """Record a change event. Must be called on the event loop's thread.

        Raises:
            ValueError: If the event kind is unknown
        """
        if event not in CHANGE_KINDS:
            raise ValueError(f"Unknown change kind: {event}")
        if is_excluded_path(path) or not path.endswith(WATCHED_SUFFIXES):
            return

        existing = self._timers.pop(path, None)
        if existing is not None:
            existing.cancel()

        loop = asyncio.get_running_loop()
        self._timers[path] = loop.call_later(self.debounce_seconds, self._fire, path, event)

    def _fire(self, path: str, event: str):
        self._timers.pop(path, None)
        task = asyncio.get_running_loop().create_task(self._process(path, event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _process(self, path: str, event: str):
        self.log.append_line(self.COMPONENT, f"File {event}: {path}")
        try:
            await self.analyzer.handle_file_change(path, event)
        except Exception as e:
            # Nobody awaits this task; the next change retries
            self.log.append_line(self.COMPONENT, f"Failed to apply change to {path}: {e}")

    async def drain(self):
        """Wait until every scheduled change has been processed."""
        while self._timers or self._tasks:
            if self._tasks:
                await asyncio.gather(*list(self._tasks))
            else:
                await asyncio.sleep(self.debounce_seconds / 2 or 0.001)

    def dispose(self):
        """Cancel every pending change."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self.log.append_line(self.COMPONENT, "File watcher disposed")
