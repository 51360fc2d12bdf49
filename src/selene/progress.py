"""Progress callbacks for long running operations.

Listeners are handed to the objects that do the work; there is no process
wide registry.
"""

import logging
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)


class ProgressListener:
    """Receives progress of a named task. Every hook is optional."""

    def on_start(self, name: str, total: Optional[int] = None):
        pass

    def on_progress(self, name: str, done: int):
        pass

    def on_end(self, name: str):
        pass


class LoggingProgressListener(ProgressListener):
    def __init__(self, level: int = logging.DEBUG):
        self.level = level
        self._totals = {}

    def on_start(self, name, total=None):
        self._totals[name] = total
        logger.log(self.level, "%s: started (%s items)", name, "?" if total is None else total)

    def on_progress(self, name, done):
        total = self._totals.get(name)
        logger.log(self.level, "%s: %d/%s", name, done, "?" if total is None else total)

    def on_end(self, name):
        self._totals.pop(name, None)
        logger.log(self.level, "%s: complete", name)


class ProgressNotifier:
    """Fans events out to a list of listeners."""

    def __init__(self, listeners: Optional[Iterable[ProgressListener]] = None):
        self.listeners: List[ProgressListener] = list(listeners or [])

    def add(self, listener: ProgressListener):
        self.listeners.append(listener)

    def remove(self, listener: ProgressListener):
        self.listeners.remove(listener)

    def start(self, name: str, total: Optional[int] = None):
        for listener in self.listeners:
            listener.on_start(name, total)

    def progress(self, name: str, done: int):
        for listener in self.listeners:
            listener.on_progress(name, done)

    def end(self, name: str):
        for listener in self.listeners:
            listener.on_end(name)
