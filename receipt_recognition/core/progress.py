"""
Per-run progress reporting.

Each recognition run owns one ProgressReporter and hands it (or a sub-range of
it) down to every stage, so concurrent runs never share a handler.
"""

import queue
import threading
from typing import Callable, List, Optional

from .logger import get_logger
from .models import ProgressEvent

logger = get_logger("progress")

ProgressCallback = Callable[[int, str], None]


class ProgressReporter:
    """
    Collects (percent, stage) events for one run.

    Events are recorded in `events`, forwarded to an optional callback and/or
    put on an optional queue for consumers on another thread.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None,
                 sink: Optional[queue.Queue] = None):
        self.callback = callback
        self.sink = sink
        self.events: List[ProgressEvent] = []
        self._lock = threading.Lock()
        self._start = 0.0
        self._end = 100.0
        self._root = self

    def span(self, start: float, end: float) -> "ProgressReporter":
        """A child reporter whose 0-100 maps onto [start, end] of this one."""
        child = ProgressReporter.__new__(ProgressReporter)
        child._root = self._root
        child._start = self._map(start)
        child._end = self._map(end)
        return child

    def _map(self, percent: float) -> float:
        percent = min(100.0, max(0.0, float(percent)))
        return self._start + (self._end - self._start) * percent / 100.0

    def report(self, percent: float, stage: str):
        self._root._emit(ProgressEvent(int(round(self._map(percent))), str(getattr(stage, "value", stage))))

    def _emit(self, event: ProgressEvent):
        with self._lock:
            self.events.append(event)
        if self.sink is not None:
            self.sink.put(event)
        if self.callback is not None:
            self.callback(event.percent, event.stage)

    @property
    def last(self) -> Optional[ProgressEvent]:
        events = self._root.events
        return events[-1] if events else None
