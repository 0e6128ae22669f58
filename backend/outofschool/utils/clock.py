"""Strictly increasing UTC timestamps for ledger entries."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

_TICK = timedelta(microseconds=1)


class MonotonicClock:
    """Return UTC datetimes that never repeat or go backwards.

    Wall-clock readings equal to or behind the previous value are bumped
    one microsecond past it.
    """

    def __init__(self, source: Optional[Callable[[], datetime]] = None):
        self._source = source or (lambda: datetime.now(timezone.utc))
        self._last: Optional[datetime] = None
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            current = self._source()
            if self._last is not None and current <= self._last:
                current = self._last + _TICK
            self._last = current
            return current


utc_clock = MonotonicClock()
