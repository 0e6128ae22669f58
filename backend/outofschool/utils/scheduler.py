"""Background thread that runs synchronization passes periodically."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from ..schemas import SyncReport


class SyncScheduler:
    """Call `reconciler.synchronize()` every `interval_seconds`.

    A pass that raises is logged and the loop keeps going; outstanding
    ledger entries are simply retried on the next tick.
    """

    def __init__(self, reconciler, interval_seconds: float, logger: Optional[logging.Logger] = None):
        self._reconciler = reconciler
        self._interval = interval_seconds
        self._logger = logger or logging.getLogger("outofschool.sync")
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            self._stop.clear()
            self._thread = threading.Thread(target=self._loop, name="es-sync", daemon=True)
            self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        with self._lock:
            thread, self._thread = self._thread, None
        if thread is not None:
            thread.join(timeout)

    def run_once(self) -> Optional[SyncReport]:
        try:
            return self._reconciler.synchronize()
        except Exception:
            self._logger.exception("synchronization pass failed")
            return None

    def _loop(self) -> None:
        while not self._stop.wait(self._interval):
            self.run_once()
