from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import Enum

from .counters import Counters

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class RefreshLoop:
    """Polls for counters and redraws only when they change.

    ``fetch`` performs the request round trip every tick; ``on_change`` is
    called with the new snapshot only when it differs from the last one
    rendered. A failing tick is logged and the next tick still runs.
    """

    def __init__(
        self,
        fetch: Callable[[], Counters],
        on_change: Callable[[Counters], None],
        *,
        interval_s: float = 2.0,
        last_rendered: Counters | None = None,
    ):
        self._fetch = fetch
        self._on_change = on_change
        self.interval_s = interval_s
        self.last_rendered = last_rendered
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()

    @property
    def state(self) -> LoopState:
        with self._lock:
            running = self._thread is not None
        return LoopState.RUNNING if running else LoopState.STOPPED

    def start(self) -> bool:
        """Start polling; returns False when a timer is already running."""
        with self._lock:
            if self._thread is not None:
                return False
            stop = threading.Event()
            self._stop = stop
            self._thread = threading.Thread(
                target=self._run, args=(stop,), name="shieldsync-refresh", daemon=True
            )
            self._thread.start()
        return True

    def stop(self) -> None:
        with self._lock:
            thread = self._thread
            self._thread = None
            self._stop.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.interval_s + 1.0)

    def tick(self, stop: threading.Event | None = None) -> bool:
        """Run one refresh; True when a redraw was issued."""
        try:
            snapshot = self._fetch()
        except Exception as exc:
            logger.warning("stats refresh failed", exc_info=exc)
            return False
        if stop is not None and stop.is_set():
            # Torn down while the request was in flight.
            return False
        if snapshot == self.last_rendered:
            return False
        self.last_rendered = snapshot
        try:
            self._on_change(snapshot)
        except Exception as exc:
            logger.exception("stats redraw failed", exc_info=exc)
        return True

    def _run(self, stop: threading.Event) -> None:
        interval = max(0.01, self.interval_s)
        while not stop.wait(interval):
            self.tick(stop)
