from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass, replace
from typing import Any

from .storage import KeyValueStore

logger = logging.getLogger(__name__)

STATS_KEY = "stats"
ROLLOVER_WINDOW_MS = 24 * 60 * 60 * 1000


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Counters:
    scanned: int = 0
    blocked: int = 0
    window_start: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, base: Counters | None = None) -> Counters:
        """Overlay stored fields onto ``base``; unknown or mistyped fields are ignored."""
        merged = asdict(base or cls())
        for key in merged:
            value = data.get(key)
            if isinstance(value, int) and not isinstance(value, bool):
                merged[key] = value
        return cls(**merged)


def _check_delta(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer")
    if value < 0:
        raise ValueError(f"{name} must be non-negative")


class CounterStore:
    """Canonical scanned/blocked counters for the current rollover window.

    The in-memory value is authoritative. Every mutation is persisted to the
    ``local`` partition; when that write fails the error propagates and the
    in-memory value stays ahead of storage until the next successful persist.
    """

    def __init__(self, store: KeyValueStore, *, clock: Callable[[], int] = now_ms):
        self._store = store
        self._clock = clock
        self._lock = threading.Lock()
        self._counters = Counters(window_start=clock())

    def initialize(self) -> Counters:
        stored = self._store.get(STATS_KEY)
        if isinstance(stored, dict):
            with self._lock:
                self._counters = Counters.from_dict(stored, base=self._counters)
                return self._counters
        with self._lock:
            self._counters = Counters(window_start=self._clock())
            seeded = self._counters
        self._store.set(STATS_KEY, seeded.to_dict())
        return seeded

    def increment(self, scanned_delta: int, blocked_delta: int) -> Counters:
        _check_delta("scanned", scanned_delta)
        _check_delta("blocked", blocked_delta)
        with self._lock:
            now = self._clock()
            current = self._counters
            if now - current.window_start > ROLLOVER_WINDOW_MS:
                # Window expired: the new deltas open the next window.
                updated = Counters(scanned=scanned_delta, blocked=blocked_delta, window_start=now)
                logger.info("counter window rolled over", extra={"window_start": now})
            else:
                updated = replace(
                    current,
                    scanned=current.scanned + scanned_delta,
                    blocked=current.blocked + blocked_delta,
                )
            self._counters = updated
            self._store.set(STATS_KEY, updated.to_dict())
        return updated

    def snapshot(self) -> Counters:
        with self._lock:
            return self._counters
