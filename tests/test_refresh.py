from __future__ import annotations

import threading
import time

from shieldsync.counters import Counters
from shieldsync.refresh import LoopState, RefreshLoop


class ScriptedFetch:
    def __init__(self, *results: object) -> None:
        self.results = list(results)
        self.calls = 0

    def __call__(self) -> Counters:
        self.calls += 1
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        assert isinstance(result, Counters)
        return result


def _wait_until(predicate, timeout_s: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_redraws_once_for_identical_consecutive_snapshots() -> None:
    snapshot = Counters(scanned=3, blocked=1, window_start=10)
    redraws: list[Counters] = []
    loop = RefreshLoop(ScriptedFetch(snapshot), redraws.append)

    assert loop.tick() is True
    assert loop.tick() is False

    assert redraws == [snapshot]


def test_redraws_when_any_field_changes() -> None:
    a = Counters(scanned=3, blocked=1, window_start=10)
    b = Counters(scanned=3, blocked=1, window_start=20)
    c = Counters(scanned=3, blocked=2, window_start=20)
    redraws: list[Counters] = []
    loop = RefreshLoop(ScriptedFetch(a, a, b, c, c), redraws.append)

    results = [loop.tick() for _ in range(5)]

    assert results == [True, False, True, True, False]
    assert redraws == [a, b, c]


def test_seeded_last_rendered_suppresses_first_redraw() -> None:
    snapshot = Counters(scanned=1, blocked=0, window_start=5)
    redraws: list[Counters] = []
    loop = RefreshLoop(ScriptedFetch(snapshot), redraws.append, last_rendered=snapshot)
    assert loop.tick() is False
    assert redraws == []


def test_failed_tick_does_not_stop_later_ticks() -> None:
    snapshot = Counters(scanned=2, blocked=0, window_start=1)
    redraws: list[Counters] = []
    fetch = ScriptedFetch(ConnectionError("controller gone"), snapshot)
    loop = RefreshLoop(fetch, redraws.append)

    assert loop.tick() is False
    assert loop.tick() is True
    assert redraws == [snapshot]


def test_redraw_errors_are_contained() -> None:
    snapshot = Counters(scanned=2, blocked=0, window_start=1)

    def explode(_: Counters) -> None:
        raise RuntimeError("render failed")

    loop = RefreshLoop(ScriptedFetch(snapshot), explode)
    assert loop.tick() is True
    assert loop.last_rendered == snapshot


def test_start_is_idempotent_and_stop_returns_to_stopped() -> None:
    fetch = ScriptedFetch(Counters())
    loop = RefreshLoop(fetch, lambda _: None, interval_s=0.01)
    assert loop.state is LoopState.STOPPED

    assert loop.start() is True
    assert loop.start() is False
    assert loop.state is LoopState.RUNNING
    assert _wait_until(lambda: fetch.calls >= 2)

    loop.stop()
    assert loop.state is LoopState.STOPPED
    calls = fetch.calls
    time.sleep(0.05)
    assert fetch.calls == calls


def test_only_one_timer_thread_runs_after_repeated_starts() -> None:
    loop = RefreshLoop(ScriptedFetch(Counters()), lambda _: None, interval_s=0.01)
    for _ in range(5):
        loop.start()
    try:
        names = [t.name for t in threading.enumerate() if t.name == "shieldsync-refresh"]
        assert len(names) == 1
    finally:
        loop.stop()


def test_response_arriving_after_stop_is_discarded() -> None:
    release = threading.Event()
    entered = threading.Event()
    redraws: list[Counters] = []

    def slow_fetch() -> Counters:
        entered.set()
        release.wait(2.0)
        return Counters(scanned=9, blocked=9, window_start=9)

    loop = RefreshLoop(slow_fetch, redraws.append, interval_s=0.01)
    loop.start()
    assert entered.wait(2.0)
    stopper = threading.Thread(target=loop.stop)
    stopper.start()
    time.sleep(0.05)
    release.set()
    stopper.join(3.0)

    assert redraws == []
    assert loop.state is LoopState.STOPPED
