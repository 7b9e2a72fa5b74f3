from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import pytest

from shieldsync.config import CONFIG_ENV_OVERRIDES
from shieldsync.storage import StoreUnavailableError


class MemoryKeyValueStore:
    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self.data: dict[str, Any] = dict(data or {})
        self.writes: list[tuple[str, Any]] = []

    def get(self, key: str) -> Any | None:
        return copy.deepcopy(self.data.get(key))

    def set(self, key: str, value: Any) -> None:
        self.writes.append((key, copy.deepcopy(value)))
        self.data[key] = copy.deepcopy(value)


class FailingKeyValueStore(MemoryKeyValueStore):
    """Reads succeed; writes fail while ``fail_writes`` is set."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        super().__init__(data)
        self.fail_writes = True

    def set(self, key: str, value: Any) -> None:
        if self.fail_writes:
            raise StoreUnavailableError("store offline")
        super().set(key, value)


class FakeClock:
    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for env_var in CONFIG_ENV_OVERRIDES.values():
        monkeypatch.delenv(env_var, raising=False)
    monkeypatch.setenv("SHIELDSYNC_CONFIG", str(tmp_path / "config.json"))
    monkeypatch.setenv("SHIELDSYNC_DB", str(tmp_path / "shieldsync.sqlite"))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def local_kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def synced_kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def failing_kv() -> FailingKeyValueStore:
    return FailingKeyValueStore()
