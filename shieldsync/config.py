from __future__ import annotations

import json
import os
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("~/.config/shieldsync/config.json").expanduser()
DEFAULT_DB_PATH = Path("~/.shieldsync/shieldsync.sqlite").expanduser()

CONFIG_ENV_OVERRIDES = {
    "db_path": "SHIELDSYNC_DB",
    "controller_host": "SHIELDSYNC_CONTROLLER_HOST",
    "controller_port": "SHIELDSYNC_CONTROLLER_PORT",
    "refresh_interval_ms": "SHIELDSYNC_REFRESH_INTERVAL_MS",
    "visibility_refresh_delay_ms": "SHIELDSYNC_VISIBILITY_REFRESH_DELAY_MS",
    "reply_timeout_s": "SHIELDSYNC_REPLY_TIMEOUT_S",
    "client_timeout_s": "SHIELDSYNC_CLIENT_TIMEOUT_S",
}

_INT_KEYS = {"controller_port", "refresh_interval_ms", "visibility_refresh_delay_ms"}
_FLOAT_KEYS = {"reply_timeout_s", "client_timeout_s"}


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("SHIELDSYNC_CONFIG", DEFAULT_CONFIG_PATH))
    return candidate.expanduser()


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


@dataclass
class ShieldSyncConfig:
    db_path: str = str(DEFAULT_DB_PATH)
    controller_host: str = "127.0.0.1"
    controller_port: int = 38890
    # Popup polls the controller for fresh counters at this cadence.
    refresh_interval_ms: int = 2000
    visibility_refresh_delay_ms: int = 100
    # 0 disables the bound on deferred replies.
    reply_timeout_s: float = 30.0
    client_timeout_s: float = 5.0

    @property
    def controller_url(self) -> str:
        return f"http://{self.controller_host}:{self.controller_port}"


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _parse_float(value: object, default: float, *, key: str) -> float:
    if value is None:
        return default
    if isinstance(value, bool):
        warnings.warn(f"Invalid float for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid float for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def load_config(path: Path | None = None) -> ShieldSyncConfig:
    try:
        data = read_config_file(path)
    except ValueError as exc:
        warnings.warn(f"Ignoring config file: {exc}", RuntimeWarning, stacklevel=2)
        data = {}
    cfg = _apply_dict(ShieldSyncConfig(), data)
    return _apply_dict(cfg, get_env_overrides())


def _apply_dict(cfg: ShieldSyncConfig, data: dict[str, Any]) -> ShieldSyncConfig:
    for key, value in data.items():
        if not hasattr(cfg, key) or key == "controller_url":
            continue
        if key in _INT_KEYS:
            setattr(cfg, key, _parse_int(value, getattr(cfg, key), key=key))
            continue
        if key in _FLOAT_KEYS:
            setattr(cfg, key, _parse_float(value, getattr(cfg, key), key=key))
            continue
        if value is None:
            continue
        setattr(cfg, key, str(value))
    return cfg
