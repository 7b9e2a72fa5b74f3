import json
from pathlib import Path

import pytest

from shieldsync.config import (
    ShieldSyncConfig,
    get_config_path,
    get_env_overrides,
    load_config,
    read_config_file,
)


def test_read_config_file_rejects_invalid_json(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("{not-json}")
    with pytest.raises(ValueError, match="invalid config json"):
        read_config_file(config_path)


def test_read_config_file_rejects_non_object(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("[1, 2]")
    with pytest.raises(ValueError, match="config must be an object"):
        read_config_file(config_path)


def test_read_config_file_missing_or_blank_is_empty(tmp_path: Path) -> None:
    assert read_config_file(tmp_path / "missing.json") == {}
    blank = tmp_path / "blank.json"
    blank.write_text("  \n")
    assert read_config_file(blank) == {}


def test_get_config_path_uses_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SHIELDSYNC_CONFIG", str(tmp_path / "custom.json"))
    assert get_config_path() == tmp_path / "custom.json"


def test_load_config_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SHIELDSYNC_DB")
    cfg = load_config()
    assert cfg == ShieldSyncConfig()
    assert cfg.refresh_interval_ms == 2000
    assert cfg.controller_url == "http://127.0.0.1:38890"


def test_load_config_file_then_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps({"controller_port": 40001, "refresh_interval_ms": 500, "reply_timeout_s": 2})
    )
    monkeypatch.setenv("SHIELDSYNC_CONTROLLER_PORT", "40002")

    cfg = load_config(config_path)

    assert cfg.controller_port == 40002
    assert cfg.refresh_interval_ms == 500
    assert cfg.reply_timeout_s == 2.0
    assert cfg.db_path == str(tmp_path / "shieldsync.sqlite")


def test_load_config_warns_on_invalid_int(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"controller_port": "nope"}))
    with pytest.warns(RuntimeWarning, match="controller_port"):
        cfg = load_config(config_path)
    assert cfg.controller_port == 38890


def test_get_env_overrides_only_reports_set_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SHIELDSYNC_REPLY_TIMEOUT_S", "0")
    overrides = get_env_overrides()
    assert overrides["reply_timeout_s"] == "0"
    assert "controller_host" not in overrides


@pytest.mark.parametrize("raw", ["{not-json}", "[1, 2]"])
def test_load_config_ignores_unreadable_file(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, raw: str
) -> None:
    monkeypatch.delenv("SHIELDSYNC_DB", raising=False)
    config_path = tmp_path / "config.json"
    config_path.write_text(raw)
    with pytest.warns(RuntimeWarning, match="Ignoring config file"):
        cfg = load_config(config_path)
    assert cfg == ShieldSyncConfig()


def test_load_config_env_still_applies_over_unreadable_file(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("{not-json}")
    monkeypatch.setenv("SHIELDSYNC_CONTROLLER_PORT", "40001")
    with pytest.warns(RuntimeWarning):
        cfg = load_config(config_path)
    assert cfg.controller_port == 40001
