from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Any, Protocol

from . import messages
from .config import ShieldSyncConfig
from .counters import Counters
from .refresh import RefreshLoop
from .settings import Settings, SettingsStore, fallback_settings

logger = logging.getLogger(__name__)

MODE_DESCRIPTIONS = {
    "block": "Hide AI-generated content completely",
    "flag": "Show AI content with a warning label",
}


class ReplyError(RuntimeError):
    """The controller answered with an error result."""


class _Sender(Protocol):
    def send(self, message: messages.Message) -> dict[str, Any]: ...


def format_number(num: int) -> str:
    if num >= 1_000_000:
        return f"{num / 1_000_000:.1f}M"
    if num >= 1_000:
        return f"{num / 1_000:.1f}K"
    return str(num)


def block_percentage(counters: Counters) -> str:
    if counters.scanned <= 0:
        return "0"
    return f"{counters.blocked / counters.scanned * 100:.1f}"


def mode_description(mode: str) -> str:
    return MODE_DESCRIPTIONS.get(mode, MODE_DESCRIPTIONS["block"])


def _checked(reply: dict[str, Any]) -> dict[str, Any]:
    if "error" in reply:
        raise ReplyError(str(reply["error"]))
    return reply


class PopupSession:
    """Short-lived UI surface: loads state, polls counters, saves settings."""

    def __init__(
        self,
        client: _Sender,
        settings_store: SettingsStore,
        render: Callable[[Settings, Counters], None],
        *,
        config: ShieldSyncConfig | None = None,
        render_stats: Callable[[Counters], None] | None = None,
    ):
        cfg = config or ShieldSyncConfig()
        self.client = client
        self.settings_store = settings_store
        self.render = render
        self.render_stats = render_stats or (lambda counters: render(self.settings, counters))
        self.visibility_delay_s = cfg.visibility_refresh_delay_ms / 1000.0
        self.settings: Settings = fallback_settings()
        self.stats = Counters()
        self.loop = RefreshLoop(
            self.fetch_stats,
            self._stats_changed,
            interval_s=cfg.refresh_interval_ms / 1000.0,
        )
        self._reload_timer: threading.Timer | None = None
        self._closed = False

    def fetch_stats(self) -> Counters:
        reply = _checked(self.client.send(messages.get_stats()))
        stats = reply.get("stats")
        return Counters.from_dict(stats) if isinstance(stats, dict) else Counters()

    def fetch_settings(self) -> Settings:
        reply = _checked(self.client.send(messages.get_settings()))
        settings = reply.get("settings")
        if not isinstance(settings, dict):
            return fallback_settings()
        return Settings.from_dict(settings)

    def load_data(self) -> None:
        with ThreadPoolExecutor(max_workers=2) as pool:
            settings_future = pool.submit(self.fetch_settings)
            stats_future = pool.submit(self.fetch_stats)
            settings = settings_future.result()
            stats = stats_future.result()
        if self._closed:
            return
        self.settings = settings
        self.stats = stats
        self.loop.last_rendered = stats

    def open(self) -> None:
        self.load_data()
        self.render(self.settings, self.stats)
        self.loop.start()

    def close(self) -> None:
        self._closed = True
        if self._reload_timer is not None:
            self._reload_timer.cancel()
            self._reload_timer = None
        self.loop.stop()

    def on_visibility_change(self, visible: bool) -> None:
        if not visible or self._closed:
            return
        if self._reload_timer is not None:
            self._reload_timer.cancel()
        self._reload_timer = threading.Timer(self.visibility_delay_s, self._reload)
        self._reload_timer.daemon = True
        self._reload_timer.start()
        self.loop.start()

    def _reload(self) -> None:
        try:
            self.load_data()
        except Exception as exc:
            logger.warning("popup reload failed", exc_info=exc)
            return
        if self._closed:
            return
        self.render_stats(self.stats)

    def _stats_changed(self, counters: Counters) -> None:
        self.stats = counters
        self.render_stats(counters)

    def save_settings(self) -> None:
        self.settings_store.write(self.settings)

    def _apply(self, **changes: Any) -> None:
        candidate = replace(self.settings, **changes)
        candidate.validate()
        self.settings = candidate
        self.save_settings()

    def set_enabled(self, enabled: bool) -> None:
        self._apply(enabled=enabled)

    def set_mode(self, mode: str) -> None:
        self._apply(mode=mode)

    def set_threshold(self, threshold: float) -> None:
        self._apply(threshold=float(threshold))
