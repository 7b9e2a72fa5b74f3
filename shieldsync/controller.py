from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import urlparse

from . import __version__
from .config import ShieldSyncConfig
from .counters import CounterStore, now_ms
from .http_io import read_json_body, reject_cross_origin, send_json_response
from .router import MessageRouter
from .settings import SettingsStore
from .storage import KeyValueStore, StoreUnavailableError, local_store, sync_store

logger = logging.getLogger(__name__)

MESSAGE_PATH = "/api/message"
HEALTH_PATH = "/api/health"


class Controller:
    """Long-lived owner of the counters and the message router.

    Storage is injected so the same wiring runs against sqlite in production
    and against in-memory fakes in tests.
    """

    def __init__(
        self,
        local: KeyValueStore,
        synced: KeyValueStore,
        *,
        reply_timeout_s: float = 30.0,
        clock: Callable[[], int] = now_ms,
    ):
        self.counters = CounterStore(local, clock=clock)
        self.settings = SettingsStore(synced)
        # One worker: handlers run one at a time, in arrival order.
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="shieldsync-controller")
        self.router = MessageRouter(
            self.counters,
            self.settings,
            executor=self.executor,
            reply_timeout_s=reply_timeout_s,
        )

    @classmethod
    def from_config(cls, config: ShieldSyncConfig) -> Controller:
        return cls(
            local_store(config.db_path),
            sync_store(config.db_path),
            reply_timeout_s=config.reply_timeout_s,
        )

    def activate(self) -> None:
        try:
            if self.settings.ensure_defaults():
                logger.info("shieldsync installed")
        except StoreUnavailableError as exc:
            logger.exception("writing default settings failed", exc_info=exc)
        try:
            self.counters.initialize()
        except StoreUnavailableError as exc:
            logger.exception("loading counters failed; starting from zero", exc_info=exc)

    def handle_message(self, data: Any) -> dict[str, Any]:
        return self.router.handle(data)

    def shutdown(self) -> None:
        self.executor.shutdown(wait=True)


def build_handler(controller: Controller) -> type[BaseHTTPRequestHandler]:
    class ControllerHandler(BaseHTTPRequestHandler):
        def log_message(self, format: str, *args: object) -> None:  # noqa: A003
            if os.environ.get("SHIELDSYNC_HTTP_LOGS") == "1":
                super().log_message(format, *args)

        def do_GET(self) -> None:  # noqa: N802
            if urlparse(self.path).path == HEALTH_PATH:
                send_json_response(self, {"ok": True, "version": __version__})
                return
            send_json_response(self, {"error": "not found"}, status=404)

        def do_POST(self) -> None:  # noqa: N802
            if urlparse(self.path).path != MESSAGE_PATH:
                send_json_response(self, {"error": "not found"}, status=404)
                return
            if reject_cross_origin(self):
                return
            reply = controller.handle_message(read_json_body(self))
            send_json_response(self, reply)

    return ControllerHandler


class ControllerServer:
    def __init__(self, controller: Controller, host: str, port: int):
        self.controller = controller
        self.httpd = ThreadingHTTPServer((host, port), build_handler(controller))
        self.httpd.daemon_threads = True
        self._thread: threading.Thread | None = None

    @property
    def port(self) -> int:
        return int(self.httpd.server_address[1])

    @property
    def url(self) -> str:
        host = self.httpd.server_address[0]
        return f"http://{host}:{self.port}"

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self.httpd.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._thread is not None:
            self.httpd.shutdown()
        self.httpd.server_close()
        self.controller.shutdown()
        self._thread = None


def run_controller(
    config: ShieldSyncConfig,
    *,
    stop_event: threading.Event | None = None,
) -> None:
    controller = Controller.from_config(config)
    controller.activate()
    server = ControllerServer(controller, config.controller_host, config.controller_port)
    server.start()
    logger.info("controller listening", extra={"url": server.url})
    stop = stop_event or threading.Event()
    try:
        stop.wait()
    finally:
        server.stop()
