from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import Executor, Future
from typing import Any

from .counters import CounterStore
from .messages import UNKNOWN_TYPE_REPLY, Message, MessageType, ReplyChannel
from .settings import SettingsStore

logger = logging.getLogger(__name__)


def _delta(payload: dict[str, Any], key: str) -> int:
    value = payload.get(key, 0)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{key} must be a non-negative integer")
    return value


class MessageRouter:
    """Dispatches one handler per message type and guarantees one reply.

    Handlers run on ``executor``; with a single worker thread this keeps
    counter mutations serialised in arrival order. Synchronous types reply
    before ``dispatch`` returns; deferred types reply once the executor
    finishes the work.
    """

    def __init__(
        self,
        counters: CounterStore,
        settings: SettingsStore,
        *,
        executor: Executor,
        reply_timeout_s: float = 30.0,
    ):
        self.counters = counters
        self.settings = settings
        self.executor = executor
        self.reply_timeout_s = reply_timeout_s

    def handle(self, data: Any) -> dict[str, Any]:
        """Dispatch ``data`` and wait for its reply, bounded by the reply timeout."""
        return self.dispatch(data).wait(self.reply_timeout_s)

    def dispatch(self, data: Any) -> ReplyChannel:
        message = data if isinstance(data, Message) else Message.from_wire(data)
        if message is None:
            channel = ReplyChannel()
            channel.send(dict(UNKNOWN_TYPE_REPLY))
            return channel
        if message.type is MessageType.UPDATE_STATS:
            return self._update_stats(message)
        if message.type is MessageType.GET_STATS:
            return self._deferred(lambda: {"stats": self.counters.snapshot().to_dict()})
        return self._deferred(lambda: {"settings": self.settings.read().to_dict()})

    def _update_stats(self, message: Message) -> ReplyChannel:
        channel = ReplyChannel()
        try:
            scanned = _delta(message.payload, "scanned")
            blocked = _delta(message.payload, "blocked")
        except ValueError as exc:
            channel.send({"error": str(exc)})
            return channel
        try:
            future = self.executor.submit(self.counters.increment, scanned, blocked)
        except RuntimeError as exc:
            channel.send({"error": f"controller unavailable: {exc}"})
            return channel
        future.add_done_callback(_log_increment_failure)
        # Acknowledge without waiting for persistence.
        channel.send({"success": True})
        return channel

    def _deferred(self, produce: Callable[[], dict[str, Any]]) -> ReplyChannel:
        channel = ReplyChannel(deferred=True)
        try:
            future = self.executor.submit(produce)
        except RuntimeError as exc:
            channel.send({"error": f"controller unavailable: {exc}"})
            return channel
        future.add_done_callback(lambda done: _complete(channel, done))
        return channel


def _complete(channel: ReplyChannel, future: Future[dict[str, Any]]) -> None:
    if future.cancelled():
        channel.send({"error": "request cancelled"})
        return
    exc = future.exception()
    if exc is not None:
        logger.error("deferred handler failed", exc_info=exc)
        channel.send({"error": str(exc) or type(exc).__name__})
        return
    channel.send(future.result())


def _log_increment_failure(future: Future[Any]) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("counter update failed; in-memory counters kept", exc_info=exc)
