from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

UNKNOWN_TYPE_REPLY = {"error": "Unknown message type"}
TIMEOUT_REPLY = {"error": "Reply timed out"}


class MessageType(str, Enum):
    UPDATE_STATS = "UPDATE_STATS"
    GET_STATS = "GET_STATS"
    GET_SETTINGS = "GET_SETTINGS"


@dataclass(frozen=True)
class Message:
    type: MessageType
    payload: dict[str, Any] = field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.type.value, **self.payload}

    @classmethod
    def from_wire(cls, data: Any) -> Message | None:
        """Return None for anything that is not a recognised message."""
        if not isinstance(data, dict):
            return None
        raw_type = data.get("type")
        try:
            msg_type = MessageType(raw_type)
        except ValueError:
            return None
        payload = {key: value for key, value in data.items() if key != "type"}
        return cls(msg_type, payload)


def update_stats(scanned: int, blocked: int) -> Message:
    return Message(MessageType.UPDATE_STATS, {"scanned": scanned, "blocked": blocked})


def get_stats() -> Message:
    return Message(MessageType.GET_STATS)


def get_settings() -> Message:
    return Message(MessageType.GET_SETTINGS)


class ReplyChannel:
    """Single-use response slot for one request.

    The first ``send`` wins; later sends are dropped and reported as False.
    """

    def __init__(self, *, deferred: bool = False):
        self.deferred = deferred
        self._lock = threading.Lock()
        self._future: Future[dict[str, Any]] = Future()

    @property
    def replied(self) -> bool:
        return self._future.done()

    def send(self, payload: dict[str, Any]) -> bool:
        with self._lock:
            if self._future.done():
                logger.warning("dropping duplicate reply", extra={"reply": payload})
                return False
            self._future.set_result(payload)
            return True

    def wait(self, timeout_s: float | None = None) -> dict[str, Any]:
        """Block until the reply is available.

        With a positive ``timeout_s`` the channel is closed with a timeout
        error if no reply arrives in time; a late reply is then discarded.
        """
        effective = timeout_s if timeout_s and timeout_s > 0 else None
        try:
            return self._future.result(timeout=effective)
        except FutureTimeoutError:
            if self.send(dict(TIMEOUT_REPLY)):
                logger.warning("deferred reply timed out", extra={"timeout_s": effective})
            return self._future.result()
