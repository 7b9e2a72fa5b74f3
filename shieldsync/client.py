from __future__ import annotations

import json
from http.client import HTTPConnection
from typing import Any
from urllib.parse import urlparse

from .messages import Message

MESSAGE_PATH = "/api/message"


class ControllerUnavailableError(RuntimeError):
    """The controller could not be reached or sent back no usable reply."""


def request_json(
    method: str,
    url: str,
    *,
    body: dict[str, Any] | None = None,
    timeout_s: float = 5.0,
) -> tuple[int, Any]:
    """One request to the controller; returns the status and the decoded body."""
    parsed = urlparse(url)
    conn = HTTPConnection(parsed.hostname or "127.0.0.1", parsed.port or 80, timeout=timeout_s)
    data = None if body is None else json.dumps(body).encode("utf-8")
    headers = {} if data is None else {"Content-Type": "application/json"}
    try:
        conn.request(method, parsed.path or "/", body=data, headers=headers)
        resp = conn.getresponse()
        return resp.status, json.loads(resp.read() or b"null")
    finally:
        conn.close()


class MessageClient:
    """Sends messages to the controller and returns its reply."""

    def __init__(self, base_url: str, *, timeout_s: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s

    def send(self, message: Message | dict[str, Any]) -> dict[str, Any]:
        body = message.to_wire() if isinstance(message, Message) else message
        try:
            status, reply = request_json(
                "POST", self.base_url + MESSAGE_PATH, body=body, timeout_s=self.timeout_s
            )
        except OSError as exc:
            raise ControllerUnavailableError(f"controller unreachable at {self.base_url}: {exc}") from exc
        except ValueError as exc:
            raise ControllerUnavailableError(f"unreadable reply from controller: {exc}") from exc
        if not isinstance(reply, dict):
            raise ControllerUnavailableError(f"empty reply from controller (status {status})")
        return reply
