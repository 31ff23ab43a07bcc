"""Low-level Chrome DevTools Protocol channel over websocket-client."""

from __future__ import annotations

import json
import logging
import socket
import time
from contextlib import suppress
from typing import Any

import websocket

from .errors import RequestTimeoutError, TransportError

logger = logging.getLogger("taskhawk.cdp")


def _is_socket_timeout(exc: BaseException) -> bool:
    return isinstance(exc, (TimeoutError, websocket.WebSocketTimeoutException)) or "timed out" in str(exc).lower()


class CdpConnection:
    """One CDP WebSocket. Commands are synchronous; events received meanwhile are queued."""

    def __init__(self, ws_url: str, timeout: float = 5.0):
        try:
            self.ws = websocket.create_connection(ws_url, timeout=timeout)
        except Exception as exc:  # noqa: BLE001
            raise TransportError(f"CDP connect failed: {exc}") from exc
        self.ws_url = ws_url
        self.timeout = timeout
        self._next_id = 1
        # Events arriving while we wait for a command response must not be dropped,
        # otherwise load waits become flaky.
        self._event_queue: list[dict[str, Any]] = []
        self._max_event_queue = 2000

    def _push_event(self, event: dict[str, Any]) -> None:
        self._event_queue.append(event)
        if len(self._event_queue) > self._max_event_queue:
            del self._event_queue[: len(self._event_queue) - self._max_event_queue]

    def pop_event(self, event_name: str) -> dict[str, Any] | None:
        """Pop the oldest queued event params for the given event name."""
        for i, ev in enumerate(self._event_queue):
            if ev.get("method") == event_name:
                self._event_queue.pop(i)
                params = ev.get("params")
                return params if isinstance(params, dict) else {}
        return None

    def discard_events(self, event_name: str) -> int:
        """Drop queued events of one kind so a later wait only sees fresh ones."""
        kept = [ev for ev in self._event_queue if ev.get("method") != event_name]
        dropped = len(self._event_queue) - len(kept)
        self._event_queue = kept
        return dropped

    def _recv(self, remaining: float) -> dict[str, Any] | None:
        """Receive one decoded message, or None on a poll timeout / undecodable frame."""
        try:
            self.ws.settimeout(min(0.5, remaining))
            raw = self.ws.recv()
        except Exception as exc:  # noqa: BLE001
            if _is_socket_timeout(exc):
                return None
            raise TransportError(str(exc)) from exc
        try:
            data = json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            return None
        return data if isinstance(data, dict) else None

    def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send a CDP command and wait for its response."""
        msg_id = self._next_id
        self._next_id += 1

        msg: dict[str, Any] = {"id": msg_id, "method": method}
        if params:
            msg["params"] = params

        try:
            self.ws.settimeout(min(2.0, max(0.5, float(self.timeout))))
            self.ws.send(json.dumps(msg))
        except Exception as exc:  # noqa: BLE001
            raise TransportError(str(exc)) from exc

        deadline = time.time() + self.timeout
        while True:
            remaining = deadline - time.time()
            if remaining <= 0:
                raise RequestTimeoutError(f"CDP response timed out: {method}")
            data = self._recv(remaining)
            if data is None:
                continue
            if isinstance(data.get("method"), str) and "id" not in data:
                self._push_event(data)
                continue
            if data.get("id") == msg_id:
                if "error" in data:
                    err = data["error"]
                    message = err.get("message") if isinstance(err, dict) else err
                    raise TransportError(f"{method}: {message}")
                result = data.get("result")
                return result if isinstance(result, dict) else {}

    def wait_for_event(self, event_name: str, timeout: float = 10.0) -> dict[str, Any] | None:
        """Wait for a specific CDP event. Returns None when the deadline passes."""
        queued = self.pop_event(event_name)
        if queued is not None:
            return queued

        deadline = time.time() + timeout
        while True:
            remaining = deadline - time.time()
            if remaining <= 0:
                return None
            data = self._recv(remaining)
            if data is None or not isinstance(data.get("method"), str) or "id" in data:
                continue
            if data.get("method") == event_name:
                params = data.get("params")
                return params if isinstance(params, dict) else {}
            self._push_event(data)

    def close(self) -> None:
        # Raw socket shutdown: websocket-client close() can block on a wedged peer.
        sock = getattr(self.ws, "sock", None)
        if sock is not None:
            with suppress(OSError):
                sock.shutdown(socket.SHUT_RDWR)
            with suppress(OSError):
                sock.close()
        logger.debug("closed CDP connection %s", self.ws_url)


__all__ = ["CdpConnection"]
