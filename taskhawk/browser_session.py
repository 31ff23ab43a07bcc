"""
High-level browser session over an injected BrowserTransport.

The session's only mutable state is whether it is started and the current
target (the URL of the last successful navigation). Calls are blocking and must
be serialized by the owner; a session is never shared between executors.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from .config import TaskhawkConfig
from .errors import ResolutionError, SessionNotStartedError, TaskhawkError, TransportError
from .resolver import resolve_element
from .snapshot import Snapshot
from .transport import BrowserTransport, CdpTransport

logger = logging.getLogger("taskhawk.session")


class BrowserSession:
    def __init__(self, transport: BrowserTransport, *, navigation_timeout_ms: int = 30_000) -> None:
        self.transport = transport
        self.navigation_timeout_ms = navigation_timeout_ms
        self.started = False
        self.current_target: str | None = None

    @classmethod
    def from_config(cls, config: TaskhawkConfig) -> BrowserSession:
        return cls(CdpTransport.from_config(config), navigation_timeout_ms=config.navigation_timeout_ms)

    def __enter__(self) -> BrowserSession:
        self.start()
        return self

    def __exit__(self, *args):
        self.stop()

    def _call(self, operation: str, fn, *args) -> Any:
        try:
            return fn(*args)
        except TaskhawkError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise TransportError(f"{operation} failed: {exc}") from exc

    def _require_started(self, operation: str) -> None:
        if not self.started:
            raise SessionNotStartedError(f"Browser session not started (call start() before {operation})")

    def start(self) -> dict[str, Any]:
        if self.started:
            return {"status": "already_started"}
        result = self._call("start", self.transport.start)
        self.started = True
        logger.debug("browser session started")
        return result if isinstance(result, dict) else {"status": "started"}

    def navigate(self, url: str, timeout_ms: int | None = None) -> dict[str, Any]:
        """Navigate the session's tab, starting the session first if needed."""
        if not self.started:
            self.start()
        timeout = int(timeout_ms) if timeout_ms is not None else self.navigation_timeout_ms
        result = self._call("navigate", self.transport.navigate, url, timeout)
        result = result if isinstance(result, dict) else {}
        self.current_target = str(result.get("url") or url)
        return {"status": "success", **result, "url": self.current_target}

    def snapshot(self, options: dict[str, Any] | None = None) -> Snapshot:
        self._require_started("snapshot")
        payload = self._call("snapshot", self.transport.snapshot)
        if not isinstance(payload, dict):
            raise TransportError("snapshot returned an unexpected payload")
        snap = Snapshot.from_payload(payload)
        if not snap.url and self.current_target:
            snap = Snapshot(url=self.current_target, status=snap.status, elements=snap.elements)
        if options and options.get("roles"):
            roles = {str(r) for r in options["roles"]}
            snap = Snapshot(
                url=snap.url,
                status=snap.status,
                elements={ref: el for ref, el in snap.elements.items() if el.role in roles},
            )
        return snap

    def perform_action(self, kind: str, ref: str | None, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        self._require_started(kind)
        result = self._call(kind, self.transport.act, kind, ref, dict(payload or {}))
        return result if isinstance(result, dict) else {"success": True}

    def stop(self) -> dict[str, Any]:
        if not self.started:
            return {"status": "not_started"}
        try:
            result = self._call("stop", self.transport.stop)
        finally:
            self.started = False
            self.current_target = None
        logger.debug("browser session stopped")
        return result if isinstance(result, dict) else {"status": "stopped"}

    def wait(self, ms: int) -> None:
        time.sleep(max(0, int(ms)) / 1000.0)

    def wait_for_element(self, target: str, timeout_ms: int = 5000, interval_ms: int = 250) -> str:
        """Poll snapshots until `target` resolves; return its reference."""
        deadline = time.monotonic() + timeout_ms / 1000.0
        attempts = 0
        while True:
            attempts += 1
            ref = resolve_element(target, self.snapshot())
            if ref is not None:
                return ref
            if time.monotonic() >= deadline:
                raise ResolutionError(
                    kind="resolution",
                    action="wait_for_element",
                    reason=f"Element not found within {timeout_ms}ms: {target}",
                    suggestion="Check the target text against a fresh snapshot",
                    target=target,
                    attempts=attempts,
                )
            time.sleep(max(0, interval_ms) / 1000.0)


__all__ = ["BrowserSession"]
