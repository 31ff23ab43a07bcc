"""
Browser control surface.

BrowserTransport is the seam BrowserSession drives; it is injected, never global.
CdpTransport implements it against a Chrome instance started with
--remote-debugging-port, one dedicated tab per transport.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol

from .config import TaskhawkConfig
from .errors import RequestTimeoutError, TransportError
from .http_client import http_get_json
from .session_cdp import CdpConnection

logger = logging.getLogger("taskhawk.transport")


class BrowserTransport(Protocol):
    def start(self) -> dict[str, Any]: ...

    def navigate(self, url: str, timeout_ms: int) -> dict[str, Any]: ...

    def snapshot(self) -> dict[str, Any]:
        """Return `{"status", "url", "elements": {ref: descriptor}}` in document order."""
        ...

    def act(self, kind: str, ref: str | None, payload: dict[str, Any]) -> dict[str, Any]: ...

    def stop(self) -> dict[str, Any]: ...


# AX roles that never carry a useful target on their own.
_SKIP_ROLES = {"none", "generic", "InlineTextBox", "RootWebArea", "LineBreak", "ignored"}

_KEY_CODES = {
    "Enter": 13,
    "Tab": 9,
    "Escape": 27,
    "Backspace": 8,
    "Delete": 46,
    "ArrowUp": 38,
    "ArrowDown": 40,
    "ArrowLeft": 37,
    "ArrowRight": 39,
    "Home": 36,
    "End": 35,
    "PageUp": 33,
    "PageDown": 34,
}

_SELECT_VALUE_JS = """function(v) {
  this.value = v;
  this.dispatchEvent(new Event('input', {bubbles: true}));
  this.dispatchEvent(new Event('change', {bubbles: true}));
  return this.value;
}"""

_CLEAR_VALUE_JS = """function() {
  if ('value' in this) { this.value = ''; }
  this.dispatchEvent(new Event('input', {bubbles: true}));
}"""


def _ax_value(value: Any) -> Any:
    """CDP AXValue is usually `{type, value}`; return the underlying value."""
    if isinstance(value, dict) and "value" in value:
        return value.get("value")
    return value


def _ax_prop(node: dict[str, Any], name: str) -> Any:
    props = node.get("properties")
    if not isinstance(props, list):
        return None
    for p in props:
        if isinstance(p, dict) and p.get("name") == name:
            return _ax_value(p.get("value"))
    return None


def flatten_ax_nodes(nodes: list[dict[str, Any]]) -> dict[str, dict[str, Any]]:
    """Turn `Accessibility.getFullAXTree` nodes into `{ref: descriptor}` (refs `ax:<backendDOMNodeId>`)."""
    elements: dict[str, dict[str, Any]] = {}
    for node in nodes:
        if not isinstance(node, dict) or node.get("ignored") is True:
            continue
        backend_id = node.get("backendDOMNodeId")
        if not isinstance(backend_id, int) or backend_id <= 0:
            continue
        role = str(_ax_value(node.get("role")) or "")
        if not role or role in _SKIP_ROLES:
            continue
        name = str(_ax_value(node.get("name")) or "")

        desc: dict[str, Any] = {"role": role, "name": name}
        if role == "StaticText":
            if not name.strip():
                continue
            desc = {"role": "text", "name": "", "text": name}
        value = _ax_value(node.get("value"))
        if value not in (None, ""):
            desc["value"] = str(value)
        description = _ax_value(node.get("description"))
        if isinstance(description, str) and description:
            desc["label"] = description
        placeholder = _ax_prop(node, "placeholder")
        if isinstance(placeholder, str) and placeholder:
            desc["placeholder"] = placeholder

        elements[f"ax:{backend_id}"] = desc
    return elements


def _backend_id(ref: str | None) -> int:
    if not isinstance(ref, str) or not ref.startswith("ax:"):
        raise TransportError(f"Unknown element reference: {ref!r}")
    try:
        return int(ref.split(":", 1)[1])
    except ValueError:
        raise TransportError(f"Unknown element reference: {ref!r}") from None


def _quad_center(quad: list[float]) -> tuple[float, float]:
    xs = quad[0::2]
    ys = quad[1::2]
    return sum(xs) / len(xs), sum(ys) / len(ys)


class CdpTransport:
    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 9222,
        *,
        timeout: float = 5.0,
        connect: Callable[..., CdpConnection] = CdpConnection,
        get_json: Callable[..., Any] = http_get_json,
    ) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self._connect = connect
        self._get_json = get_json
        self.conn: CdpConnection | None = None
        self.target_id: str | None = None
        self.url = ""

    @classmethod
    def from_config(cls, config: TaskhawkConfig) -> CdpTransport:
        return cls(config.cdp_host, config.cdp_port, timeout=max(1.0, config.request_timeout_ms / 1000.0))

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def _browser_ws(self) -> str:
        version = self._get_json(f"{self.base_url}/json/version")
        ws_url = version.get("webSocketDebuggerUrl") if isinstance(version, dict) else None
        if not ws_url:
            raise TransportError("CDP browser WebSocket URL not found")
        return ws_url

    def _tab_ws(self, target_id: str) -> str:
        targets = self._get_json(f"{self.base_url}/json/list") or []
        for target in targets:
            if isinstance(target, dict) and target.get("id") == target_id:
                ws_url = target.get("webSocketDebuggerUrl")
                if ws_url:
                    return ws_url
        raise TransportError(f"No WebSocket URL for tab {target_id}")

    def _require_conn(self) -> CdpConnection:
        if self.conn is None:
            raise TransportError("CDP transport is not started")
        return self.conn

    def start(self) -> dict[str, Any]:
        browser = self._connect(self._browser_ws(), timeout=self.timeout)
        try:
            created = browser.send("Target.createTarget", {"url": "about:blank"})
        finally:
            browser.close()
        target_id = created.get("targetId")
        if not target_id:
            raise TransportError("Failed to create browser tab")

        self.target_id = target_id
        self.conn = self._connect(self._tab_ws(target_id), timeout=self.timeout)
        for domain in ("Page", "DOM", "Accessibility"):
            self.conn.send(f"{domain}.enable")
        logger.debug("started CDP tab %s", target_id)
        return {"status": "started", "targetId": target_id}

    def navigate(self, url: str, timeout_ms: int) -> dict[str, Any]:
        conn = self._require_conn()
        # A load fired by an earlier click or submit may still be queued.
        conn.discard_events("Page.loadEventFired")
        result = conn.send("Page.navigate", {"url": url})
        error_text = result.get("errorText")
        if error_text:
            raise TransportError(f"Navigation failed: {error_text}")
        if conn.wait_for_event("Page.loadEventFired", timeout=timeout_ms / 1000.0) is None:
            raise RequestTimeoutError(f"Navigation timeout after {timeout_ms}ms")
        self.url = url
        return {"status": "success", "url": url}

    def snapshot(self) -> dict[str, Any]:
        conn = self._require_conn()
        res = conn.send("Accessibility.getFullAXTree")
        nodes = res.get("nodes")
        if not isinstance(nodes, list):
            raise TransportError("Accessibility.getFullAXTree returned unexpected payload")
        return {"status": "success", "url": self.url, "elements": flatten_ax_nodes(nodes)}

    def _object_id(self, backend_id: int) -> str:
        resolved = self._require_conn().send("DOM.resolveNode", {"backendNodeId": backend_id})
        obj = resolved.get("object")
        object_id = obj.get("objectId") if isinstance(obj, dict) else None
        if not object_id:
            raise TransportError(f"Element ax:{backend_id} is no longer attached")
        return object_id

    def _click(self, backend_id: int, click_count: int = 1) -> None:
        conn = self._require_conn()
        conn.send("DOM.scrollIntoViewIfNeeded", {"backendNodeId": backend_id})
        model = conn.send("DOM.getBoxModel", {"backendNodeId": backend_id}).get("model")
        quad = model.get("content") if isinstance(model, dict) else None
        if not isinstance(quad, list) or len(quad) < 8:
            raise TransportError(f"Element ax:{backend_id} has no box model")
        x, y = _quad_center(quad)
        for event_type in ("mousePressed", "mouseReleased"):
            conn.send(
                "Input.dispatchMouseEvent",
                {"type": event_type, "x": x, "y": y, "button": "left", "clickCount": click_count},
            )

    def _press_key(self, key: str) -> None:
        conn = self._require_conn()
        key_code = _KEY_CODES.get(key, ord(key[0].upper()) if len(key) == 1 else 0)
        code = f"Key{key.upper()}" if len(key) == 1 else key
        for event_type in ("keyDown", "keyUp"):
            conn.send(
                "Input.dispatchKeyEvent",
                {"type": event_type, "key": key, "code": code, "windowsVirtualKeyCode": key_code},
            )

    def act(self, kind: str, ref: str | None, payload: dict[str, Any]) -> dict[str, Any]:
        conn = self._require_conn()
        if kind == "click":
            self._click(_backend_id(ref), int(payload.get("click_count") or 1))
            return {"success": True, "action": "click", "ref": ref}
        if kind == "type":
            backend_id = _backend_id(ref)
            conn.send("DOM.focus", {"backendNodeId": backend_id})
            if payload.get("clear", True):
                conn.send(
                    "Runtime.callFunctionOn",
                    {"objectId": self._object_id(backend_id), "functionDeclaration": _CLEAR_VALUE_JS},
                )
            conn.send("Input.insertText", {"text": str(payload.get("text", ""))})
            return {"success": True, "action": "type", "ref": ref}
        if kind == "select":
            backend_id = _backend_id(ref)
            res = conn.send(
                "Runtime.callFunctionOn",
                {
                    "objectId": self._object_id(backend_id),
                    "functionDeclaration": _SELECT_VALUE_JS,
                    "arguments": [{"value": str(payload.get("value", ""))}],
                    "returnByValue": True,
                },
            )
            selected = res.get("result", {}).get("value") if isinstance(res.get("result"), dict) else None
            return {"success": True, "action": "select", "ref": ref, "value": selected}
        if kind == "press":
            if ref:
                conn.send("DOM.focus", {"backendNodeId": _backend_id(ref)})
            key = str(payload.get("key") or "Enter")
            self._press_key(key)
            return {"success": True, "action": "press", "ref": ref, "key": key}
        raise TransportError(f"Unsupported action: {kind}")

    def stop(self) -> dict[str, Any]:
        if self.conn is not None:
            self.conn.close()
            self.conn = None
        target_id, self.target_id = self.target_id, None
        if target_id:
            browser = self._connect(self._browser_ws(), timeout=self.timeout)
            try:
                browser.send("Target.closeTarget", {"targetId": target_id})
            finally:
                browser.close()
        self.url = ""
        return {"status": "stopped"}


__all__ = ["BrowserTransport", "CdpTransport", "flatten_ax_nodes"]
