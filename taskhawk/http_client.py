from __future__ import annotations

import http.client
import json
import ssl
import urllib.parse
from dataclasses import dataclass
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .errors import RequestTimeoutError, TransportError

USER_AGENT = "taskhawk/1.0"


@dataclass(frozen=True)
class HttpResponse:
    status: int
    body: str
    headers: dict[str, str]


def _is_timeout(exc: BaseException) -> bool:
    if isinstance(exc, TimeoutError):
        return True
    reason = getattr(exc, "reason", None)
    if isinstance(reason, TimeoutError):
        return True
    return "timed out" in str(reason or "").lower()


def http_request(
    url: str,
    *,
    method: str = "GET",
    body: bytes | None = None,
    headers: dict[str, str] | None = None,
    timeout: float = 30.0,
) -> HttpResponse:
    """Issue one HTTP request.

    Raises RequestTimeoutError when the deadline passes (connect or read), and
    TransportError for every other network failure or non-2xx status.
    """
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise TransportError("Only http/https are supported")

    req = Request(url, data=body, method=method, headers={"User-Agent": USER_AGENT, **(headers or {})})
    ctx = ssl.create_default_context() if parsed.scheme == "https" else None
    try:
        with urlopen(req, timeout=timeout, context=ctx) as resp:
            raw = resp.read()
            return HttpResponse(
                status=int(resp.status),
                body=raw.decode("utf-8", errors="replace"),
                headers=dict(resp.headers or {}),
            )
    except HTTPError as exc:
        try:
            detail = exc.read().decode("utf-8", errors="replace")
        except Exception:  # noqa: BLE001
            detail = str(exc.reason)
        raise TransportError(f"HTTP {exc.code}: {detail}") from exc
    except (TimeoutError, URLError, OSError, http.client.HTTPException) as exc:
        if _is_timeout(exc):
            raise RequestTimeoutError(f"Request timeout after {int(timeout * 1000)}ms") from exc
        raise TransportError(str(exc)) from exc


def http_get_json(url: str, timeout: float = 2.0) -> Any:
    resp = http_request(url, timeout=timeout)
    try:
        return json.loads(resp.body)
    except json.JSONDecodeError as exc:
        raise TransportError(f"Invalid JSON from {url}: {exc}") from exc


__all__ = ["HttpResponse", "http_get_json", "http_request"]
