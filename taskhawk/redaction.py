"""Redaction of step parameters before they are written into an execution trace.

Traces may be persisted to a public blob store, so this module prefers safety over
fidelity: typed secrets and credential-like URL parameters are replaced by
length-only placeholders. The executor's real inputs are never modified.
"""

from __future__ import annotations

import copy
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .sensitivity import is_sensitive_key


def _redacted_summary(value: Any) -> str:
    if value is None:
        return "<redacted>"
    if isinstance(value, (bytes, bytearray)):
        return f"<redacted bytes len={len(value)}>"
    if isinstance(value, str):
        return f"<redacted str len={len(value)}>"
    if isinstance(value, (list, tuple, set)):
        return f"<redacted list len={len(value)}>"
    if isinstance(value, dict):
        return f"<redacted dict keys={len(value)}>"
    return "<redacted>"


def _looks_like_query_string(value: str) -> bool:
    return "=" in value


def _redact_pairs(raw: str) -> tuple[str, bool]:
    pairs = parse_qsl(raw, keep_blank_values=True)
    changed = False
    out_pairs: list[tuple[str, str]] = []
    for k, v in pairs:
        if is_sensitive_key(k) and v:
            out_pairs.append((k, "<redacted>"))
            changed = True
        else:
            out_pairs.append((k, v))
    if not changed:
        return raw, False
    return urlencode(out_pairs, doseq=True), True


def redact_url(url: str) -> str:
    """Redact credential-like URL parameters without destroying normal queries.

    - Keeps non-sensitive query params intact.
    - Redacts values for keys like token/auth/secret/api-key.
    - Sanitizes the fragment when it looks like a query string (OAuth-style).
    - Removes userinfo (`user:pass@host`) from netloc.

    Returns the original URL unchanged when nothing needs redaction.
    """
    if not isinstance(url, str) or not url:
        return url
    try:
        parts = urlsplit(url)
    except ValueError:
        return url

    changed = False
    netloc = parts.netloc
    query = parts.query
    fragment = parts.fragment

    if "@" in netloc:
        netloc = netloc.split("@", 1)[1]
        changed = True
    if query:
        query, q_changed = _redact_pairs(query)
        changed = changed or q_changed
    if fragment and _looks_like_query_string(fragment):
        fragment, f_changed = _redact_pairs(fragment)
        changed = changed or f_changed

    if not changed:
        return url
    return urlunsplit((parts.scheme, netloc, parts.path, query, fragment))


def redact_step_params(kind: str, params: dict[str, Any] | None) -> tuple[dict[str, Any], int]:
    """Return (sanitized_params, redacted_count) for one step."""
    if not isinstance(params, dict):
        return {}, 0

    out = copy.deepcopy(params)
    redacted = 0
    selector = str(out.get("selector") or "")

    for key in list(out.keys()):
        value = out[key]
        lk = str(key).lower()

        if lk == "url" and isinstance(value, str):
            red = redact_url(value)
            if red != value:
                out[key] = red
                redacted += 1
            continue

        if lk == "fields" and isinstance(value, dict):
            fields: dict[str, Any] = {}
            for field_name, field_value in value.items():
                if is_sensitive_key(str(field_name)):
                    fields[field_name] = _redacted_summary(field_value)
                    redacted += 1
                else:
                    fields[field_name] = field_value
            out[key] = fields
            continue

        if kind in {"type", "select"} and lk in {"text", "value"} and is_sensitive_key(selector):
            out[key] = _redacted_summary(value)
            redacted += 1
            continue

        if lk != "selector" and is_sensitive_key(lk):
            out[key] = _redacted_summary(value)
            redacted += 1

    return out, redacted


def redact_result(kind: str, result: dict[str, Any] | None) -> dict[str, Any] | None:
    """Apply step-parameter redaction to an action result (it echoes the inputs)."""
    if not isinstance(result, dict):
        return result
    sanitized, count = redact_step_params(kind, result)
    if count and "output" in sanitized:
        sanitized["output"] = f"{kind} on {sanitized.get('selector') or sanitized.get('url') or 'page'} (redacted)"
    return sanitized


__all__ = ["redact_result", "redact_step_params", "redact_url"]
