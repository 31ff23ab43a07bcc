"""Small helpers for identifying potentially sensitive keys and field targets.

Used to keep secrets typed into pages out of persisted traces.
"""

from __future__ import annotations

_SENSITIVE_SUBSTRINGS = (
    "token",
    "secret",
    "password",
    "passwd",
    "pwd",
    "passcode",
    "authorization",
    "cookie",
    "session",
    "jwt",
    "bearer",
    "api-key",
    "api_key",
    "apikey",
    "otp",
    "cvv",
    "cvc",
    "card number",
)

_SENSITIVE_EXACT = {
    # Avoid false-positives like "author"/"authorship" while still protecting obvious keys.
    "auth",
    "pin",
    "ssn",
}


def is_sensitive_key(key: str) -> bool:
    k = (key or "").strip().lower()
    if not k:
        return False
    if k in _SENSITIVE_EXACT:
        return True
    return any(s in k for s in _SENSITIVE_SUBSTRINGS)
