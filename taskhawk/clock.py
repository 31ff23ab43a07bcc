"""Wall-clock helpers shared by the trace and storage layers."""

from __future__ import annotations

import time
from datetime import datetime, timezone


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def now_ms() -> int:
    return int(time.time() * 1000)


def elapsed_ms(start: float) -> int:
    """Milliseconds since a `time.monotonic()` reading."""
    return int((time.monotonic() - start) * 1000)
