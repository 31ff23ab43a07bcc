from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

DEFAULT_PUBLISHER_URL = "https://publisher.walrus-testnet.walrus.space"
DEFAULT_AGGREGATOR_URL = "https://aggregator.walrus-testnet.walrus.space"


def _env_bool(env: Mapping[str, str], key: str, fallback: bool) -> bool:
    raw = env.get(key)
    if raw is None:
        return fallback
    v = raw.strip().lower()
    if v in {"1", "true", "yes", "y", "on"}:
        return True
    if v in {"0", "false", "no", "n", "off"}:
        return False
    return fallback


def _env_int(env: Mapping[str, str], key: str, fallback: int) -> int:
    raw = env.get(key)
    if raw is None:
        return fallback
    try:
        return int(raw)
    except ValueError:
        return fallback


@dataclass
class TaskhawkConfig:
    cdp_host: str = "127.0.0.1"
    cdp_port: int = 9222
    max_retries: int = 3
    # Element actions back off linearly, blob store requests exponentially.
    action_retry_delay_ms: int = 500
    retry_base_delay_ms: int = 1000
    request_timeout_ms: int = 30_000
    navigation_timeout_ms: int = 30_000
    auto_store: bool = True
    graceful_degradation: bool = True
    publisher_url: str = DEFAULT_PUBLISHER_URL
    aggregator_url: str = DEFAULT_AGGREGATOR_URL
    epochs: int = 1
    redact_traces: bool = True

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> TaskhawkConfig:
        env_map = os.environ if env is None else env
        return cls(
            cdp_host=(env_map.get("TASKHAWK_CDP_HOST") or "127.0.0.1").strip(),
            cdp_port=_env_int(env_map, "TASKHAWK_CDP_PORT", 9222),
            max_retries=max(1, _env_int(env_map, "TASKHAWK_MAX_RETRIES", 3)),
            action_retry_delay_ms=max(0, _env_int(env_map, "TASKHAWK_ACTION_RETRY_DELAY_MS", 500)),
            retry_base_delay_ms=max(0, _env_int(env_map, "TASKHAWK_RETRY_BASE_DELAY_MS", 1000)),
            request_timeout_ms=max(1, _env_int(env_map, "TASKHAWK_REQUEST_TIMEOUT_MS", 30_000)),
            navigation_timeout_ms=max(1, _env_int(env_map, "TASKHAWK_NAVIGATION_TIMEOUT_MS", 30_000)),
            auto_store=_env_bool(env_map, "TASKHAWK_AUTO_STORE", True),
            graceful_degradation=_env_bool(env_map, "TASKHAWK_GRACEFUL_DEGRADATION", True),
            publisher_url=(env_map.get("TASKHAWK_PUBLISHER_URL") or DEFAULT_PUBLISHER_URL).strip(),
            aggregator_url=(env_map.get("TASKHAWK_AGGREGATOR_URL") or DEFAULT_AGGREGATOR_URL).strip(),
            epochs=max(1, _env_int(env_map, "TASKHAWK_STORE_EPOCHS", 1)),
            redact_traces=_env_bool(env_map, "TASKHAWK_REDACT_TRACES", True),
        )

    @property
    def cdp_base_url(self) -> str:
        return f"http://{self.cdp_host}:{self.cdp_port}"
