from __future__ import annotations


def test_defaults() -> None:
    from taskhawk.config import DEFAULT_PUBLISHER_URL, TaskhawkConfig

    cfg = TaskhawkConfig.from_env({})
    assert cfg.max_retries == 3
    assert cfg.request_timeout_ms == 30_000
    assert cfg.auto_store is True and cfg.graceful_degradation is True
    assert cfg.publisher_url == DEFAULT_PUBLISHER_URL
    assert cfg.cdp_base_url == "http://127.0.0.1:9222"


def test_env_overrides_and_fallbacks() -> None:
    from taskhawk.config import TaskhawkConfig

    cfg = TaskhawkConfig.from_env(
        {
            "TASKHAWK_CDP_PORT": "9333",
            "TASKHAWK_MAX_RETRIES": "0",
            "TASKHAWK_RETRY_BASE_DELAY_MS": "not-a-number",
            "TASKHAWK_AUTO_STORE": "off",
            "TASKHAWK_GRACEFUL_DEGRADATION": "maybe",
            "TASKHAWK_PUBLISHER_URL": " http://localhost:31415 ",
            "TASKHAWK_REDACT_TRACES": "0",
        }
    )
    assert cfg.cdp_port == 9333
    assert cfg.max_retries == 1
    assert cfg.retry_base_delay_ms == 1000
    assert cfg.auto_store is False
    assert cfg.graceful_degradation is True
    assert cfg.publisher_url == "http://localhost:31415"
    assert cfg.redact_traces is False


def test_clients_built_from_config() -> None:
    from taskhawk.blob_store import BlobStoreClient
    from taskhawk.browser_session import BrowserSession
    from taskhawk.config import TaskhawkConfig
    from taskhawk.executor import ActionExecutor

    cfg = TaskhawkConfig(max_retries=5, action_retry_delay_ms=50, retry_base_delay_ms=250, cdp_port=9555)
    client = BlobStoreClient.from_config(cfg)
    assert (client.max_retries, client.retry_base_delay_ms) == (5, 250)

    ex = ActionExecutor.from_config(cfg)
    assert (ex.max_retries, ex.retry_delay_ms) == (5, 50)
    assert isinstance(ex.session, BrowserSession)
    assert ex.session.transport.port == 9555
