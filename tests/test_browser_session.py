from __future__ import annotations

import pytest


class DummyTransport:
    def __init__(self, elements_after: int = 0) -> None:
        self.calls: list[str] = []
        self.elements_after = elements_after
        self.snapshots = 0

    def start(self) -> dict:
        self.calls.append("start")
        return {"status": "started", "targetId": "t1"}

    def navigate(self, url: str, timeout_ms: int) -> dict:
        self.calls.append(f"navigate:{url}:{timeout_ms}")
        return {"status": "success", "url": url}

    def snapshot(self) -> dict:
        self.snapshots += 1
        elements = {"b1": {"role": "button", "name": "Continue"}} if self.snapshots > self.elements_after else {}
        return {"status": "success", "url": "", "elements": elements}

    def act(self, kind: str, ref: str | None, payload: dict) -> dict:
        if kind == "explode":
            raise RuntimeError("socket closed")
        self.calls.append(f"act:{kind}:{ref}")
        return {"success": True}

    def stop(self) -> dict:
        self.calls.append("stop")
        return {"status": "stopped"}


def test_operations_require_start() -> None:
    from taskhawk.browser_session import BrowserSession
    from taskhawk.errors import SessionNotStartedError

    session = BrowserSession(DummyTransport())
    with pytest.raises(SessionNotStartedError):
        session.snapshot()
    with pytest.raises(SessionNotStartedError):
        session.perform_action("click", "b1")
    assert session.stop() == {"status": "not_started"}


def test_navigate_auto_starts_and_tracks_target() -> None:
    from taskhawk.browser_session import BrowserSession

    transport = DummyTransport()
    session = BrowserSession(transport, navigation_timeout_ms=1234)
    result = session.navigate("https://example.com/")

    assert transport.calls == ["start", "navigate:https://example.com/:1234"]
    assert result["url"] == "https://example.com/"
    assert session.current_target == "https://example.com/"
    assert session.snapshot().url == "https://example.com/"

    session.navigate("https://example.com/b", timeout_ms=10)
    assert transport.calls[-1] == "navigate:https://example.com/b:10"
    assert session.start() == {"status": "already_started"}


def test_stop_clears_target_handle() -> None:
    from taskhawk.browser_session import BrowserSession

    with BrowserSession(DummyTransport()) as session:
        session.navigate("https://example.com/")
    assert session.started is False
    assert session.current_target is None


def test_foreign_transport_errors_become_transport_errors() -> None:
    from taskhawk.browser_session import BrowserSession
    from taskhawk.errors import TransportError

    session = BrowserSession(DummyTransport())
    session.start()
    with pytest.raises(TransportError, match="socket closed"):
        session.perform_action("explode", None)


def test_snapshot_role_filter() -> None:
    from taskhawk.browser_session import BrowserSession

    session = BrowserSession(DummyTransport())
    session.start()
    assert list(session.snapshot({"roles": ["button"]}).elements) == ["b1"]
    assert len(session.snapshot({"roles": ["link"]})) == 0


def test_wait_for_element_polls_until_found(monkeypatch: pytest.MonkeyPatch) -> None:
    import taskhawk.browser_session as browser_session
    from taskhawk.browser_session import BrowserSession

    monkeypatch.setattr(browser_session.time, "sleep", lambda _s: None)
    transport = DummyTransport(elements_after=2)
    session = BrowserSession(transport)
    session.start()
    assert session.wait_for_element("continue", timeout_ms=10_000, interval_ms=1) == "b1"
    assert transport.snapshots == 3


def test_wait_for_element_times_out(monkeypatch: pytest.MonkeyPatch) -> None:
    import taskhawk.browser_session as browser_session
    from taskhawk.browser_session import BrowserSession
    from taskhawk.errors import ResolutionError

    monkeypatch.setattr(browser_session.time, "sleep", lambda _s: None)
    session = BrowserSession(DummyTransport(elements_after=10**6))
    session.start()
    with pytest.raises(ResolutionError) as excinfo:
        session.wait_for_element("continue", timeout_ms=0)
    assert excinfo.value.target == "continue"
    assert excinfo.value.attempts == 1
