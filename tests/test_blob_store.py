from __future__ import annotations

import json
import socket
from urllib.error import HTTPError, URLError

import pytest


class DummyResponse:
    def __init__(self, body: str | bytes, status: int = 200) -> None:
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        self.status = status
        self.headers = {"Content-Type": "application/json"}

    def read(self) -> bytes:
        return self._body

    def __enter__(self) -> DummyResponse:
        return self

    def __exit__(self, *args) -> None:  # noqa: ANN002
        return None


class FakeBlobServer:
    """In-memory publisher/aggregator behind a patched urlopen."""

    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}
        self.requests: list[tuple[str, str]] = []
        self.failures: list[BaseException] = []

    def __call__(self, req, timeout=None, context=None):  # noqa: ANN001,ARG002
        self.requests.append((req.get_method(), req.full_url))
        if self.failures:
            raise self.failures.pop(0)
        if req.get_method() == "PUT":
            blob_id = f"blob{len(self.blobs) + 1}"
            self.blobs[blob_id] = req.data
            return DummyResponse(json.dumps({"newlyCreated": {"blobObject": {"blobId": blob_id}}}))
        blob_id = req.full_url.rsplit("/", 1)[-1]
        if blob_id not in self.blobs:
            raise HTTPError(req.full_url, 404, "Not Found", {}, None)
        return DummyResponse(self.blobs[blob_id])


@pytest.fixture()
def server(monkeypatch: pytest.MonkeyPatch) -> FakeBlobServer:
    import taskhawk.http_client as http_client

    fake = FakeBlobServer()
    monkeypatch.setattr(http_client, "urlopen", fake)
    return fake


@pytest.fixture()
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    import taskhawk.blob_store as blob_store

    calls: list[float] = []
    monkeypatch.setattr(blob_store.time, "sleep", lambda s: calls.append(s))
    return calls


def _client(**kwargs):  # noqa: ANN003
    from taskhawk.blob_store import BlobStoreClient

    return BlobStoreClient("https://pub.example", "https://agg.example/", **kwargs)


def test_store_then_retrieve_round_trip(server: FakeBlobServer) -> None:
    client = _client(epochs=5)
    data = {"name": "trace", "steps": [1, 2, {"ok": True}], "unicode": "Zürich"}

    stored = client.store(data)
    assert stored.success and stored.blob_id == "blob1"
    assert stored.outcome == "newly_created"
    assert server.requests[0] == ("PUT", "https://pub.example/v1/blobs?epochs=5")

    fetched = client.retrieve(stored.blob_id)
    assert fetched.data == data
    assert server.requests[1] == ("GET", "https://agg.example/v1/blobs/blob1")


@pytest.mark.parametrize(
    "payload,expected",
    [
        ({"alreadyCertified": {"blobId": "flat"}}, "flat"),
        ({"alreadyCertified": {"blobObject": {"blobId": "nested"}}}, "nested"),
    ],
)
def test_already_certified_shapes(monkeypatch: pytest.MonkeyPatch, payload: dict, expected: str) -> None:
    import taskhawk.http_client as http_client

    monkeypatch.setattr(http_client, "urlopen", lambda req, timeout=None, context=None: DummyResponse(json.dumps(payload)))
    result = _client().store({"a": 1})
    assert result.blob_id == expected
    assert result.outcome == "already_certified"


@pytest.mark.parametrize(
    "payload,message",
    [
        ({"markedInvalid": {}}, "marked invalid"),
        ({"error": {"message": "quota exceeded"}}, "quota exceeded"),
        ({"newlyCreated": {"blobObject": {}}}, "missing a blob id"),
        ({"something": 1}, "Unrecognized"),
    ],
)
def test_store_error_shapes_are_not_retried(
    monkeypatch: pytest.MonkeyPatch, sleeps: list[float], payload: dict, message: str
) -> None:
    import taskhawk.http_client as http_client
    from taskhawk.errors import BlobStoreError

    calls = []

    def fake_urlopen(req, timeout=None, context=None):  # noqa: ANN001,ARG001
        calls.append(req.full_url)
        return DummyResponse(json.dumps(payload))

    monkeypatch.setattr(http_client, "urlopen", fake_urlopen)
    with pytest.raises(BlobStoreError, match=message):
        _client().store({"a": 1})
    assert len(calls) == 1
    assert sleeps == []


def test_store_rejects_null_and_unserializable_data(server: FakeBlobServer) -> None:
    from taskhawk.errors import BlobStoreError

    client = _client()
    with pytest.raises(BlobStoreError):
        client.store(None)
    with pytest.raises(BlobStoreError):
        client.store({"obj": object()})
    assert server.requests == []


def test_transient_failures_back_off_exponentially(server: FakeBlobServer, sleeps: list[float]) -> None:
    from taskhawk.errors import TransportError

    server.failures = [URLError("connection refused") for _ in range(3)]
    client = _client(max_retries=3, retry_base_delay_ms=1000)
    with pytest.raises(TransportError) as excinfo:
        client.store({"a": 1})

    assert sleeps == [1.0, 2.0]
    assert excinfo.value.attempts == 3
    assert "after 3 attempts" in str(excinfo.value)
    assert "connection refused" in str(excinfo.value)


def test_transient_failure_then_success(server: FakeBlobServer, sleeps: list[float]) -> None:
    server.failures = [HTTPError("https://pub.example", 503, "Unavailable", {}, None)]
    result = _client(retry_base_delay_ms=10).store({"a": 1})
    assert result.success
    assert sleeps == [0.01]
    assert len(server.requests) == 2


def test_timeout_fails_fast(server: FakeBlobServer, sleeps: list[float]) -> None:
    from taskhawk.errors import RequestTimeoutError

    server.failures = [URLError(socket.timeout("timed out")), URLError("unused")]
    with pytest.raises(RequestTimeoutError) as excinfo:
        _client(request_timeout_ms=250).store({"a": 1})

    assert len(server.requests) == 1
    assert sleeps == []
    assert excinfo.value.attempts == 1
    assert "250ms" in str(excinfo.value)


def test_retrieve_falls_back_to_raw_text(monkeypatch: pytest.MonkeyPatch) -> None:
    import taskhawk.http_client as http_client

    monkeypatch.setattr(http_client, "urlopen", lambda req, timeout=None, context=None: DummyResponse("plain text"))
    assert _client().retrieve("abc").data == "plain text"


def test_retrieve_validates_blob_id(server: FakeBlobServer) -> None:
    from taskhawk.errors import BlobStoreError

    with pytest.raises(BlobStoreError):
        _client().retrieve("  ")
    assert server.requests == []


def test_exists_never_raises(server: FakeBlobServer, sleeps: list[float]) -> None:
    client = _client(max_retries=2)
    blob_id = client.store({"a": 1}).blob_id
    assert client.exists(blob_id) is True
    assert client.exists("missing") is False


def test_store_task_and_trace_envelopes(server: FakeBlobServer) -> None:
    client = _client()
    task = client.store_task("task-1", "find flights", {"source": "cli"})
    trace = client.store_trace("task-1", {"steps": []}, {"sessionId": "exec_1"})

    task_body = json.loads(server.blobs[task.blob_id])
    assert task_body["type"] == "task_definition"
    assert task_body["goal"] == "find flights"
    assert task_body["source"] == "cli"
    assert task_body["createdAt"].endswith("Z")

    trace_body = json.loads(server.blobs[trace.blob_id])
    assert trace_body["type"] == "execution_trace"
    assert trace_body["trace"] == {"steps": []}
    assert trace_body["sessionId"] == "exec_1"


def test_connectivity_check(server: FakeBlobServer) -> None:
    report = _client().test_connectivity()
    assert report["success"] is True
    assert report["dataIntegrity"] is True
    assert report["blobId"] == "blob1"


def test_connectivity_check_reports_failure(server: FakeBlobServer, sleeps: list[float]) -> None:
    server.failures = [URLError("down") for _ in range(3)]
    report = _client().test_connectivity()
    assert report["success"] is False
    assert report["connected"] is False
    assert "down" in report["error"]


def test_truncated_response_is_retried_as_transport_failure(server: FakeBlobServer, sleeps: list[float]) -> None:
    import http.client

    from taskhawk.errors import TransportError

    server.failures = [http.client.IncompleteRead(b"partial") for _ in range(2)]
    with pytest.raises(TransportError) as excinfo:
        _client(max_retries=2, retry_base_delay_ms=10).store({"a": 1})

    assert len(server.requests) == 2
    assert sleeps == [0.01]
    assert "IncompleteRead" in str(excinfo.value)
