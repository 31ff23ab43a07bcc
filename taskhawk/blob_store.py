"""
Client for a put/get content-addressable blob store (Walrus HTTP API).

Wire contract:
- Store:    PUT {publisher}/v1/blobs?epochs=N   body = serialized payload
            -> {"newlyCreated": {"blobObject": {"blobId": ...}}}
             | {"alreadyCertified": {"blobId": ...} | {"blobObject": {"blobId": ...}}}
             | {"markedInvalid": ...}
             | {"error": {"message": ...}}
- Retrieve: GET {aggregator}/v1/blobs/{blobId} -> raw body (JSON-decoded when possible)

Transient failures are retried with exponential backoff. A request that hits its
deadline fails immediately: the timeout is per request, not per retry loop.
"""

from __future__ import annotations

import json
import logging
import time
import urllib.parse
from dataclasses import dataclass
from typing import Any

from .clock import elapsed_ms, now_iso
from .config import DEFAULT_AGGREGATOR_URL, DEFAULT_PUBLISHER_URL, TaskhawkConfig
from .errors import BlobStoreError, RequestTimeoutError, TransportError
from .http_client import HttpResponse, http_request

logger = logging.getLogger("taskhawk.blob_store")


@dataclass(frozen=True)
class StoreResult:
    success: bool
    blob_id: str | None = None
    size: int = 0
    outcome: str | None = None  # "newly_created" | "already_certified"
    response: dict[str, Any] | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error}
        return {
            "success": True,
            "blobId": self.blob_id,
            "size": self.size,
            "outcome": self.outcome,
        }


@dataclass(frozen=True)
class RetrieveResult:
    success: bool
    blob_id: str
    data: Any
    size: int


def _extract_blob_id(payload: Any) -> tuple[str, str]:
    """Return (blob_id, outcome) from a store response, or raise BlobStoreError."""
    if not isinstance(payload, dict):
        raise BlobStoreError("Invalid response from blob store")

    blob_id: Any = None
    if "newlyCreated" in payload:
        outcome = "newly_created"
        created = payload.get("newlyCreated")
        blob_object = created.get("blobObject") if isinstance(created, dict) else None
        if isinstance(blob_object, dict):
            blob_id = blob_object.get("blobId")
    elif "alreadyCertified" in payload:
        outcome = "already_certified"
        certified = payload.get("alreadyCertified")
        if isinstance(certified, dict):
            blob_id = certified.get("blobId")
            if not blob_id and isinstance(certified.get("blobObject"), dict):
                blob_id = certified["blobObject"].get("blobId")
    elif "markedInvalid" in payload:
        raise BlobStoreError("Blob was marked invalid by the store")
    elif "error" in payload:
        err = payload.get("error")
        message = err.get("message") if isinstance(err, dict) else err
        raise BlobStoreError(f"Blob store error: {message or 'unknown error'}")
    else:
        raise BlobStoreError("Unrecognized response from blob store")

    if not isinstance(blob_id, str) or not blob_id:
        raise BlobStoreError("Blob store response is missing a blob id")
    return blob_id, outcome


class BlobStoreClient:
    def __init__(
        self,
        publisher_url: str = DEFAULT_PUBLISHER_URL,
        aggregator_url: str = DEFAULT_AGGREGATOR_URL,
        *,
        epochs: int = 1,
        max_retries: int = 3,
        retry_base_delay_ms: int = 1000,
        request_timeout_ms: int = 30_000,
    ) -> None:
        self.publisher_url = publisher_url.rstrip("/")
        self.aggregator_url = aggregator_url.rstrip("/")
        self.epochs = max(1, int(epochs))
        self.max_retries = max(1, int(max_retries))
        self.retry_base_delay_ms = max(0, int(retry_base_delay_ms))
        self.request_timeout_ms = max(1, int(request_timeout_ms))

    @classmethod
    def from_config(cls, config: TaskhawkConfig) -> BlobStoreClient:
        return cls(
            config.publisher_url,
            config.aggregator_url,
            epochs=config.epochs,
            max_retries=config.max_retries,
            retry_base_delay_ms=config.retry_base_delay_ms,
            request_timeout_ms=config.request_timeout_ms,
        )

    def fetch_with_retry(
        self,
        url: str,
        *,
        method: str = "GET",
        body: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> HttpResponse:
        last_error: TransportError | None = None
        timeout_s = self.request_timeout_ms / 1000.0

        for attempt in range(1, self.max_retries + 1):
            logger.debug("fetch attempt %d/%d: %s %s", attempt, self.max_retries, method, url)
            try:
                return http_request(url, method=method, body=body, headers=headers, timeout=timeout_s)
            except RequestTimeoutError as exc:
                raise RequestTimeoutError(str(exc), attempts=attempt) from exc
            except TransportError as exc:
                last_error = exc
                logger.debug("fetch attempt %d failed: %s", attempt, exc)
                if attempt < self.max_retries:
                    delay_ms = self.retry_base_delay_ms * 2 ** (attempt - 1)
                    time.sleep(delay_ms / 1000.0)

        logger.warning("request to %s failed after %d attempts: %s", url, self.max_retries, last_error)
        raise TransportError(
            f"Request failed after {self.max_retries} attempts: {last_error}",
            attempts=self.max_retries,
        )

    def store(self, data: Any) -> StoreResult:
        if data is None:
            raise BlobStoreError("Cannot store null data")
        try:
            serialized = json.dumps(data, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise BlobStoreError(f"Data is not serializable: {exc}") from exc

        body = serialized.encode("utf-8")
        url = f"{self.publisher_url}/v1/blobs?epochs={self.epochs}"
        resp = self.fetch_with_retry(
            url,
            method="PUT",
            body=body,
            headers={"Content-Type": "application/json"},
        )

        try:
            payload = json.loads(resp.body)
        except json.JSONDecodeError as exc:
            raise BlobStoreError(f"Invalid JSON from blob store: {exc}") from exc

        blob_id, outcome = _extract_blob_id(payload)
        logger.debug("stored blob %s (%s, %d bytes)", blob_id, outcome, len(body))
        return StoreResult(success=True, blob_id=blob_id, size=len(body), outcome=outcome, response=payload)

    def retrieve(self, blob_id: str) -> RetrieveResult:
        if not isinstance(blob_id, str) or not blob_id.strip():
            raise BlobStoreError("Invalid blob ID")

        url = f"{self.aggregator_url}/v1/blobs/{urllib.parse.quote(blob_id.strip(), safe='')}"
        resp = self.fetch_with_retry(url)
        try:
            data: Any = json.loads(resp.body)
        except json.JSONDecodeError:
            data = resp.body
        return RetrieveResult(success=True, blob_id=blob_id, data=data, size=len(resp.body))

    def exists(self, blob_id: str) -> bool:
        try:
            self.retrieve(blob_id)
        except Exception as exc:  # noqa: BLE001
            logger.debug("blob %s not retrievable: %s", blob_id, exc)
            return False
        return True

    def store_task(self, task_id: str, goal: str | None, metadata: dict[str, Any] | None = None) -> StoreResult:
        return self.store(
            {
                "taskId": task_id,
                "goal": goal,
                "type": "task_definition",
                "createdAt": now_iso(),
                **(metadata or {}),
            }
        )

    def store_trace(
        self, task_id: str, trace: dict[str, Any], metadata: dict[str, Any] | None = None
    ) -> StoreResult:
        return self.store(
            {
                "taskId": task_id,
                "trace": trace,
                "type": "execution_trace",
                "createdAt": now_iso(),
                **(metadata or {}),
            }
        )

    def test_connectivity(self) -> dict[str, Any]:
        """Store a probe blob, read it back and compare."""
        probe = {"test": True, "timestamp": now_iso()}
        start = time.monotonic()
        try:
            stored = self.store(probe)
            fetched = self.retrieve(stored.blob_id or "")
        except Exception as exc:  # noqa: BLE001
            return {
                "success": False,
                "connected": False,
                "error": str(exc),
                "message": f"Blob store connection failed: {exc}",
            }
        return {
            "success": True,
            "connected": True,
            "duration": elapsed_ms(start),
            "dataIntegrity": fetched.data == probe,
            "blobId": stored.blob_id,
            "message": "Blob store is accessible and working",
        }


__all__ = ["BlobStoreClient", "RetrieveResult", "StoreResult"]
