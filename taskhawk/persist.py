"""
Durable trace recording.

PersistingRecorder wraps any TraceRecorder-shaped object together with a
BlobStoreClient. It delegates every recorder call and, with auto_store on,
follows a transition into COMPLETED/FAILED (and every log_error) with a blocking
store attempt. Those calls return the store outcome instead of None.

With graceful_degradation on, storage failures never escape: they are logged,
appended to StorageRecord.errors and returned as StoreResult(success=False).
With it off they are raised as StorageError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .blob_store import BlobStoreClient, StoreResult
from .clock import now_iso
from .config import TaskhawkConfig
from .errors import BlobStoreError, StorageError, TransportError
from .trace import TERMINAL_STATES, ExecutionState, TraceRecorder, TraceRecorderProtocol

logger = logging.getLogger("taskhawk.persist")


@dataclass
class StorageRecord:
    task_id: str | None = None
    task_blob_id: str | None = None
    trace_blob_id: str | None = None
    stored_at: str | None = None
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "taskId": self.task_id,
            "taskBlobId": self.task_blob_id,
            "traceBlobId": self.trace_blob_id,
            "storedAt": self.stored_at,
            "errors": [dict(e) for e in self.errors],
        }


class PersistingRecorder:
    def __init__(
        self,
        recorder: TraceRecorderProtocol | None = None,
        client: BlobStoreClient | None = None,
        *,
        auto_store: bool = True,
        graceful_degradation: bool = True,
    ) -> None:
        self.recorder: TraceRecorderProtocol = recorder if recorder is not None else TraceRecorder()
        self.client = client if client is not None else BlobStoreClient()
        self.auto_store = auto_store
        self.graceful_degradation = graceful_degradation
        self.storage = StorageRecord()

    @classmethod
    def from_config(cls, config: TaskhawkConfig, *, session_id: str | None = None) -> PersistingRecorder:
        return cls(
            TraceRecorder(session_id, redact=config.redact_traces),
            BlobStoreClient.from_config(config),
            auto_store=config.auto_store,
            graceful_degradation=config.graceful_degradation,
        )

    @property
    def session_id(self) -> str:
        return self.recorder.session_id

    @property
    def state(self) -> ExecutionState:
        return self.recorder.get_state()

    # --- storage ---------------------------------------------------------

    def _storage_failed(self, operation: str, exc: Exception) -> StoreResult:
        message = str(exc)
        self.storage.errors.append({"operation": operation, "error": message, "timestamp": now_iso()})
        if not self.graceful_degradation:
            raise StorageError(f"{operation} failed: {message}") from exc
        logger.warning("%s failed (continuing without persistence): %s", operation, message)
        return StoreResult(success=False, error=message)

    def store_task(self, task_id: str, goal: str | None, metadata: dict[str, Any] | None = None) -> StoreResult:
        self.storage.task_id = task_id
        meta = {"sessionId": self.session_id, **(metadata or {})}
        try:
            result = self.client.store_task(task_id, goal, meta)
        except Exception as exc:  # noqa: BLE001
            return self._storage_failed("store_task", exc)
        self.storage.task_blob_id = result.blob_id
        logger.info("task %s stored as blob %s", task_id, result.blob_id)
        return result

    def store_trace(self, metadata: dict[str, Any] | None = None) -> StoreResult:
        task_id = self.storage.task_id or self.session_id
        meta = {
            "sessionId": self.session_id,
            "taskBlobId": self.storage.task_blob_id,
            "summary": self.recorder.get_summary(),
            **(metadata or {}),
        }
        try:
            result = self.client.store_trace(task_id, self.recorder.get_trace(), meta)
        except Exception as exc:  # noqa: BLE001
            return self._storage_failed("store_trace", exc)
        self.storage.trace_blob_id = result.blob_id
        self.storage.stored_at = now_iso()
        logger.info("trace for %s stored as blob %s", task_id, result.blob_id)
        return result

    def retrieve_trace(self, blob_id: str | None = None) -> Any:
        """Fetch a stored trace payload (defaults to the last trace stored here)."""
        target = blob_id or self.storage.trace_blob_id
        if not target:
            raise StorageError("No trace blob id to retrieve")
        try:
            fetched = self.client.retrieve(target)
        except (TransportError, BlobStoreError) as exc:
            raise StorageError(f"retrieve_trace failed: {exc}") from exc
        data = fetched.data
        if isinstance(data, dict) and "trace" in data:
            return data["trace"]
        return data

    def is_persisted(self) -> bool:
        return bool(self.storage.trace_blob_id)

    def get_storage_info(self) -> dict[str, Any]:
        return {
            **self.storage.to_dict(),
            "persisted": self.is_persisted(),
            "autoStore": self.auto_store,
            "gracefulDegradation": self.graceful_degradation,
        }

    def test_storage_connectivity(self) -> dict[str, Any]:
        return self.client.test_connectivity()

    # --- recorder surface ----------------------------------------------

    def set_goal(self, goal: str | None) -> None:
        self.recorder.set_goal(goal)

    def get_state(self) -> ExecutionState:
        return self.recorder.get_state()

    def set_state(self, new_state: ExecutionState | str) -> StoreResult | None:
        self.recorder.set_state(new_state)
        if self.auto_store and self.recorder.get_state() in TERMINAL_STATES:
            return self.store_trace()
        return None

    def log_step(
        self,
        step: Any,
        result: Any,
        status: str,
        output: Any = None,
        *,
        duration_ms: int | None = None,
    ) -> dict[str, Any]:
        return self.recorder.log_step(step, result, status, output, duration_ms=duration_ms)

    def log_error(self, error: BaseException | str, context: dict[str, Any] | None = None) -> StoreResult | None:
        self.recorder.log_error(error, context)
        if self.auto_store:
            return self.store_trace()
        return None

    def set_final_result(self, result: Any) -> StoreResult | None:
        self.recorder.set_final_result(result)
        if self.auto_store and self.recorder.get_state() in TERMINAL_STATES:
            return self.store_trace()
        return None

    def get_trace(self) -> dict[str, Any]:
        return {**self.recorder.get_trace(), "storage": self.storage.to_dict()}

    def get_summary(self) -> dict[str, Any]:
        return {
            **self.recorder.get_summary(),
            "persisted": self.is_persisted(),
            "traceBlobId": self.storage.trace_blob_id,
            "storageErrors": len(self.storage.errors),
        }

    def reset(self) -> None:
        self.recorder.reset()
        self.storage = StorageRecord()

    def format_trace(self) -> str:
        lines = [self.recorder.format_trace(), "", "PERSISTENCE"]
        lines.append(f"  Task blob:  {self.storage.task_blob_id or '-'}")
        lines.append(f"  Trace blob: {self.storage.trace_blob_id or '-'}")
        lines.append(f"  Stored at:  {self.storage.stored_at or '-'}")
        if self.storage.errors:
            lines.append(f"  Errors ({len(self.storage.errors)}):")
            for err in self.storage.errors:
                lines.append(f"    - {err['operation']}: {err['error']}")
        return "\n".join(lines)


__all__ = ["PersistingRecorder", "StorageRecord"]
