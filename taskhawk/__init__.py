"""Plan execution against a live browser with durable execution traces."""

from .blob_store import BlobStoreClient, RetrieveResult, StoreResult
from .browser_session import BrowserSession
from .config import TaskhawkConfig
from .errors import (
    ActionError,
    BlobStoreError,
    InvalidStateError,
    RequestTimeoutError,
    ResolutionError,
    SessionNotStartedError,
    StorageError,
    TaskhawkError,
    TransportError,
    ValidationError,
)
from .executor import ActionExecutor
from .persist import PersistingRecorder, StorageRecord
from .resolver import resolve_element
from .runner import RunOutcome, configure_logging, run_plan
from .snapshot import ElementDescriptor, Snapshot
from .steps import ExecutionSummary, PlanValidation, Step, StepKind, StepResult, steps_from_plan, validate_plan
from .trace import ExecutionState, ExecutionTrace, TraceRecorder, TraceRecorderProtocol
from .transport import BrowserTransport, CdpTransport

__version__ = "0.1.0"

__all__ = [
    "ActionError",
    "ActionExecutor",
    "BlobStoreClient",
    "BlobStoreError",
    "BrowserSession",
    "BrowserTransport",
    "CdpTransport",
    "ElementDescriptor",
    "ExecutionState",
    "ExecutionSummary",
    "ExecutionTrace",
    "InvalidStateError",
    "PersistingRecorder",
    "PlanValidation",
    "RequestTimeoutError",
    "ResolutionError",
    "RetrieveResult",
    "RunOutcome",
    "SessionNotStartedError",
    "Snapshot",
    "Step",
    "StepKind",
    "StepResult",
    "StorageError",
    "StorageRecord",
    "StoreResult",
    "TaskhawkConfig",
    "TaskhawkError",
    "TraceRecorder",
    "TraceRecorderProtocol",
    "TransportError",
    "ValidationError",
    "configure_logging",
    "resolve_element",
    "run_plan",
    "steps_from_plan",
    "validate_plan",
]
