"""
Execution trace recording.

A TraceRecorder holds the trace of one execution attempt: goal, an append-only
list of step log entries, the final result, the last error and a coarse state.

State machine: PLANNING -> EXECUTING -> {COMPLETED, FAILED}. `set_state` only
checks that the value is one of the four states; it does not enforce the arrows.
Any state is reachable from any other, and `log_error` relies on that to jump to
FAILED unconditionally.
"""

from __future__ import annotations

import copy
import secrets
import string
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from .clock import now_iso, now_ms
from .errors import InvalidStateError
from .redaction import redact_result, redact_step_params


class ExecutionState(str, Enum):
    PLANNING = "planning"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = frozenset({ExecutionState.COMPLETED, ExecutionState.FAILED})

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_session_id() -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"exec_{now_ms()}_{suffix}"


def coerce_state(value: Any) -> ExecutionState:
    try:
        return ExecutionState(value)
    except (ValueError, TypeError):
        raise InvalidStateError(f"Invalid state: {value!r}") from None


def _step_attr(step: Any, *names: str) -> Any:
    for name in names:
        if isinstance(step, Mapping):
            value = step.get(name)
        else:
            value = getattr(step, name, None)
        if value not in (None, ""):
            return value
    return None


@dataclass
class ExecutionTrace:
    session_id: str
    goal: str | None = None
    start_time: str = field(default_factory=now_iso)
    end_time: str | None = None
    steps: list[dict[str, Any]] = field(default_factory=list)
    final_result: Any = None
    error: dict[str, Any] | None = None
    state: ExecutionState = ExecutionState.PLANNING

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "goal": self.goal,
            "state": self.state.value,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "steps": copy.deepcopy(self.steps),
            "finalResult": copy.deepcopy(self.final_result),
            "error": copy.deepcopy(self.error),
        }


class TraceRecorderProtocol(Protocol):
    """Capability surface shared by TraceRecorder and its decorators."""

    @property
    def session_id(self) -> str: ...

    def set_goal(self, goal: str | None) -> None: ...

    def set_state(self, new_state: ExecutionState | str) -> Any: ...

    def get_state(self) -> ExecutionState: ...

    def log_step(
        self,
        step: Any,
        result: Any,
        status: str,
        output: Any = None,
        *,
        duration_ms: int | None = None,
    ) -> dict[str, Any]: ...

    def log_error(self, error: BaseException | str, context: dict[str, Any] | None = None) -> Any: ...

    def set_final_result(self, result: Any) -> Any: ...

    def get_trace(self) -> dict[str, Any]: ...

    def get_summary(self) -> dict[str, Any]: ...

    def reset(self) -> None: ...

    def format_trace(self) -> str: ...


class TraceRecorder:
    """In-memory recorder for one execution's trace."""

    def __init__(self, session_id: str | None = None, *, redact: bool = True) -> None:
        self._session_id = session_id or generate_session_id()
        self.redact = redact
        self.trace = ExecutionTrace(session_id=self._session_id)

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def state(self) -> ExecutionState:
        return self.trace.state

    def set_goal(self, goal: str | None) -> None:
        self.trace.goal = goal

    def set_state(self, new_state: ExecutionState | str) -> None:
        state = coerce_state(new_state)
        self.trace.state = state
        if state in TERMINAL_STATES and self.trace.end_time is None:
            self.trace.end_time = now_iso()

    def get_state(self) -> ExecutionState:
        return self.trace.state

    def log_step(
        self,
        step: Any,
        result: Any,
        status: str,
        output: Any = None,
        *,
        duration_ms: int | None = None,
    ) -> dict[str, Any]:
        index = len(self.trace.steps)
        kind = _step_attr(step, "kind", "type")
        kind_name = getattr(kind, "value", kind) or "unknown"
        params = _step_attr(step, "params")

        entry_params: Any = dict(params) if isinstance(params, Mapping) else None
        entry_result = result
        entry_output = output
        if self.redact:
            redacted = 0
            if entry_params is not None:
                entry_params, redacted = redact_step_params(str(kind_name), entry_params)
            if isinstance(result, dict):
                entry_result = redact_result(str(kind_name), result)
            if redacted and isinstance(entry_result, dict) and isinstance(output, str):
                entry_output = entry_result.get("output", output)

        entry = {
            "stepIndex": index,
            "stepId": _step_attr(step, "id"),
            "stepName": str(_step_attr(step, "name", "id") or f"step_{index}"),
            "stepType": str(kind_name),
            "status": status,
            "timestamp": now_iso(),
            "params": entry_params,
            "result": copy.deepcopy(entry_result),
            "output": entry_output,
            "duration": duration_ms,
        }
        self.trace.steps.append(entry)
        return entry

    def log_error(self, error: BaseException | str, context: dict[str, Any] | None = None) -> None:
        if isinstance(error, BaseException):
            message = str(error) or error.__class__.__name__
            error_type: str | None = error.__class__.__name__
        else:
            message = str(error)
            error_type = None
        self.trace.error = {
            "message": message,
            "type": error_type,
            "context": dict(context or {}),
            "timestamp": now_iso(),
        }
        self.set_state(ExecutionState.FAILED)

    def set_final_result(self, result: Any) -> None:
        self.trace.final_result = result

    def get_trace(self) -> dict[str, Any]:
        return self.trace.to_dict()

    def get_summary(self) -> dict[str, Any]:
        steps = self.trace.steps
        return {
            "sessionId": self.trace.session_id,
            "goal": self.trace.goal,
            "state": self.trace.state.value,
            "startTime": self.trace.start_time,
            "endTime": self.trace.end_time,
            "totalSteps": len(steps),
            "successfulSteps": sum(1 for s in steps if s.get("status") == "success"),
            "failedSteps": sum(1 for s in steps if s.get("status") == "error"),
            "completed": self.trace.state is ExecutionState.COMPLETED,
            "failed": self.trace.state is ExecutionState.FAILED,
        }

    def reset(self) -> None:
        self.trace = ExecutionTrace(session_id=self._session_id)

    def format_trace(self) -> str:
        s = self.get_summary()
        width = 68
        rule = "+" + "-" * width + "+"

        def row(text: str) -> str:
            return "| " + text[: width - 2].ljust(width - 2) + " |"

        lines = [
            rule,
            row("EXECUTION TRACE"),
            rule,
            row(f"Session ID: {s['sessionId']}"),
            row(f"Goal: {s['goal'] or ''}"),
            row(f"State: {s['state']}"),
            row(f"Start: {s['startTime']}"),
            row(f"End: {s['endTime'] or 'Running...'}"),
            rule,
            row(f"STEPS ({s['totalSteps']} total, {s['successfulSteps']} success, {s['failedSteps']} failed)"),
            rule,
        ]
        for entry in self.trace.steps:
            status = entry.get("status")
            icon = "+" if status == "success" else "x" if status == "error" else "o"
            lines.append(row(f"[{entry['stepIndex']}] {icon} {entry['stepName']}: {status}"))
        lines.append(rule)
        return "\n".join(lines)


__all__ = [
    "ExecutionState",
    "ExecutionTrace",
    "TERMINAL_STATES",
    "TraceRecorder",
    "TraceRecorderProtocol",
    "coerce_state",
    "generate_session_id",
]
