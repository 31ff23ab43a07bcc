from __future__ import annotations

import re

import pytest


def test_session_id_format_and_initial_state() -> None:
    from taskhawk.trace import ExecutionState, TraceRecorder

    rec = TraceRecorder()
    assert re.fullmatch(r"exec_\d+_[a-z0-9]{9}", rec.session_id)
    assert rec.get_state() is ExecutionState.PLANNING
    trace = rec.get_trace()
    assert trace["endTime"] is None
    assert trace["steps"] == []


def test_log_step_appends_with_index() -> None:
    from taskhawk.steps import Step, StepKind
    from taskhawk.trace import TraceRecorder

    rec = TraceRecorder()
    for i in range(3):
        before = len(rec.get_trace()["steps"])
        entry = rec.log_step(Step(id=f"s{i}", kind=StepKind.WAIT, name=f"Wait {i}"), {"ok": True}, "success", "done")
        assert entry["stepIndex"] == before
        assert len(rec.get_trace()["steps"]) == before + 1

    first = rec.get_trace()["steps"][0]
    assert first["stepName"] == "Wait 0"
    assert first["stepType"] == "wait"
    assert first["output"] == "done"


def test_log_step_accepts_planner_dicts_and_normalizes_names() -> None:
    from taskhawk.trace import TraceRecorder

    rec = TraceRecorder()
    entry = rec.log_step({"type": "planning"}, None, "success")
    assert entry["stepName"] == "step_0"
    assert entry["stepType"] == "planning"
    entry = rec.log_step({}, None, "error")
    assert entry["stepType"] == "unknown"


@pytest.mark.parametrize("state", ["completed", "failed"])
def test_terminal_states_stamp_end_time_once(state: str) -> None:
    from taskhawk.trace import TraceRecorder

    rec = TraceRecorder()
    rec.set_state(state)
    end = rec.get_trace()["endTime"]
    assert end is not None
    rec.set_state("executing")
    rec.set_state(state)
    assert rec.get_trace()["endTime"] == end


def test_non_terminal_states_never_stamp_end_time() -> None:
    from taskhawk.trace import ExecutionState, TraceRecorder

    rec = TraceRecorder()
    rec.set_state(ExecutionState.EXECUTING)
    rec.set_state(ExecutionState.PLANNING)
    assert rec.get_trace()["endTime"] is None


def test_set_state_rejects_unknown_values_but_allows_any_transition() -> None:
    from taskhawk.errors import InvalidStateError
    from taskhawk.trace import ExecutionState, TraceRecorder

    rec = TraceRecorder()
    with pytest.raises(InvalidStateError):
        rec.set_state("paused")
    with pytest.raises(ValueError):
        rec.set_state(None)

    rec.set_state(ExecutionState.FAILED)
    rec.set_state(ExecutionState.PLANNING)
    assert rec.get_state() is ExecutionState.PLANNING


def test_log_error_forces_failed_from_any_state() -> None:
    from taskhawk.trace import ExecutionState, TraceRecorder

    rec = TraceRecorder()
    rec.set_state(ExecutionState.COMPLETED)
    rec.log_error(RuntimeError("boom"), {"step": "s1"})
    trace = rec.get_trace()
    assert rec.get_state() is ExecutionState.FAILED
    assert trace["error"]["message"] == "boom"
    assert trace["error"]["type"] == "RuntimeError"
    assert trace["error"]["context"] == {"step": "s1"}


def test_reset_clears_everything_but_session_id() -> None:
    from taskhawk.trace import ExecutionState, TraceRecorder

    rec = TraceRecorder()
    sid = rec.session_id
    rec.set_goal("book a flight")
    rec.log_step({"name": "a", "type": "wait"}, {}, "success")
    rec.set_final_result({"x": 1})
    rec.log_error("bad")
    rec.reset()

    trace = rec.get_trace()
    assert rec.session_id == sid == trace["sessionId"]
    assert rec.get_state() is ExecutionState.PLANNING
    assert trace["steps"] == []
    assert trace["finalResult"] is None
    assert trace["error"] is None
    assert trace["endTime"] is None


def test_summary_is_derived_from_steps() -> None:
    from taskhawk.trace import TraceRecorder

    rec = TraceRecorder()
    rec.log_step({"type": "wait"}, {}, "success")
    rec.log_step({"type": "click"}, None, "error")
    rec.log_step({"type": "wait"}, {}, "success")
    rec.set_state("completed")

    s = rec.get_summary()
    assert (s["totalSteps"], s["successfulSteps"], s["failedSteps"]) == (3, 2, 1)
    assert s["completed"] is True and s["failed"] is False


def test_get_trace_returns_a_copy() -> None:
    from taskhawk.trace import TraceRecorder

    rec = TraceRecorder()
    rec.log_step({"type": "wait"}, {"duration": 5}, "success")
    trace = rec.get_trace()
    trace["steps"].clear()
    assert len(rec.get_trace()["steps"]) == 1


def test_sensitive_typed_text_is_redacted_in_trace() -> None:
    from taskhawk.steps import Step, StepKind
    from taskhawk.trace import TraceRecorder

    step = Step(id="s1", kind=StepKind.TYPE, params={"selector": "Password", "text": "hunter2"})
    result = {"action": "type", "selector": "Password", "text": "hunter2", "output": 'Typed "hunter2" into Password'}

    rec = TraceRecorder(redact=True)
    entry = rec.log_step(step, result, "success", result["output"])
    assert "hunter2" not in repr(entry)
    assert step.params["text"] == "hunter2"

    raw = TraceRecorder(redact=False).log_step(step, result, "success", result["output"])
    assert raw["params"]["text"] == "hunter2"


def test_format_trace_lists_steps() -> None:
    from taskhawk.trace import TraceRecorder

    rec = TraceRecorder()
    rec.set_goal("find flights")
    rec.log_step({"name": "Open site", "type": "navigate"}, {}, "success")
    rec.log_step({"name": "Click search", "type": "click"}, None, "error")
    text = rec.format_trace()
    assert "EXECUTION TRACE" in text
    assert "Goal: find flights" in text
    assert "[0] + Open site: success" in text
    assert "[1] x Click search: error" in text
    assert "End: Running..." in text
