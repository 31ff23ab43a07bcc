"""End-to-end orchestration of one plan: goal, plan check, execution, trace, storage."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from .errors import TaskhawkError, ValidationError
from .executor import ActionExecutor
from .steps import ExecutionSummary, PlanValidation, Step, steps_from_plan, validate_plan
from .trace import ExecutionState, TraceRecorderProtocol

logger = logging.getLogger("taskhawk.runner")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: int | str = logging.INFO) -> None:
    if isinstance(level, str):
        level = level.upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)


@dataclass
class RunOutcome:
    summary: ExecutionSummary
    validation: PlanValidation
    trace: dict[str, Any]
    storage: dict[str, Any] | None = None

    @property
    def succeeded(self) -> bool:
        return self.validation.is_valid and self.summary.completed and self.summary.failed == 0


def _finish(recorder: TraceRecorderProtocol, final_result: Any, state: ExecutionState) -> None:
    # Within this call a persisting recorder stores once: on set_final_result when the
    # trace is already terminal (a failed step stored it earlier too), otherwise on
    # the transition below.
    recorder.set_final_result(final_result)
    if recorder.get_state() is not state:
        recorder.set_state(state)


def run_plan(
    steps: Iterable[Step | Mapping[str, Any]],
    goal: str,
    *,
    executor: ActionExecutor,
    recorder: TraceRecorderProtocol,
    task_id: str | None = None,
) -> RunOutcome:
    plan = steps_from_plan(steps)
    task_id = task_id or recorder.session_id
    recorder.set_goal(goal)

    store_task = getattr(recorder, "store_task", None)
    if callable(store_task):
        store_task(task_id, goal, {"stepCount": len(plan)})

    recorder.set_state(ExecutionState.PLANNING)
    validation = validate_plan(plan)
    planning_step = {"id": "planning", "name": "Planning", "type": "planning", "params": {"stepCount": len(plan)}}
    try:
        if not validation.is_valid:
            recorder.log_step(planning_step, {"errors": validation.errors}, "error", "; ".join(validation.errors))
            recorder.log_error(ValidationError(f"Invalid plan: {'; '.join(validation.errors)}"), {"phase": "planning"})
            summary = ExecutionSummary(total_steps=len(plan), successful=0, failed=0, completed=False)
            _finish(recorder, {"goal": goal, "validation": validation.errors}, ExecutionState.FAILED)
        else:
            for warning in validation.warnings:
                logger.warning("plan warning: %s", warning)
            recorder.log_step(
                planning_step,
                {"steps": len(plan), "warnings": validation.warnings},
                "success",
                f"Planned {len(plan)} steps",
            )
            recorder.set_state(ExecutionState.EXECUTING)
            summary = executor.execute_steps(plan)
            final_result = {
                "goal": goal,
                "totalSteps": summary.total_steps,
                "successful": summary.successful,
                "failed": summary.failed,
                "completed": summary.completed,
                "context": executor.get_context(),
            }
            _finish(recorder, final_result, ExecutionState.COMPLETED if summary.completed else ExecutionState.FAILED)
    except Exception as exc:
        logger.exception("run for task %s aborted", task_id)
        recorder.log_error(exc, {"phase": "run", "taskId": task_id})
        raise
    finally:
        try:
            executor.close()
        except TaskhawkError as exc:
            logger.warning("failed to close browser session: %s", exc)

    get_storage_info = getattr(recorder, "get_storage_info", None)
    return RunOutcome(
        summary=summary,
        validation=validation,
        trace=recorder.get_trace(),
        storage=get_storage_info() if callable(get_storage_info) else None,
    )


__all__ = ["LOG_FORMAT", "RunOutcome", "configure_logging", "run_plan"]
