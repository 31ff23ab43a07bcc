"""Plan steps, per-step results and plan validation."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class StepKind(str, Enum):
    NAVIGATE = "navigate"
    CLICK = "click"
    TYPE = "type"
    FILL_FORM = "fill_form"
    WAIT = "wait"
    EXTRACT = "extract"
    SNAPSHOT = "snapshot"
    SUBMIT = "submit"
    SELECT = "select"


def parse_kind(raw: Any) -> StepKind | str:
    """Known kinds become StepKind; anything else is kept verbatim for error reporting."""
    if isinstance(raw, StepKind):
        return raw
    try:
        return StepKind(raw)
    except (ValueError, TypeError):
        return "" if raw is None else str(raw)


@dataclass(frozen=True)
class Step:
    id: str
    kind: StepKind | str
    name: str = ""
    params: Mapping[str, Any] = field(default_factory=dict)
    dependencies: tuple[str, ...] = ()
    continue_on_error: bool = False

    @property
    def kind_name(self) -> str:
        return self.kind.value if isinstance(self.kind, StepKind) else str(self.kind)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, index: int | None = None) -> Step:
        """Build from a planner step `{id, name, type, params, dependencies, continueOnError}`."""
        raw_id = data.get("id")
        step_id = str(raw_id) if raw_id not in (None, "") else f"step_{index if index is not None else 0}"
        params = data.get("params")
        deps = data.get("dependencies") or ()
        return cls(
            id=step_id,
            kind=parse_kind(data.get("type", data.get("kind"))),
            name=str(data.get("name") or ""),
            params=dict(params) if isinstance(params, Mapping) else {},
            dependencies=tuple(str(d) for d in deps) if isinstance(deps, (list, tuple)) else (),
            continue_on_error=bool(data.get("continueOnError", data.get("continue_on_error", False))),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.kind_name,
            "params": dict(self.params),
            "dependencies": list(self.dependencies),
            "continueOnError": self.continue_on_error,
        }


def steps_from_plan(plan: Iterable[Mapping[str, Any] | Step]) -> list[Step]:
    out: list[Step] = []
    for i, item in enumerate(plan):
        out.append(item if isinstance(item, Step) else Step.from_dict(item, index=i))
    return out


@dataclass(frozen=True)
class StepResult:
    success: bool
    status: str
    duration_ms: int
    step: Step
    result: dict[str, Any] | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "success": self.success,
            "status": self.status,
            "duration": self.duration_ms,
            "step": self.step.to_dict(),
        }
        if self.success:
            out["result"] = self.result
        else:
            out["error"] = self.error
        return out


@dataclass(frozen=True)
class ExecutionSummary:
    total_steps: int
    successful: int
    failed: int
    completed: bool
    results: list[StepResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalSteps": self.total_steps,
            "successful": self.successful,
            "failed": self.failed,
            "completed": self.completed,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass(frozen=True)
class PlanValidation:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def validate_plan(steps: Iterable[Step]) -> PlanValidation:
    """Structural checks on a plan: ids, dependencies, kinds.

    Parameter-level problems are left to the executor, which reports them per step.
    """
    steps = list(steps)
    errors: list[str] = []
    warnings: list[str] = []
    if not steps:
        return PlanValidation(is_valid=False, errors=["Plan has no steps"])

    seen: dict[str, int] = {}
    for i, step in enumerate(steps):
        if step.id in seen:
            errors.append(f"Duplicate step id: {step.id}")
        else:
            seen[step.id] = i
        if not isinstance(step.kind, StepKind):
            warnings.append(f"Step {step.id} has unknown type: {step.kind_name or '<missing>'}")

    for i, step in enumerate(steps):
        for dep in step.dependencies:
            if dep not in seen:
                errors.append(f"Step {step.id} depends on missing step: {dep}")
            elif seen[dep] >= i:
                warnings.append(f"Step {step.id} depends on later step: {dep}")

    return PlanValidation(is_valid=not errors, errors=errors, warnings=warnings)


__all__ = [
    "ExecutionSummary",
    "PlanValidation",
    "Step",
    "StepKind",
    "StepResult",
    "parse_kind",
    "steps_from_plan",
    "validate_plan",
]
