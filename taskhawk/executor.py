"""
Step execution.

ActionExecutor turns plan steps into BrowserSession calls. A step's failure never
escapes `execute_step`: it comes back as an error StepResult. Element-targeting
actions re-snapshot and re-resolve on every attempt and back off linearly
(`retry_delay_ms * attempt`) between attempts.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from .browser_session import BrowserSession
from .config import TaskhawkConfig
from .errors import ActionError, ResolutionError, TransportError, ValidationError
from .resolver import resolve_element
from .snapshot import ElementDescriptor
from .steps import ExecutionSummary, Step, StepKind, StepResult, steps_from_plan
from .trace import TraceRecorderProtocol

logger = logging.getLogger("taskhawk.executor")

DEFAULT_WAIT_MS = 1000
SELECT_SETTLE_MS = 200


def _require(params: Mapping[str, Any], key: str, kind: str) -> Any:
    value = params.get(key)
    if value is None or value == "":
        raise ValidationError(f"{kind}: missing {key} parameter")
    return value


def read_element_value(el: ElementDescriptor, attribute: str | None = None) -> str | None:
    """Extracted value: attribute (if requested), then value, text, name. Empty values fall through."""
    candidates: list[Any] = []
    if attribute:
        candidates.append(el.attributes.get(attribute) or getattr(el, attribute, None))
    candidates.extend([el.value, el.text, el.name])
    for value in candidates:
        if isinstance(value, str) and value:
            return value
    return None


class ActionExecutor:
    def __init__(
        self,
        session: BrowserSession,
        *,
        recorder: TraceRecorderProtocol | None = None,
        max_retries: int = 3,
        retry_delay_ms: int = 500,
    ) -> None:
        self.session = session
        self.recorder = recorder
        self.max_retries = max(1, int(max_retries))
        self.retry_delay_ms = max(0, int(retry_delay_ms))
        self.context: dict[str, Any] = {}

    @classmethod
    def from_config(
        cls,
        config: TaskhawkConfig,
        *,
        recorder: TraceRecorderProtocol | None = None,
        session: BrowserSession | None = None,
    ) -> ActionExecutor:
        return cls(
            session if session is not None else BrowserSession.from_config(config),
            recorder=recorder,
            max_retries=config.max_retries,
            retry_delay_ms=config.action_retry_delay_ms,
        )

    # --- dispatch --------------------------------------------------------

    def execute_step(self, step: Step | Mapping[str, Any]) -> StepResult:
        received = type(step).__name__
        malformed = not isinstance(step, (Step, Mapping))
        if malformed:
            step = Step(id="step_0", kind="")
        elif not isinstance(step, Step):
            step = Step.from_dict(step)
        logger.debug("executing step %s (%s)", step.name or step.id, step.kind_name)

        start = time.monotonic()
        try:
            if malformed:
                raise ValidationError(f"Invalid step: expected a mapping, got {received}")
            if not isinstance(step.kind, StepKind):
                raise ValidationError(f"Unknown action type: {step.kind_name or '<missing>'}")
            result = self.HANDLERS[step.kind](self, step.params)
        except Exception as exc:  # noqa: BLE001
            duration = int((time.monotonic() - start) * 1000)
            message = str(exc) or exc.__class__.__name__
            logger.debug("step %s failed after %dms: %s", step.id, duration, message)
            if self.recorder is not None:
                self.recorder.log_step(step, None, "error", None, duration_ms=duration)
                self.recorder.log_error(exc, {"step": step.id, "stepName": step.name, "stepType": step.kind_name})
            return StepResult(success=False, status="error", duration_ms=duration, step=step, error=message)

        duration = int((time.monotonic() - start) * 1000)
        logger.debug("step %s completed in %dms", step.id, duration)
        if self.recorder is not None:
            self.recorder.log_step(step, result, "success", result.get("output"), duration_ms=duration)
        return StepResult(success=True, status="success", duration_ms=duration, step=step, result=result)

    def execute_steps(self, steps: Iterable[Step | Mapping[str, Any]]) -> ExecutionSummary:
        plan = steps_from_plan(steps)
        results: list[StepResult] = []
        stopped = False
        for step in plan:
            res = self.execute_step(step)
            results.append(res)
            if not res.success and not step.continue_on_error:
                stopped = True
                break
        successful = sum(1 for r in results if r.success)
        return ExecutionSummary(
            total_steps=len(plan),
            successful=successful,
            failed=len(results) - successful,
            completed=not stopped,
            results=results,
        )

    # --- retry -----------------------------------------------------------

    def _with_element(self, action: str, target: str, perform: Callable[[str], Any]) -> str:
        """Resolve `target` on a fresh snapshot and run `perform(ref)`, retrying with linear backoff."""
        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                ref = resolve_element(target, self.session.snapshot())
                if ref is None:
                    raise ResolutionError(
                        kind="resolution",
                        action=action,
                        reason=f"Element not found: {target}",
                        target=target,
                        attempts=attempt,
                    )
                perform(ref)
                return ref
            except (ResolutionError, TransportError) as exc:
                last_error = exc
                logger.debug("%s on %r attempt %d/%d failed: %s", action, target, attempt, self.max_retries, exc)
                if attempt < self.max_retries:
                    time.sleep(self.retry_delay_ms * attempt / 1000.0)

        message = f"{action} on '{target}' failed after {self.max_retries} attempts: {last_error}"
        if isinstance(last_error, ResolutionError):
            raise ResolutionError(
                kind="resolution",
                action=action,
                reason=message,
                suggestion="Take a snapshot and check the element's name or text",
                target=target,
                attempts=self.max_retries,
            )
        raise TransportError(message, attempts=self.max_retries)

    def _type_into(self, selector: str, text: Any, clear: bool = True) -> str:
        return self._with_element(
            "type",
            selector,
            lambda ref: self.session.perform_action("type", ref, {"text": str(text), "clear": clear}),
        )

    # --- handlers --------------------------------------------------------

    def _navigate(self, params: Mapping[str, Any]) -> dict[str, Any]:
        url = str(_require(params, "url", "navigate"))
        self.session.navigate(url, params.get("timeout"))
        self.context["currentUrl"] = url
        return {"action": "navigate", "url": url, "success": True, "output": f"Navigated to {url}"}

    def _click(self, params: Mapping[str, Any]) -> dict[str, Any]:
        selector = str(_require(params, "selector", "click"))
        clicks = 2 if params.get("doubleClick") or params.get("double_click") else 1
        ref = self._with_element(
            "click",
            selector,
            lambda r: self.session.perform_action("click", r, {"click_count": clicks}),
        )
        return {"action": "click", "selector": selector, "ref": ref, "success": True, "output": f"Clicked on {selector}"}

    def _type(self, params: Mapping[str, Any]) -> dict[str, Any]:
        selector = str(_require(params, "selector", "type"))
        text = params.get("text")
        if text is None:
            raise ValidationError("type: missing text parameter")
        ref = self._type_into(selector, text, bool(params.get("clear", True)))
        return {
            "action": "type",
            "selector": selector,
            "text": text,
            "ref": ref,
            "success": True,
            "output": f'Typed "{text}" into {selector}',
        }

    def _fill_form(self, params: Mapping[str, Any]) -> dict[str, Any]:
        fields = params.get("fields")
        if not isinstance(fields, Mapping):
            raise ValidationError("fill_form: missing or invalid fields parameter")

        filled = 0
        errors: list[dict[str, str]] = []
        for selector, value in fields.items():
            try:
                self._type_into(str(selector), value)
            except (ActionError, TransportError) as exc:
                errors.append({"selector": str(selector), "error": str(exc)})
                continue
            filled += 1

        if errors:
            raise ActionError(
                kind="fill_form",
                action="fill_form",
                reason=f"Failed to fill {len(errors)} fields: {', '.join(e['selector'] for e in errors)}",
                details={"errors": errors, "filled": filled},
            )
        return {"action": "fill_form", "fields": dict(fields), "success": True, "output": f"Filled {filled} form fields"}

    def _wait(self, params: Mapping[str, Any]) -> dict[str, Any]:
        duration = params.get("duration", DEFAULT_WAIT_MS)
        if duration is None:
            duration = DEFAULT_WAIT_MS
        if isinstance(duration, bool) or not isinstance(duration, (int, float)) or duration < 0:
            raise ValidationError(f"wait: invalid duration parameter: {duration!r}")
        self.session.wait(int(duration))
        return {"action": "wait", "duration": duration, "success": True, "output": f"Waited {duration}ms"}

    def _extract(self, params: Mapping[str, Any]) -> dict[str, Any]:
        selectors: list[str] = []
        if params.get("selector"):
            selectors.append(str(params["selector"]))
        batch = params.get("selectors")
        if isinstance(batch, (list, tuple)):
            selectors.extend(str(s) for s in batch if s)
        if not selectors:
            return {"action": "extract", "extracted": {}, "success": True, "output": "Extracted 0 data points"}

        attribute = params.get("attribute") or None
        snap = self.session.snapshot()
        extracted: dict[str, Any] = {}
        for selector in selectors:
            ref = resolve_element(selector, snap)
            el = snap.get(ref) if ref is not None else None
            extracted[selector] = read_element_value(el, attribute) if el is not None else None

        self.context.update(extracted)
        return {
            "action": "extract",
            "extracted": extracted,
            "success": True,
            "output": f"Extracted {len(extracted)} data points",
            "data": dict(extracted),
        }

    def _snapshot(self, params: Mapping[str, Any]) -> dict[str, Any]:
        snap = self.session.snapshot(dict(params))
        return {"action": "snapshot", "success": True, "output": "Snapshot captured", "data": snap.to_dict()}

    def _submit(self, params: Mapping[str, Any]) -> dict[str, Any]:
        selector = params.get("selector")
        press_enter = bool(params.get("pressEnter") or params.get("press_enter"))
        if selector and press_enter:
            ref = self._with_element(
                "submit",
                str(selector),
                lambda r: self.session.perform_action("press", r, {"key": "Enter"}),
            )
            return {
                "action": "submit",
                "selector": selector,
                "ref": ref,
                "success": True,
                "output": f"Pressed Enter in {selector}",
            }
        if selector:
            result = self._click(params)
            return {**result, "action": "submit"}
        if press_enter:
            self.session.perform_action("press", None, {"key": "Enter"})
            return {"action": "submit", "success": True, "output": "Submitted with Enter key"}
        raise ValidationError("submit: missing selector parameter")

    def _select(self, params: Mapping[str, Any]) -> dict[str, Any]:
        selector = str(_require(params, "selector", "select"))
        value = _require(params, "value", "select")
        self._with_element("select", selector, lambda r: self.session.perform_action("click", r, {"click_count": 1}))
        self.session.wait(SELECT_SETTLE_MS)
        ref = self._with_element(
            "select",
            selector,
            lambda r: self.session.perform_action("select", r, {"value": str(value)}),
        )
        return {
            "action": "select",
            "selector": selector,
            "value": value,
            "ref": ref,
            "success": True,
            "output": f'Selected "{value}" from {selector}',
        }

    HANDLERS: dict[StepKind, Callable[[ActionExecutor, Mapping[str, Any]], dict[str, Any]]] = {
        StepKind.NAVIGATE: _navigate,
        StepKind.CLICK: _click,
        StepKind.TYPE: _type,
        StepKind.FILL_FORM: _fill_form,
        StepKind.WAIT: _wait,
        StepKind.EXTRACT: _extract,
        StepKind.SNAPSHOT: _snapshot,
        StepKind.SUBMIT: _submit,
        StepKind.SELECT: _select,
    }

    # --- context ---------------------------------------------------------

    def get_context(self) -> dict[str, Any]:
        return dict(self.context)

    def set_context(self, key: str, value: Any) -> None:
        self.context[key] = value

    def clear_context(self) -> None:
        self.context = {}

    def close(self) -> dict[str, Any]:
        try:
            return self.session.stop()
        finally:
            self.clear_context()


_unhandled = set(StepKind) - set(ActionExecutor.HANDLERS)
if _unhandled:
    raise RuntimeError(f"ActionExecutor has no handler for: {sorted(k.value for k in _unhandled)}")


__all__ = ["ActionExecutor", "read_element_value"]
