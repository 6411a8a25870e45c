"""Scripted flows: short step sequences with per-step failure modes."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import urljoin

from silentprobe.errors import DriverError, DriverTimeout, FlowValidationError
from silentprobe.frontier.urls import canonicalize_url
from silentprobe.stabilization.settle import settle
from silentprobe.truth.decision import Outcome

if TYPE_CHECKING:
    from silentprobe.budget.types import ScanBudget
    from silentprobe.driver.page import PageHandle

logger = logging.getLogger(__name__)

STEP_ACTIONS: frozenset[str] = frozenset({"goto", "click", "fill", "submit", "wait", "expect_url"})
FAILURE_MODES: frozenset[str] = frozenset({"stop", "continue"})
SETTLING_ACTIONS: frozenset[str] = frozenset({"goto", "click", "submit"})

STATUS_PASSED = "passed"
STATUS_FAILED = "failed"
STATUS_INVALID = "invalid"
STATUS_NOT_RUN = "not_run"


@dataclass(frozen=True)
class FlowStep:
    action: str
    selector: str | None = None
    value: str | None = None
    url: str | None = None
    timeout_ms: int | None = None
    failure_mode: str = "stop"


@dataclass(frozen=True)
class Flow:
    """A named flow. Steps stay raw until executed so one bad step fails alone."""

    name: str
    steps: tuple[dict[str, Any], ...]


@dataclass(frozen=True)
class StepRecord:
    index: int
    action: str
    status: str
    finding_type: str | None = None
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "action": self.action,
            "status": self.status,
            "findingType": self.finding_type,
            "message": self.message,
        }


@dataclass(frozen=True)
class FlowResult:
    name: str
    outcome: Outcome
    steps: tuple[StepRecord, ...]
    truncated: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "outcome": self.outcome.value,
            "steps": [step.to_dict() for step in self.steps],
            "truncated": self.truncated,
        }


def load_flow(data: Any) -> Flow:
    """Validate a flow's outer shape. Individual steps are validated on execution."""
    if not isinstance(data, dict):
        raise FlowValidationError("Flow must be a mapping")
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise FlowValidationError("Flow requires a non-empty 'name'")
    steps = data.get("steps")
    if not isinstance(steps, list) or not steps:
        raise FlowValidationError(f"Flow '{name}' requires a non-empty 'steps' list")
    return Flow(name=name.strip(), steps=tuple(steps))


def parse_step(raw: Any) -> FlowStep:
    """Validate one step. Raises FlowValidationError immediately on bad input."""
    if not isinstance(raw, dict):
        raise FlowValidationError(f"Step must be a mapping, got {type(raw).__name__}")
    action = raw.get("action")
    if action not in STEP_ACTIONS:
        raise FlowValidationError(f"Unknown step action: {action!r}")
    failure_mode = raw.get("failureMode", "stop")
    if failure_mode not in FAILURE_MODES:
        raise FlowValidationError(f"Unknown failureMode: {failure_mode!r}")
    step = FlowStep(
        action=action,
        selector=raw.get("selector"),
        value=None if raw.get("value") is None else str(raw.get("value")),
        url=raw.get("url"),
        timeout_ms=raw.get("timeoutMs"),
        failure_mode=failure_mode,
    )
    if action in {"click", "fill", "submit"} and not step.selector:
        raise FlowValidationError(f"Step '{action}' requires a selector")
    if action == "fill" and step.value is None:
        raise FlowValidationError("Step 'fill' requires a value")
    if action in {"goto", "expect_url"} and not step.url:
        raise FlowValidationError(f"Step '{action}' requires a url")
    if action == "wait" and not isinstance(step.timeout_ms, int):
        raise FlowValidationError("Step 'wait' requires an integer timeoutMs")
    return step


class _UnexpectedUrl(Exception):
    pass


def _run_step(page: PageHandle, step: FlowStep, budget: ScanBudget) -> None:
    timeout_ms = step.timeout_ms or budget.interaction_timeout_ms
    if step.action == "goto":
        target = urljoin(page.url, step.url or "")
        page.goto(target, timeout_ms=step.timeout_ms or budget.navigation_timeout_ms)
    elif step.action == "click":
        page.click(step.selector or "", timeout_ms=timeout_ms)
    elif step.action == "fill":
        page.fill(step.selector or "", step.value or "", timeout_ms=timeout_ms)
    elif step.action == "submit":
        page.press(step.selector or "", "Enter", timeout_ms=timeout_ms)
    elif step.action == "wait":
        page.wait_for_timeout(float(step.timeout_ms or 0))
    elif step.action == "expect_url":
        expected = canonicalize_url(step.url or "", base=page.url)
        actual = canonicalize_url(page.url)
        if expected != actual:
            raise _UnexpectedUrl(f"expected {expected}, got {actual}")


def execute_flow(
    page: PageHandle,
    flow: Flow,
    budget: ScanBudget,
    *,
    clock: Callable[[], float] = time.monotonic,
) -> FlowResult:
    """Run a flow for at most ``max_flow_steps`` steps."""
    records: list[StepRecord] = []
    outcome = Outcome.SUCCESS
    steps = flow.steps[: budget.max_flow_steps]
    truncated = len(flow.steps) > len(steps)

    for index, raw in enumerate(steps):
        action = raw.get("action", "?") if isinstance(raw, dict) else "?"
        try:
            step = parse_step(raw)
        except FlowValidationError as exc:
            logger.warning("flow %s step %d invalid: %s", flow.name, index, exc)
            records.append(
                StepRecord(index, str(action), STATUS_INVALID, "validation_error", str(exc))
            )
            outcome = Outcome.FRICTION if outcome is Outcome.SUCCESS else outcome
            continue

        try:
            _run_step(page, step, budget)
            if step.action in SETTLING_ACTIONS:
                settle(page, budget, clock=clock)
        except DriverTimeout as exc:
            failure = StepRecord(index, step.action, STATUS_FAILED, "step_timeout", str(exc))
        except DriverError as exc:
            failure = StepRecord(index, step.action, STATUS_FAILED, "step_failed", str(exc))
        except _UnexpectedUrl as exc:
            failure = StepRecord(index, step.action, STATUS_FAILED, "unexpected_url", str(exc))
        else:
            records.append(StepRecord(index, step.action, STATUS_PASSED))
            continue

        records.append(failure)
        if step.failure_mode == "continue":
            outcome = Outcome.FRICTION if outcome is Outcome.SUCCESS else outcome
            continue
        outcome = Outcome.FAILURE
        for remaining in range(index + 1, len(steps)):
            raw_next = steps[remaining]
            next_action = raw_next.get("action", "?") if isinstance(raw_next, dict) else "?"
            records.append(StepRecord(remaining, str(next_action), STATUS_NOT_RUN))
        break

    if truncated and outcome is Outcome.SUCCESS:
        outcome = Outcome.FRICTION
    return FlowResult(name=flow.name, outcome=outcome, steps=tuple(records), truncated=truncated)
