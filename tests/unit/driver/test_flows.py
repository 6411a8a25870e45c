from __future__ import annotations

import pytest

from fakes import Effect, FakeClock, FakePage, FakeSitePage, fast_budget

from silentprobe.driver.flows import (
    STATUS_FAILED,
    STATUS_INVALID,
    STATUS_NOT_RUN,
    STATUS_PASSED,
    execute_flow,
    load_flow,
    parse_step,
)
from silentprobe.errors import DriverError, FlowValidationError
from silentprobe.truth.decision import Outcome

START = "https://app.test/"


def _page() -> FakePage:
    site = {
        START: FakeSitePage(),
        "https://app.test/login": FakeSitePage(
            effects={
                "#submit": Effect(navigate_to="https://app.test/home"),
                "#broken": Effect(error=DriverError),
            }
        ),
        "https://app.test/home": FakeSitePage(dom="<main>home</main>"),
    }
    page = FakePage(site, FakeClock())
    page.goto(START, timeout_ms=1000)
    return page


LOGIN_STEPS = [
    {"action": "goto", "url": "/login"},
    {"action": "fill", "selector": "#email", "value": "probe@example.com"},
    {"action": "click", "selector": "#submit"},
    {"action": "expect_url", "url": "/home"},
]


def test_successful_flow() -> None:
    page = _page()
    flow = load_flow({"name": " login ", "steps": LOGIN_STEPS})

    result = execute_flow(page, flow, fast_budget(), clock=page.clock)

    assert result.name == "login"
    assert result.outcome is Outcome.SUCCESS
    assert [step.status for step in result.steps] == [STATUS_PASSED] * 4
    assert page.url == "https://app.test/home"


def test_stop_failure_fails_flow_and_skips_rest() -> None:
    page = _page()
    steps = [LOGIN_STEPS[0], {"action": "click", "selector": "#broken"}, LOGIN_STEPS[2]]

    result = execute_flow(page, load_flow({"name": "f", "steps": steps}), fast_budget(), clock=page.clock)

    assert result.outcome is Outcome.FAILURE
    assert [step.status for step in result.steps] == [STATUS_PASSED, STATUS_FAILED, STATUS_NOT_RUN]
    assert result.steps[1].finding_type == "step_failed"


def test_continue_failure_is_friction() -> None:
    page = _page()
    steps = [
        LOGIN_STEPS[0],
        {"action": "click", "selector": "#broken", "failureMode": "continue"},
        LOGIN_STEPS[2],
    ]

    result = execute_flow(page, load_flow({"name": "f", "steps": steps}), fast_budget(), clock=page.clock)

    assert result.outcome is Outcome.FRICTION
    assert [step.status for step in result.steps] == [STATUS_PASSED, STATUS_FAILED, STATUS_PASSED]


def test_invalid_step_fails_alone() -> None:
    page = _page()
    steps = [{"action": "dance"}, LOGIN_STEPS[0]]

    result = execute_flow(page, load_flow({"name": "f", "steps": steps}), fast_budget(), clock=page.clock)

    assert result.outcome is Outcome.FRICTION
    assert result.steps[0].status == STATUS_INVALID
    assert result.steps[0].finding_type == "validation_error"
    assert result.steps[1].status == STATUS_PASSED


def test_unexpected_url_fails_flow() -> None:
    page = _page()
    steps = [LOGIN_STEPS[0], {"action": "expect_url", "url": "/home"}]

    result = execute_flow(page, load_flow({"name": "f", "steps": steps}), fast_budget(), clock=page.clock)

    assert result.outcome is Outcome.FAILURE
    assert result.steps[1].finding_type == "unexpected_url"


def test_flow_is_truncated_to_max_steps() -> None:
    page = _page()
    budget = fast_budget(max_flow_steps=2)

    result = execute_flow(page, load_flow({"name": "f", "steps": LOGIN_STEPS}), budget, clock=page.clock)

    assert result.truncated is True
    assert len(result.steps) == 2
    assert result.outcome is Outcome.FRICTION
    assert result.to_dict()["truncated"] is True


@pytest.mark.parametrize(
    "raw",
    [
        "goto",
        {"action": "click"},
        {"action": "fill", "selector": "#a"},
        {"action": "goto"},
        {"action": "wait", "timeoutMs": "soon"},
        {"action": "click", "selector": "#a", "failureMode": "retry"},
    ],
)
def test_parse_step_rejects_malformed_steps(raw: object) -> None:
    with pytest.raises(FlowValidationError):
        parse_step(raw)


@pytest.mark.parametrize("data", [[], {"steps": [{}]}, {"name": "x"}, {"name": "x", "steps": []}])
def test_load_flow_rejects_malformed_flows(data: object) -> None:
    with pytest.raises(FlowValidationError):
        load_flow(data)
