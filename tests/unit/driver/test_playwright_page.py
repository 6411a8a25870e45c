"""PlaywrightPage adapter behavior against a stub Playwright page (no browser)."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from silentprobe.driver.playwright_page import (
    DOM_SCRIPT,
    FEEDBACK_SCRIPT,
    MUTATION_OBSERVER_OPTIONS,
    MUTATION_OBSERVER_SCRIPT,
    PlaywrightPage,
)
from silentprobe.errors import DriverError, DriverTimeout


class StubPage:
    def __init__(self) -> None:
        self.url = "https://app.test/"
        self.handlers: dict[str, Any] = {}
        self.results: dict[str, Any] = {}
        self.raise_on_click: Exception | None = None

    def on(self, event: str, handler: Any) -> None:
        self.handlers[event] = handler

    def goto(self, url: str, *, wait_until: str, timeout: int) -> Any:
        self.url = url
        return SimpleNamespace(status=200)

    def click(self, selector: str, *, timeout: int) -> None:
        if self.raise_on_click is not None:
            raise self.raise_on_click

    def evaluate(self, expression: str, arg: Any = None) -> Any:
        return self.results.get(expression)


def test_goto_returns_status() -> None:
    stub = StubPage()
    page = PlaywrightPage(stub)  # type: ignore[arg-type]
    assert page.goto("https://app.test/next", timeout_ms=1000) == 200
    assert page.url == "https://app.test/next"


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (PlaywrightTimeoutError("Timeout 10ms exceeded"), DriverTimeout),
        (PlaywrightError("element detached"), DriverError),
    ],
)
def test_playwright_errors_are_translated(error: Exception, expected: type[Exception]) -> None:
    stub = StubPage()
    stub.raise_on_click = error
    page = PlaywrightPage(stub)  # type: ignore[arg-type]

    with pytest.raises(expected) as excinfo:
        page.click("#save", timeout_ms=10)
    assert "click #save" in str(excinfo.value)


def test_network_events_are_counted() -> None:
    stub = StubPage()
    page = PlaywrightPage(stub)  # type: ignore[arg-type]

    stub.handlers["request"](object())
    stub.handlers["request"](object())
    stub.handlers["requestfinished"](object())
    stub.handlers["response"](SimpleNamespace(status=403))
    stub.handlers["response"](SimpleNamespace(status=200))

    counters = page.network_counters()
    assert (counters.events, counters.inflight, counters.blocked) == (2, 1, 1)


def test_snapshots_decode_script_results() -> None:
    stub = StubPage()
    stub.results[DOM_SCRIPT] = "<main>a</main>"
    stub.results[FEEDBACK_SCRIPT] = {"feedback": 2, "live": "Saved", "alerts": 1, "loading": 0}
    page = PlaywrightPage(stub)  # type: ignore[arg-type]

    feedback = page.feedback_snapshot()
    assert feedback.feedback_count == 2
    assert feedback.aria_live_text == "Saved"
    assert len(page.dom_fingerprint()) == 64
    assert page.query_interactions() == []
    assert page.mutation_count() == 0


def test_mutation_observer_ignores_text_only_changes() -> None:
    assert MUTATION_OBSERVER_OPTIONS == {"attributes": True, "childList": True, "subtree": True}
    assert '"childList": true' in MUTATION_OBSERVER_SCRIPT
    assert "characterData" not in MUTATION_OBSERVER_SCRIPT
