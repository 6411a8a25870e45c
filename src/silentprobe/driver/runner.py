"""Execute one interaction and record its evidence window."""

from __future__ import annotations

import logging
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Any

from silentprobe.detection.types import Observation
from silentprobe.driver.evidence import build_evidence, capture_snapshot, derive_signals
from silentprobe.driver.types import Interaction, InteractionType, PageSnapshot
from silentprobe.errors import DriverError, DriverTimeout
from silentprobe.frontier.urls import urls_equivalent
from silentprobe.stabilization.settle import settle, wait_for_navigation_stable
from silentprobe.stabilization.types import SettleResult

if TYPE_CHECKING:
    from silentprobe.budget.types import ScanBudget
    from silentprobe.driver.page import PageHandle

logger = logging.getLogger(__name__)

FINDING_TIMEOUT = "interaction_timeout"
FINDING_FAILED = "interaction_failed"
FINDING_EVIDENCE = "evidence_capture_failed"

RETRYABLE_TYPES: frozenset[InteractionType] = frozenset(
    {InteractionType.FORM, InteractionType.LOGIN}
)

FILL_VALUES: tuple[tuple[str, str], ...] = (
    ("password", "Probe-Password-1"),
    ("email", "probe@example.com"),
    ("search", "probe"),
    ("phone", "5550100"),
    ("tel", "5550100"),
)
DEFAULT_FILL_VALUE = "silentprobe"


@dataclass(frozen=True)
class StepFailure:
    """A per-interaction failure converted into a record."""

    finding_type: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"findingType": self.finding_type, "message": self.message}


@dataclass(frozen=True)
class InteractionTrace:
    """Everything observed for one executed interaction."""

    sequence: int
    page_url: str
    interaction: Interaction
    before: PageSnapshot | None
    after: PageSnapshot | None
    settle: SettleResult | None
    observation: Observation
    failure: StepFailure | None = None
    retries: int = 0
    timed_out: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "sequence": self.sequence,
            "pageUrl": self.page_url,
            "interaction": self.interaction.to_dict(),
            "before": self.before.to_dict() if self.before else None,
            "after": self.after.to_dict() if self.after else None,
            "settle": self.settle.to_dict() if self.settle else None,
            "observation": self.observation.to_dict(),
            "failure": self.failure.to_dict() if self.failure else None,
            "retries": self.retries,
            "timedOut": self.timed_out,
        }


def fill_value_for(selector: str) -> str:
    lowered = selector.lower()
    for needle, value in FILL_VALUES:
        if needle in lowered:
            return value
    return DEFAULT_FILL_VALUE


@lru_cache(maxsize=1)
def upload_fixture() -> str:
    """Path of a small text file used for file-upload interactions."""
    directory = Path(tempfile.mkdtemp(prefix="silentprobe-"))
    fixture = directory / "silentprobe-upload.txt"
    fixture.write_text("silentprobe upload fixture\n", encoding="utf-8")
    return str(fixture)


def execute_interaction(page: PageHandle, interaction: Interaction, budget: ScanBudget) -> None:
    """Dispatch the browser primitives for ``interaction``. Raises DriverError/DriverTimeout."""
    timeout_ms = budget.interaction_timeout_ms
    selector = interaction.selector
    kind = interaction.type

    if kind in (InteractionType.LINK, InteractionType.BUTTON, InteractionType.LOGOUT):
        page.click(selector, timeout_ms=timeout_ms)
    elif kind in (InteractionType.FORM, InteractionType.LOGIN):
        for field_selector in interaction.input_selectors:
            page.fill(field_selector, fill_value_for(field_selector), timeout_ms=timeout_ms)
        if interaction.submit_selector:
            page.click(interaction.submit_selector, timeout_ms=timeout_ms)
        elif interaction.input_selectors:
            page.press(interaction.input_selectors[-1], "Enter", timeout_ms=timeout_ms)
        else:
            page.press(selector, "Enter", timeout_ms=timeout_ms)
    elif kind is InteractionType.HOVER:
        page.hover(selector, timeout_ms=timeout_ms)
    elif kind is InteractionType.KEYBOARD:
        page.focus(selector, timeout_ms=timeout_ms)
        page.press(selector, "Enter", timeout_ms=timeout_ms)
    elif kind is InteractionType.FILE_UPLOAD:
        page.set_input_files(selector, [upload_fixture()], timeout_ms=timeout_ms)
    else:
        raise DriverError(f"Unsupported interaction type: {kind}")


def run_interaction(
    page: PageHandle,
    interaction: Interaction,
    budget: ScanBudget,
    *,
    sequence: int = 0,
    clock: Callable[[], float] = time.monotonic,
) -> InteractionTrace:
    """Run one interaction, settle, and capture before/after evidence.

    Per-interaction errors never escape: a timeout marks the observation
    incomplete, any other driver error becomes a failed-step record. Only
    form submissions are retried, up to ``max_retries_per_interaction``.
    """
    page_url = page.url
    try:
        before = capture_snapshot(page)
        network_before = page.network_counters()
    except DriverError as exc:
        logger.warning("could not capture evidence before %s: %s", interaction.selector, exc)
        return InteractionTrace(
            sequence=sequence,
            page_url=page_url,
            interaction=interaction,
            before=None,
            after=None,
            settle=None,
            observation=Observation(attempted=False, reason=f"evidence capture failed: {exc}"),
            failure=StepFailure(FINDING_EVIDENCE, str(exc)),
        )

    max_attempts = 1
    if interaction.type in RETRYABLE_TYPES:
        max_attempts += max(0, budget.max_retries_per_interaction)

    failure: StepFailure | None = None
    timed_out = False
    attempts = 0
    while attempts < max_attempts:
        attempts += 1
        try:
            execute_interaction(page, interaction, budget)
        except DriverTimeout as exc:
            timed_out = True
            failure = StepFailure(FINDING_TIMEOUT, str(exc))
        except DriverError as exc:
            timed_out = False
            failure = StepFailure(FINDING_FAILED, str(exc))
        else:
            timed_out = False
            failure = None
            break
        if attempts < max_attempts:
            logger.info(
                "retrying %s (%d/%d): %s",
                interaction.selector,
                attempts,
                max_attempts - 1,
                failure.message,
            )

    try:
        during = page.feedback_snapshot()
        settled = settle(page, budget, clock=clock)
        if not urls_equivalent(before.url, page.url):
            settled = wait_for_navigation_stable(page, budget, clock=clock)
        after = capture_snapshot(page)
        network_after = page.network_counters()
    except DriverError as exc:
        logger.warning("could not capture evidence after %s: %s", interaction.selector, exc)
        return InteractionTrace(
            sequence=sequence,
            page_url=page_url,
            interaction=interaction,
            before=before,
            after=None,
            settle=None,
            observation=Observation(
                attempted=failure is None or timed_out,
                run_complete=False,
                reason=f"evidence capture failed: {exc}",
            ),
            failure=StepFailure(FINDING_EVIDENCE, str(exc)),
            retries=attempts - 1,
            timed_out=timed_out,
        )

    signals = derive_signals(
        before,
        after,
        network_before=network_before,
        network_after=network_after,
        during=during,
    )
    # A timed-out action may still have been dispatched; a hard failure was not.
    attempted = failure is None or timed_out
    reason = failure.message if failure else ""
    if signals.silent_block and not reason:
        reason = "blocked: 401/403 response"

    if timed_out:
        logger.warning("interaction %s timed out on %s", interaction.selector, page_url)

    return InteractionTrace(
        sequence=sequence,
        page_url=page_url,
        interaction=interaction,
        before=before,
        after=after,
        settle=settled,
        observation=Observation(
            attempted=attempted,
            observed=False,
            run_complete=settled.complete and not timed_out,
            reason=reason,
            signals=signals,
            evidence=build_evidence(
                before, after, network_before=network_before, network_after=network_after
            ),
        ),
        failure=failure,
        retries=attempts - 1,
        timed_out=timed_out,
    )
