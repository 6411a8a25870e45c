"""Settle an interaction's effects before evidence is captured.

Settling runs three bounded waits in order:

1. Load state (``domcontentloaded``).
2. Network idle: no request/response events and nothing in flight for
   ``settle_idle_ms``.
3. DOM idle: no childList/subtree/attribute mutation for
   ``settle_dom_stable_ms``.

All three share one hard deadline of ``settle_timeout_ms`` measured from the
start of the call. A timeout is a normal outcome and never raises.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Hashable
from typing import TYPE_CHECKING

from silentprobe.errors import DriverError, DriverTimeout
from silentprobe.stabilization.types import IdleOutcome, SettleResult

if TYPE_CHECKING:
    from silentprobe.budget.types import ScanBudget
    from silentprobe.driver.page import PageHandle

logger = logging.getLogger(__name__)

# Tunable. Only used when adaptive stabilization is enabled.
MAX_ADAPTIVE_EXTENSIONS = 2

Clock = Callable[[], float]


class _ActivityTracker:
    """Detects activity on one probe between polls.

    The probe returns a cumulative sample that browser callbacks advance and a
    busy flag (requests still in flight). A changed sample or a busy probe is
    activity.
    """

    def __init__(self, probe: Callable[[], tuple[Hashable, bool]]) -> None:
        self._probe = probe
        self._last_sample, _ = probe()

    def poll(self) -> bool:
        sample, busy = self._probe()
        if busy or sample != self._last_sample:
            self._last_sample = sample
            return True
        return False


def _wait_for_idle(
    page: PageHandle,
    tracker: _ActivityTracker,
    *,
    idle_ms: int,
    poll_ms: int,
    deadline: float,
    max_extensions: int,
    clock: Clock,
) -> IdleOutcome:
    """Wait for ``idle_ms`` without activity, restarting the window on activity.

    The window slides past every burst until it is quiet or the deadline
    passes. Activity that resumes after a quiet poll lengthens the window by
    another ``idle_ms``, at most ``max_extensions`` times.
    """
    idle_s = idle_ms / 1000.0
    window_s = idle_s
    extensions = 0
    active = tracker.poll()
    window_start = clock()

    while True:
        now = clock()
        if active:
            window_start = now
        elif now - window_start >= window_s:
            return IdleOutcome(quiet=True, extensions=extensions, timed_out=False)
        if now >= deadline:
            return IdleOutcome(quiet=False, extensions=extensions, timed_out=True)

        remaining_ms = (min(window_start + window_s, deadline) - now) * 1000.0
        page.wait_for_timeout(max(1.0, min(float(poll_ms), remaining_ms)))
        was_active = active
        active = tracker.poll()
        if active and not was_active and extensions < max_extensions:
            extensions += 1
            window_s += idle_s


def _wait_for_load(page: PageHandle, deadline: float, clock: Clock) -> bool:
    remaining_ms = int((deadline - clock()) * 1000)
    if remaining_ms <= 0:
        return False
    try:
        page.wait_for_load_state("domcontentloaded", timeout_ms=remaining_ms)
    except DriverTimeout:
        logger.warning("load state not reached within %sms", remaining_ms)
        return False
    except DriverError as exc:
        logger.warning("load state wait failed: %s", exc)
        return False
    return True


def settle(
    page: PageHandle,
    budget: ScanBudget,
    *,
    clock: Clock = time.monotonic,
) -> SettleResult:
    """Block until network and DOM go quiet, bounded by ``settle_timeout_ms``."""
    started = clock()
    deadline = started + budget.settle_timeout_ms / 1000.0
    max_extensions = MAX_ADAPTIVE_EXTENSIONS if budget.adaptive_stabilization else 0

    load_ok = _wait_for_load(page, deadline, clock)

    def network_probe() -> tuple[Hashable, bool]:
        counters = page.network_counters()
        return counters.events, counters.inflight > 0

    def mutation_probe() -> tuple[Hashable, bool]:
        return page.mutation_count(), False

    network = _wait_for_idle(
        page,
        _ActivityTracker(network_probe),
        idle_ms=budget.settle_idle_ms,
        poll_ms=budget.settle_poll_ms,
        deadline=deadline,
        max_extensions=max_extensions,
        clock=clock,
    )
    dom = _wait_for_idle(
        page,
        _ActivityTracker(mutation_probe),
        idle_ms=budget.settle_dom_stable_ms,
        poll_ms=budget.settle_poll_ms,
        deadline=deadline,
        max_extensions=max_extensions,
        clock=clock,
    )

    result = SettleResult(
        load_state_reached=load_ok,
        network_idle=network.quiet,
        dom_stable=dom.quiet,
        network_extensions=network.extensions,
        dom_extensions=dom.extensions,
        timed_out=network.timed_out or dom.timed_out,
        elapsed_ms=int(round((clock() - started) * 1000)),
    )
    if not result.complete:
        logger.debug("settle incomplete: %s", result.to_dict())
    return result


def wait_for_navigation_stable(
    page: PageHandle,
    budget: ScanBudget,
    *,
    clock: Clock = time.monotonic,
) -> SettleResult:
    """Give a fresh navigation a fixed grace period, then settle."""
    page.wait_for_timeout(float(budget.navigation_stable_wait_ms))
    return settle(page, budget, clock=clock)
