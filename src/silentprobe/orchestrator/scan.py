"""Scan loop: frontier, driver, classifier, truth and decision in one run."""

from __future__ import annotations

import logging
import time
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin, urlsplit

from silentprobe.budget.engine import allocate, allocate_routes, plan_run_budget, route_budget
from silentprobe.budget.types import RouteAllocation, ScanBudget
from silentprobe.detection.classifier import classify
from silentprobe.detection.expectations import ExpectationSet
from silentprobe.detection.silence import SilenceKind, attach_silence, summarize_critical_silences
from silentprobe.detection.types import Expectation, Observation, Verdict, VerdictStatus
from silentprobe.driver.discovery import discover_interactions, prioritize
from silentprobe.driver.flows import FlowResult, execute_flow, load_flow
from silentprobe.driver.page import PageHandle
from silentprobe.driver.runner import InteractionTrace, run_interaction
from silentprobe.driver.types import Interaction, InteractionType
from silentprobe.errors import DriverError, FlowValidationError, InfrastructureError
from silentprobe.frontier.frontier import STOP_MAX_SCAN_DURATION, FrontierStats, PageFrontier
from silentprobe.frontier.safety import SkipDecision, should_skip
from silentprobe.frontier.urls import canonicalize_url, urls_equivalent
from silentprobe.orchestrator.matching import (
    expectation_matches,
    observation_for,
    route_path,
    silence_kind_for,
)
from silentprobe.stabilization.settle import settle
from silentprobe.truth.classifier import build_truth_block, classify_run_truth
from silentprobe.truth.decision import (
    DecisionSignals,
    FinalDecision,
    Outcome,
    OutcomeRecord,
    compute_decision,
)
from silentprobe.truth.types import RunSummary, RunTruth, TruthThresholds

logger = logging.getLogger(__name__)

GAP_SAFETY_POLICY = "safety_policy"
GAP_BUDGET_EXCEEDED = "budget_exceeded"
GAP_FRONTIER_CAPPED = "frontier_capped"
GAP_TIMEOUT = "timeout"
GAP_NAVIGATION_FAILED = "navigation_failed"
GAP_NOT_VISITED = "not_visited"
GAP_NOT_DISCOVERED = "not_discovered"
GAP_FLOW_INVALID = "flow_invalid"

FACTOR_TIMEOUT_RISK = "TIMEOUT_RISK"
FACTOR_ADAPTIVE = "ADAPTIVE_STABILIZATION"

INCOMPLETE_INFRA = "infra_failure"
INCOMPLETE_SCAN_DURATION = "scan_duration_exhausted"
INCOMPLETE_PAGE_LOAD = "page_load_failed"

LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})

FAILURE_STATUSES = frozenset({VerdictStatus.CONFIRMED})
FRICTION_STATUSES = frozenset({VerdictStatus.SUSPECTED, VerdictStatus.UNPROVEN})


@dataclass(frozen=True)
class CoverageGap:
    """Work the run could not do, and why."""

    reason: str
    url: str | None = None
    selector: str | None = None
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "reason": self.reason,
            "url": self.url,
            "selector": self.selector,
            "message": self.message,
        }


@dataclass(frozen=True)
class DeterminismFactor:
    factor: str
    url: str | None = None
    selector: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"factor": self.factor, "url": self.url, "selector": self.selector}


@dataclass(frozen=True)
class TraceRecord:
    """One line of ``traces.jsonl``: an executed or skipped interaction."""

    sequence: int
    page_url: str
    interaction: Interaction
    observation: Observation
    trace: InteractionTrace | None = None
    skip: SkipDecision | None = None
    expectation_ids: tuple[str, ...] = ()
    verdicts: tuple[Verdict, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        if self.trace is not None:
            payload = self.trace.to_dict()
        else:
            payload = {
                "sequence": self.sequence,
                "pageUrl": self.page_url,
                "interaction": self.interaction.to_dict(),
                "before": None,
                "after": None,
                "settle": None,
                "failure": None,
                "retries": 0,
                "timedOut": False,
            }
        payload["observation"] = self.observation.to_dict()
        payload["skip"] = self.skip.to_dict() if self.skip is not None else None
        payload["expectationIds"] = list(self.expectation_ids)
        payload["verdicts"] = [verdict.to_dict() for verdict in self.verdicts]
        return payload


@dataclass(frozen=True)
class ScanResult:
    """Everything a run produced, ready to be written as artifacts."""

    start_url: str
    budget: ScanBudget
    allocations: tuple[RouteAllocation, ...]
    records: tuple[TraceRecord, ...]
    verdicts: tuple[Verdict, ...]
    summary: RunSummary
    truth: RunTruth
    decision: FinalDecision
    frontier: FrontierStats
    coverage_gaps: tuple[CoverageGap, ...] = ()
    determinism_factors: tuple[DeterminismFactor, ...] = ()
    flows: tuple[FlowResult, ...] = ()

    def summary_dict(self, generated_at: str) -> dict[str, Any]:
        summary = self.summary
        return {
            "startUrl": self.start_url,
            "expectationsTotal": summary.expectations_total,
            "attempted": summary.attempted,
            "observed": summary.observed,
            "silentFailures": summary.silent_failures,
            "unattemptedBreakdown": dict(sorted(summary.unattempted_breakdown.items())),
            "truthState": self.truth.truth_state.value,
            "confidence": self.truth.confidence.value,
            "coverageRatio": summary.effective_coverage,
            "criticalSilenceKinds": list(summary.critical_silence_kinds),
            "infraFailure": summary.infra_failure,
            "isIncomplete": summary.is_incomplete,
            "incompleteReasons": list(summary.incomplete_reasons),
            "truth": build_truth_block(self.truth),
            "frontier": self.frontier.to_dict(),
            "coverageGaps": [gap.to_dict() for gap in self.coverage_gaps],
            "determinismFactors": [factor.to_dict() for factor in self.determinism_factors],
            "budget": self.budget.to_dict(),
            "allocations": [allocation.to_dict() for allocation in self.allocations],
            "flows": [flow.to_dict() for flow in self.flows],
            "verdicts": [verdict.to_dict() for verdict in self.verdicts],
            "finalVerdict": self.decision.final_verdict.value,
            "generatedAt": generated_at,
        }


@dataclass
class _RunState:
    """Mutable bookkeeping owned by a single ``run_scan`` call."""

    expectations: ExpectationSet
    records: list[TraceRecord] = field(default_factory=list)
    gaps: list[CoverageGap] = field(default_factory=list)
    factors: list[DeterminismFactor] = field(default_factory=list)
    attempts: list[OutcomeRecord] = field(default_factory=list)
    final: dict[str, Verdict | None] = field(default_factory=dict)
    unattempted: dict[str, str] = field(default_factory=dict)
    visited_paths: set[str] = field(default_factory=set)
    failed_paths: set[str] = field(default_factory=set)
    incomplete_reasons: set[str] = field(default_factory=set)
    sequence: int = 0

    def next_sequence(self) -> int:
        value = self.sequence
        self.sequence += 1
        return value

    def matching(self, interaction: Interaction, page_url: str) -> list[Expectation]:
        return [
            item
            for item in self.expectations.expectations
            if expectation_matches(item, interaction, page_url)
        ]

    def mark_unattempted(self, expectations: list[Expectation], reason: str) -> None:
        for item in expectations:
            if item.id not in self.final:
                self.unattempted.setdefault(item.id, reason)


def http_warnings_for(start_url: str) -> tuple[str, ...]:
    """Plain-http targets that are not local development hosts."""
    parts = urlsplit(start_url)
    if parts.scheme == "http" and (parts.hostname or "") not in LOCAL_HOSTS:
        return (canonicalize_url(start_url),)
    return ()


def _attempt_outcome(verdicts: list[Verdict], record: TraceRecord) -> Outcome:
    if record.skip is not None:
        return Outcome.SKIPPED
    statuses = {verdict.status for verdict in verdicts}
    if statuses & FAILURE_STATUSES:
        return Outcome.FAILURE
    if statuses & FRICTION_STATUSES:
        return Outcome.FRICTION
    if record.trace is not None and record.trace.failure is not None:
        return Outcome.FRICTION
    return Outcome.SUCCESS


def _attempt_name(interaction: Interaction, page_url: str) -> str:
    return f"{interaction.type.value}:{interaction.selector}@{route_path(page_url)}"


def _classify_matches(
    state: _RunState,
    matches: list[Expectation],
    observation: Observation,
    after_url: str | None,
    gap_reason: str,
) -> tuple[Observation, list[Verdict]]:
    """Classify each matched expectation against one observation."""
    verdicts: list[Verdict] = []
    for expectation in matches:
        verdict = classify(expectation, observation_for(expectation, observation, after_url))
        if verdict is not None:
            verdicts.append(verdict)
            if verdict.status in FRICTION_STATUSES and observation.silence_detected is None:
                observation = attach_silence(
                    observation, silence_kind_for(expectation), verdict.reason
                )
        if verdict is not None and verdict.status is VerdictStatus.COVERAGE_GAP:
            state.mark_unattempted([expectation], gap_reason)
        elif expectation.id not in state.final:
            state.final[expectation.id] = verdict
            state.unattempted.pop(expectation.id, None)
    return observation, verdicts


def _record_skip(
    state: _RunState, interaction: Interaction, page_url: str, decision: SkipDecision
) -> None:
    logger.warning("skipping %s on %s: %s", interaction.selector, page_url, decision.message)
    matches = state.matching(interaction, page_url)
    reason = decision.reason or GAP_SAFETY_POLICY
    observation = attach_silence(
        Observation(attempted=False, reason=reason), SilenceKind.SAFETY_SKIP, decision.message
    )
    _, verdicts = _classify_matches(state, matches, observation, None, reason)
    record = TraceRecord(
        sequence=state.next_sequence(),
        page_url=page_url,
        interaction=interaction,
        observation=observation,
        skip=decision,
        expectation_ids=tuple(item.id for item in matches),
        verdicts=tuple(verdicts),
    )
    state.records.append(record)
    state.gaps.append(
        CoverageGap(reason, url=page_url, selector=interaction.selector, message=decision.message)
    )
    state.attempts.append(OutcomeRecord(_attempt_name(interaction, page_url), Outcome.SKIPPED))


def _record_gap(
    state: _RunState, interactions: list[Interaction], page_url: str, reason: str, message: str
) -> None:
    for interaction in interactions:
        state.gaps.append(
            CoverageGap(reason=reason, url=page_url, selector=interaction.selector, message=message)
        )
        state.mark_unattempted(state.matching(interaction, page_url), reason)


def _run_one(
    state: _RunState,
    page: PageHandle,
    interaction: Interaction,
    budget: ScanBudget,
    page_url: str,
    clock: Callable[[], float],
) -> None:
    trace = run_interaction(
        page, interaction, budget, sequence=state.next_sequence(), clock=clock
    )
    if trace.timed_out:
        state.factors.append(
            DeterminismFactor(FACTOR_TIMEOUT_RISK, url=page_url, selector=interaction.selector)
        )
    matches = state.matching(interaction, page_url)
    after_url = trace.after.url if trace.after is not None else None
    gap_reason = trace.failure.finding_type if trace.failure is not None else GAP_NOT_DISCOVERED
    observation, verdicts = _classify_matches(
        state, matches, trace.observation, after_url, gap_reason
    )
    record = TraceRecord(
        sequence=trace.sequence,
        page_url=page_url,
        interaction=interaction,
        observation=observation,
        trace=trace,
        expectation_ids=tuple(item.id for item in matches),
        verdicts=tuple(verdicts),
    )
    state.records.append(record)
    state.attempts.append(
        OutcomeRecord(_attempt_name(interaction, page_url), _attempt_outcome(verdicts, record))
    )
    logger.debug(
        "interaction %s on %s: %s",
        interaction.selector,
        page_url,
        [verdict.status.value for verdict in verdicts] or "no expectation",
    )


def _return_to(
    page: PageHandle, page_url: str, budget: ScanBudget, clock: Callable[[], float]
) -> bool:
    """Reload ``page_url`` after an interaction navigated away."""
    if urls_equivalent(page.url, page_url):
        return True
    try:
        page.goto(page_url, timeout_ms=budget.navigation_timeout_ms)
    except DriverError as exc:
        logger.warning("could not return to %s: %s", page_url, exc)
        return False
    settle(page, budget, clock=clock)
    return True


def _allocation_for(
    path: str, allocations: dict[str, RouteAllocation], budget: ScanBudget
) -> RouteAllocation:
    if path in allocations:
        return allocations[path]
    return allocate(path, 0, max(1, len(allocations)), base=budget.max_interactions_per_page)


def _visit_page(
    state: _RunState,
    page: PageHandle,
    url: str,
    frontier: PageFrontier,
    budget: ScanBudget,
    allocations: dict[str, RouteAllocation],
    *,
    first: bool,
    clock: Callable[[], float],
) -> None:
    timeout_ms = budget.initial_navigation_timeout_ms if first else budget.navigation_timeout_ms
    try:
        page.goto(url, timeout_ms=timeout_ms)
    except DriverError as exc:
        if first:
            raise InfrastructureError(f"Start URL could not be loaded: {exc}") from exc
        logger.warning("navigation to %s failed: %s", url, exc)
        frontier.mark_visited(url)
        state.failed_paths.add(route_path(url))
        state.incomplete_reasons.add(INCOMPLETE_PAGE_LOAD)
        state.gaps.append(CoverageGap(reason=GAP_NAVIGATION_FAILED, url=url, message=str(exc)))
        return

    frontier.mark_visited(url)
    settle(page, budget, clock=clock)
    page_url = canonicalize_url(page.url)
    path = route_path(page_url)
    state.visited_paths.add(route_path(url))
    state.visited_paths.add(path)
    logger.info("visiting %s", page_url)

    discovered = discover_interactions(page)
    for interaction in discovered:
        if interaction.type is InteractionType.LINK and interaction.href:
            frontier.add(urljoin(page_url, interaction.href))

    allocation = _allocation_for(path, allocations, budget)
    page_budget = route_budget(budget, allocation)
    ordered = prioritize(discovered)
    selected = ordered[: page_budget.max_interactions_per_page]
    _record_gap(
        state,
        ordered[len(selected):],
        page_url,
        GAP_BUDGET_EXCEEDED,
        f"Page budget of {page_budget.max_interactions_per_page} interactions reached",
    )

    for index, interaction in enumerate(selected):
        if frontier.time_exhausted():
            _record_gap(
                state, selected[index:], page_url, GAP_TIMEOUT, "Scan duration budget exhausted"
            )
            return
        decision = should_skip(interaction)
        if decision.skip:
            _record_skip(state, interaction, page_url, decision)
            continue
        _run_one(state, page, interaction, page_budget, page_url, clock)
        if not _return_to(page, page_url, budget, clock):
            _record_gap(
                state,
                selected[index + 1:],
                page_url,
                GAP_NAVIGATION_FAILED,
                "Could not return to the page after an interaction",
            )
            state.incomplete_reasons.add(INCOMPLETE_PAGE_LOAD)
            return


def _run_flows(
    state: _RunState,
    page: PageHandle,
    frontier: PageFrontier,
    budget: ScanBudget,
    clock: Callable[[], float],
) -> list[FlowResult]:
    results: list[FlowResult] = []
    declared = state.expectations.flows
    for index, raw in enumerate(declared):
        name = raw.get("name") if isinstance(raw, dict) else None
        if index >= budget.max_flows:
            state.gaps.append(
                CoverageGap(GAP_BUDGET_EXCEEDED, selector=name, message="Flow budget reached")
            )
            continue
        if frontier.time_exhausted():
            state.gaps.append(
                CoverageGap(GAP_TIMEOUT, selector=name, message="Scan duration budget exhausted")
            )
            continue
        try:
            flow = load_flow(raw)
        except FlowValidationError as exc:
            logger.warning("invalid flow #%d: %s", index, exc)
            state.gaps.append(CoverageGap(GAP_FLOW_INVALID, selector=name, message=str(exc)))
            continue
        result = execute_flow(page, flow, budget, clock=clock)
        logger.info("flow %s finished: %s", flow.name, result.outcome.value)
        results.append(result)
    return results


def _unattempted_reason(
    state: _RunState, expectation: Expectation, frontier: FrontierStats, start_url: str
) -> str:
    if expectation.id in state.unattempted:
        return state.unattempted[expectation.id]
    if not expectation.from_path:
        return GAP_NOT_DISCOVERED
    path = route_path(expectation.from_path, start_url)
    if path in state.failed_paths:
        return GAP_NAVIGATION_FAILED
    if path in state.visited_paths:
        return GAP_NOT_DISCOVERED
    if frontier.frontier_capped:
        return GAP_FRONTIER_CAPPED
    if frontier.stop_reason == STOP_MAX_SCAN_DURATION:
        return GAP_TIMEOUT
    return GAP_NOT_VISITED


def _final_verdicts(
    state: _RunState, frontier: FrontierStats, start_url: str
) -> tuple[list[Verdict], dict[str, int]]:
    verdicts: list[Verdict] = []
    breakdown: Counter[str] = Counter()
    for expectation in state.expectations.expectations:
        if expectation.id in state.final:
            verdict = state.final[expectation.id]
            if verdict is not None:
                verdicts.append(verdict)
            continue
        reason = _unattempted_reason(state, expectation, frontier, start_url)
        breakdown[reason] += 1
        gap = classify(expectation, Observation(attempted=False, reason=reason))
        if gap is not None:
            verdicts.append(gap)
    return verdicts, dict(sorted(breakdown.items()))


def build_result(
    start_url: str,
    budget: ScanBudget,
    expectations: ExpectationSet,
    *,
    allocations: tuple[RouteAllocation, ...] = (),
    state: _RunState | None = None,
    frontier: FrontierStats | None = None,
    flows: tuple[FlowResult, ...] = (),
    infra_error: str | None = None,
    thresholds: TruthThresholds | None = None,
) -> ScanResult:
    """Aggregate run bookkeeping into summary, truth and decision."""
    state = state if state is not None else _RunState(expectations=expectations)
    frontier = frontier or FrontierStats(0, 0, 0, False, None)
    verdicts, breakdown = _final_verdicts(state, frontier, start_url)

    total = len(expectations.expectations)
    attempted = sum(1 for item in expectations.expectations if item.id in state.final)
    observed = sum(1 for verdict in verdicts if verdict.status is VerdictStatus.OBSERVED)
    confirmed = sum(1 for verdict in verdicts if verdict.status is VerdictStatus.CONFIRMED)
    silences = [
        record.observation.silence_detected
        for record in state.records
        if record.observation.silence_detected is not None
    ]

    incomplete = set(state.incomplete_reasons)
    if infra_error:
        incomplete.add(INCOMPLETE_INFRA)
    if frontier.stop_reason == STOP_MAX_SCAN_DURATION and frontier.queue_length > 0:
        incomplete.add(INCOMPLETE_SCAN_DURATION)

    summary = RunSummary(
        expectations_total=total,
        attempted=attempted,
        observed=observed,
        silent_failures=confirmed,
        coverage_ratio=round(attempted / total, 4) if total else None,
        critical_silence_kinds=tuple(summarize_critical_silences(silences)),
        infra_failure=infra_error is not None,
        is_incomplete=bool(incomplete),
        incomplete_reasons=tuple(sorted(incomplete)),
        unattempted_breakdown=breakdown,
    )
    truth = classify_run_truth(summary, thresholds or TruthThresholds())
    decision = compute_decision(
        DecisionSignals(
            truth=truth,
            coverage_ratio=summary.coverage_ratio,
            flows=tuple(OutcomeRecord(flow.name, flow.outcome) for flow in flows),
            attempts=tuple(state.attempts),
            http_warnings=http_warnings_for(start_url),
            error=infra_error,
        )
    )
    factors = list(state.factors)
    if budget.adaptive_stabilization:
        factors.insert(0, DeterminismFactor(FACTOR_ADAPTIVE))
    return ScanResult(
        start_url=canonicalize_url(start_url),
        budget=budget,
        allocations=allocations,
        records=tuple(state.records),
        verdicts=tuple(verdicts),
        summary=summary,
        truth=truth,
        decision=decision,
        frontier=frontier,
        coverage_gaps=tuple(state.gaps),
        determinism_factors=tuple(factors),
        flows=flows,
    )


def run_scan(
    page: PageHandle,
    start_url: str,
    budget: ScanBudget,
    expectations: ExpectationSet,
    *,
    thresholds: TruthThresholds | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> ScanResult:
    """Crawl from ``start_url``, exercise interactions, and judge the run.

    Pages are visited one at a time in FIFO order. Per-interaction failures
    never abort the run. A start page that cannot be loaded is an
    infrastructure failure and yields an INCOMPLETE result rather than an
    exception.
    """
    allocations = tuple(
        allocate_routes(
            expectations.routes,
            expectations.counts_by_route(),
            base=budget.max_interactions_per_page,
        )
    )
    budget = plan_run_budget(budget, len(allocations))
    by_path = {route_path(item.route, start_url): item for item in allocations}

    frontier = PageFrontier(start_url, budget, clock=clock)
    for allocation in allocations:
        frontier.add(urljoin(frontier.start_url, allocation.route))

    state = _RunState(expectations=expectations)
    infra_error: str | None = None
    first = True
    while True:
        url = frontier.next()
        if url is None:
            break
        try:
            _visit_page(
                state, page, url, frontier, budget, by_path, first=first, clock=clock
            )
        except InfrastructureError as exc:
            logger.warning("%s", exc)
            infra_error = str(exc)
            break
        first = False

    flows: list[FlowResult] = []
    if infra_error is None:
        flows = _run_flows(state, page, frontier, budget, clock)

    stats = frontier.stats()
    logger.info(
        "scan finished: %d page(s) visited, %d discovered, stop=%s",
        stats.pages_visited,
        stats.pages_discovered,
        stats.stop_reason,
    )
    return build_result(
        start_url,
        budget,
        expectations,
        allocations=allocations,
        state=state,
        frontier=stats,
        flows=tuple(flows),
        infra_error=infra_error,
        thresholds=thresholds,
    )
