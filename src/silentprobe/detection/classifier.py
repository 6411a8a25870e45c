"""Evidence-gated silent failure classification.

``classify`` is a pure function: identical arguments always produce an
identical verdict. Gates run in a fixed order (observed, attempted,
substantive evidence) before the expectation's PromiseKind evaluator is
consulted. Evaluators return None when the promise was kept or a
disconfirming signal is present.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from silentprobe.detection.evidence_law import enforce_evidence_law
from silentprobe.detection.types import (
    FAILURE_TYPES,
    UNKNOWN_FAILURE_TYPE,
    EvidenceSignals,
    Expectation,
    Observation,
    PromiseKind,
    Verdict,
    VerdictStatus,
)

INCOMPLETE_FACTOR = 0.5
LOADING_RESOLVED_FACTOR = 0.65

DECLARED_KINDS: dict[str, PromiseKind] = {
    "navigation": PromiseKind.NAVIGATION,
    "navigate": PromiseKind.NAVIGATION,
    "route": PromiseKind.NAVIGATION,
    "link": PromiseKind.NAVIGATION,
    "submit": PromiseKind.SUBMIT,
    "form": PromiseKind.SUBMIT,
    "network": PromiseKind.SUBMIT,
    "feedback": PromiseKind.FEEDBACK,
    "ui_feedback": PromiseKind.FEEDBACK,
    "state": PromiseKind.STATE,
    "loading": PromiseKind.LOADING,
    "permission": PromiseKind.PERMISSION,
}

# Inference order matters: the first matching pattern wins.
INFERENCE_PATTERNS: tuple[tuple[PromiseKind, re.Pattern[str]], ...] = (
    (PromiseKind.PERMISSION, re.compile(r"permission|access|auth|\b40[13]\b|blocked")),
    (PromiseKind.NAVIGATION, re.compile(r"navigat|\broute|\blink\b")),
    (PromiseKind.SUBMIT, re.compile(r"\bsubmit")),
    (PromiseKind.LOADING, re.compile(r"loading|spinner|progress|skeleton")),
    (PromiseKind.STATE, re.compile(r"state|dispatch|\bset|\bstore\b")),
    (PromiseKind.FEEDBACK, re.compile(r"feedback|async|\bclick")),
)

BLOCK_MARKERS: tuple[str, ...] = ("blocked", "403", "401")


@dataclass(frozen=True)
class _Context:
    expectation: Expectation
    observation: Observation
    signals: EvidenceSignals
    run_complete: bool

    @property
    def promise_value(self) -> str | None:
        return self.expectation.promise.label or None


Evaluator = Callable[[_Context], "Verdict | None"]


def resolve_kind(expectation: Expectation) -> PromiseKind | None:
    """Resolve the promise kind from the declared type, else from promise text."""
    for declared in (expectation.type, expectation.promise.kind, expectation.action_type):
        kind = DECLARED_KINDS.get((declared or "").strip().lower())
        if kind is not None:
            return kind

    promise = expectation.promise
    text = " ".join(
        part for part in (promise.value, promise.description, promise.state_key or "") if part
    )
    lowered = text.lower()
    for kind, pattern in INFERENCE_PATTERNS:
        if pattern.search(lowered):
            return kind
    return None


def compute_confidence(kind: PromiseKind | None, signals: EvidenceSignals) -> float:
    """Score how strongly the absent outcome proves silence, clamped to [0, 1]."""
    score = 0.5
    score += -0.25 if signals.feedback_present else 0.2
    score += -0.25 if signals.dom_outcome else 0.15
    score += -0.25 if signals.navigation_changed else 0.15

    if kind is PromiseKind.NAVIGATION and signals.navigation_changed:
        score -= 0.3
    elif kind is PromiseKind.LOADING and signals.loading_resolved:
        score += 0.05
    elif kind is PromiseKind.SUBMIT and signals.network_activity:
        if not signals.feedback_present and not signals.dom_outcome:
            score += 0.05

    return round(max(0.0, min(1.0, score)), 2)


def _verdict(
    ctx: _Context,
    kind: PromiseKind,
    status: VerdictStatus,
    rationale: Iterable[str],
    reason: str,
    factor: float = 1.0,
) -> Verdict:
    return Verdict(
        type=FAILURE_TYPES[kind],
        status=status,
        confidence=round(compute_confidence(kind, ctx.signals) * factor, 2),
        rationale_signals=tuple(rationale),
        reason=reason,
        expectation_id=ctx.expectation.id,
        promise_value=ctx.promise_value,
    )


def _incomplete(ctx: _Context, kind: PromiseKind, what: str) -> Verdict:
    return _verdict(
        ctx,
        kind,
        VerdictStatus.SUSPECTED,
        ("INCOMPLETE_OBSERVATION",),
        f"{what} attempted but observation window incomplete",
        INCOMPLETE_FACTOR,
    )


def _unclassified(ctx: _Context, kind: PromiseKind | None = None) -> Verdict:
    return Verdict(
        type=UNKNOWN_FAILURE_TYPE,
        status=VerdictStatus.SUSPECTED,
        confidence=compute_confidence(kind, ctx.signals),
        rationale_signals=("UNCLASSIFIED",),
        reason="Attempted but not observed with evidence, type unclear",
        expectation_id=ctx.expectation.id,
        promise_value=ctx.promise_value,
    )


def evaluate_navigation(ctx: _Context) -> Verdict | None:
    s = ctx.signals
    if s.dom_outcome or s.feedback_present or s.navigation_changed:
        return None
    if not ctx.promise_value or not ctx.observation.attempted:
        return _unclassified(ctx, PromiseKind.NAVIGATION)
    if not ctx.run_complete:
        return _incomplete(ctx, PromiseKind.NAVIGATION, "Navigation")
    return _verdict(
        ctx,
        PromiseKind.NAVIGATION,
        VerdictStatus.CONFIRMED,
        ("ATTEMPT_CONFIRMED", "NO_NAV_CHANGE", "NO_FEEDBACK", "NO_DOM_CHANGE", "RUN_COMPLETE"),
        "Navigation click executed but no route change, DOM change, or feedback",
    )


def evaluate_submit(ctx: _Context) -> Verdict | None:
    s = ctx.signals
    if s.feedback_present or s.dom_outcome:
        return None
    if not ctx.promise_value or not ctx.observation.attempted:
        return _unclassified(ctx, PromiseKind.SUBMIT)
    if not ctx.run_complete:
        return _incomplete(ctx, PromiseKind.SUBMIT, "Submit")
    network = "NETWORK_ACTIVITY_PRESENT_BUT_NO_UI_OUTCOME" if s.network_activity else "NO_NETWORK"
    return _verdict(
        ctx,
        PromiseKind.SUBMIT,
        VerdictStatus.CONFIRMED,
        ("ATTEMPT_CONFIRMED", "NO_FEEDBACK", "NO_DOM_OUTCOME", network, "RUN_COMPLETE"),
        "Submit executed but no feedback or DOM outcome",
    )


def evaluate_feedback(ctx: _Context) -> Verdict | None:
    s = ctx.signals
    if s.feedback_present or s.dom_outcome or s.navigation_changed:
        return None
    if not ctx.promise_value or not ctx.observation.attempted:
        return _unclassified(ctx, PromiseKind.FEEDBACK)
    if not ctx.run_complete:
        return _incomplete(ctx, PromiseKind.FEEDBACK, "Action")
    return _verdict(
        ctx,
        PromiseKind.FEEDBACK,
        VerdictStatus.CONFIRMED,
        ("ATTEMPT_CONFIRMED", "NO_FEEDBACK", "NO_DOM_CHANGE", "NO_NAV_CHANGE", "RUN_COMPLETE"),
        "Action executed but no feedback, DOM change, or navigation",
    )


def evaluate_state(ctx: _Context) -> Verdict | None:
    s = ctx.signals
    if s.dom_outcome or s.feedback_present:
        return None
    if not ctx.promise_value or not ctx.observation.attempted:
        return _unclassified(ctx, PromiseKind.STATE)
    if not ctx.run_complete:
        return _incomplete(ctx, PromiseKind.STATE, "State mutation")
    return _verdict(
        ctx,
        PromiseKind.STATE,
        VerdictStatus.CONFIRMED,
        ("ATTEMPT_CONFIRMED", "NO_UI_OUTCOME", "NO_FEEDBACK", "RUN_COMPLETE"),
        "State mutation attempted but no UI outcome or feedback",
    )


def evaluate_loading(ctx: _Context) -> Verdict | None:
    s = ctx.signals
    if s.feedback_seen or s.aria_live_updated:
        return None
    outcome = s.navigation_changed or s.dom_outcome
    if s.loading_resolved:
        if outcome:
            return None
        return _verdict(
            ctx,
            PromiseKind.LOADING,
            VerdictStatus.SUSPECTED,
            ("LOADING_RESOLVED_NO_OUTCOME",),
            "Loading resolved but no success feedback, navigation, or DOM change",
            LOADING_RESOLVED_FACTOR,
        )
    if outcome:
        return None
    if not ctx.promise_value or not s.loading_started:
        return _unclassified(ctx, PromiseKind.LOADING)
    if not ctx.run_complete:
        return _incomplete(ctx, PromiseKind.LOADING, "Loading")
    return _verdict(
        ctx,
        PromiseKind.LOADING,
        VerdictStatus.CONFIRMED,
        ("LOADING_STARTED", "LOADING_STALLED", "NO_OUTCOME", "RUN_COMPLETE"),
        "Loading started but never resolved and produced no outcome",
    )


def evaluate_permission(ctx: _Context) -> Verdict | None:
    s = ctx.signals
    if s.feedback_seen or s.aria_live_updated or s.navigation_changed:
        return None
    reason = ctx.observation.reason.lower()
    blocked = s.silent_block or any(marker in reason for marker in BLOCK_MARKERS)
    if not ctx.promise_value or not ctx.observation.attempted or not blocked:
        return _unclassified(ctx, PromiseKind.PERMISSION)
    if not ctx.run_complete:
        return _incomplete(ctx, PromiseKind.PERMISSION, "Blocked action")
    return _verdict(
        ctx,
        PromiseKind.PERMISSION,
        VerdictStatus.CONFIRMED,
        ("ATTEMPT_CONFIRMED", "BLOCKED_OR_403", "NO_DENIAL_FEEDBACK", "NO_REDIRECT", "RUN_COMPLETE"),
        "Action was blocked without denial feedback or redirect",
    )


EVALUATORS: dict[PromiseKind, Evaluator] = {
    PromiseKind.NAVIGATION: evaluate_navigation,
    PromiseKind.SUBMIT: evaluate_submit,
    PromiseKind.FEEDBACK: evaluate_feedback,
    PromiseKind.STATE: evaluate_state,
    PromiseKind.LOADING: evaluate_loading,
    PromiseKind.PERMISSION: evaluate_permission,
}


def classify(
    expectation: Expectation | None,
    observation: Observation | None,
    signals: EvidenceSignals | None = None,
    run_complete: bool = True,
) -> Verdict | None:
    """Classify one expectation/observation pair.

    Args:
        expectation: Declared promise.
        observation: What the driver saw.
        signals: Evidence signals. Defaults to ``observation.signals``.
        run_complete: Fallback when the observation does not record its own
            ``run_complete`` flag.

    Returns:
        A verdict, or None when the promise was kept or a disconfirming
        signal rules out a silent failure.
    """
    if expectation is None or observation is None:
        return Verdict(
            type=None,
            status=VerdictStatus.UNCLASSIFIABLE,
            confidence=0.0,
            rationale_signals=(),
            reason="Missing expectation or observation",
        )

    effective = signals if signals is not None else observation.signals
    explicit_signals = effective is not None
    effective = effective if effective is not None else EvidenceSignals()

    if observation.observed:
        return Verdict(
            type=None,
            status=VerdictStatus.OBSERVED,
            confidence=1.0,
            rationale_signals=("EXPECTATION_MET",),
            reason="Expectation was observed at runtime",
            expectation_id=expectation.id,
        )

    attempt_proof = observation.attempted or effective.attempt_proof
    if not attempt_proof:
        return Verdict(
            type=None,
            status=VerdictStatus.COVERAGE_GAP,
            confidence=0.0,
            rationale_signals=("NOT_ATTEMPTED",),
            reason=observation.reason or "Expectation was not attempted",
            expectation_id=expectation.id,
        )

    if not (effective.observable or observation.run_complete is not None):
        return Verdict(
            type=None,
            status=VerdictStatus.UNPROVEN,
            confidence=0.0,
            rationale_signals=("NO_EVIDENCE",),
            reason="Attempted but no substantive evidence captured",
            expectation_id=expectation.id,
        )

    ctx = _Context(
        expectation=expectation,
        observation=observation,
        signals=effective,
        run_complete=(
            observation.run_complete if observation.run_complete is not None else run_complete
        ),
    )
    kind = resolve_kind(expectation)
    verdict = EVALUATORS[kind](ctx) if kind is not None else _unclassified(ctx)
    return enforce_evidence_law(verdict, observation.evidence, explicit_signals=explicit_signals)


def classify_many(
    pairs: Iterable[tuple[Expectation, Observation]],
    *,
    workers: int | None = None,
) -> list[Verdict | None]:
    """Classify many pairs, optionally on a thread pool. Output keeps input order."""
    items = list(pairs)
    if not workers or workers <= 1:
        return [classify(expectation, observation) for expectation, observation in items]
    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(lambda pair: classify(pair[0], pair[1]), items))
