"""Decision Authority: one final verdict and exit code per run.

Every verdict signal (rules, flows, attempts, policy, truth, journey,
network safety, secrets, baseline) flows through ``compute_decision`` in a
fixed phase order. The function is pure and records the provenance of each
verdict change in ``verdict_history``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from silentprobe.errors import DecisionInvariantError
from silentprobe.truth.types import RunTruth, TruthState


class FinalVerdict(str, Enum):
    READY = "READY"
    FRICTION = "FRICTION"
    DO_NOT_LAUNCH = "DO_NOT_LAUNCH"
    ERROR = "ERROR"


class VerdictSource:
    RULES_ENGINE = "rules_engine"
    COVERAGE_DOWNGRADE = "coverage_downgrade"
    FLOWS_FAILURE = "flows_failure"
    FLOWS_FRICTION = "flows_friction"
    ATTEMPTS_FAILURE = "attempts_failure"
    ATTEMPTS_FRICTION = "attempts_friction"
    POLICY_HARD_FAILURE = "policy_hard_failure"
    TRUTH = "truth_classifier"
    OBSERVED = "observed"
    INSUFFICIENT_DATA = "insufficient_data"
    JOURNEY_DOWNGRADE = "journey_downgrade"
    NETWORK_SAFETY = "network_safety"
    SECRETS = "secrets"
    ERROR = "error"


class Outcome(str, Enum):
    SUCCESS = "SUCCESS"
    FRICTION = "FRICTION"
    FAILURE = "FAILURE"
    SKIPPED = "SKIPPED"


VERDICT_ALIASES: dict[str, FinalVerdict] = {
    "CONCERN": FinalVerdict.FRICTION,
    "FAIL": FinalVerdict.DO_NOT_LAUNCH,
}

VERDICT_RANK: dict[FinalVerdict, int] = {
    FinalVerdict.READY: 0,
    FinalVerdict.FRICTION: 1,
    FinalVerdict.DO_NOT_LAUNCH: 2,
    FinalVerdict.ERROR: 3,
}

TRUTH_TO_VERDICT: dict[TruthState, FinalVerdict] = {
    TruthState.SUCCESS: FinalVerdict.READY,
    TruthState.FINDINGS: FinalVerdict.DO_NOT_LAUNCH,
    TruthState.INCOMPLETE: FinalVerdict.FRICTION,
}

DECISION_EXIT_CODES: dict[FinalVerdict, int] = {
    FinalVerdict.READY: 0,
    FinalVerdict.FRICTION: 1,
    FinalVerdict.DO_NOT_LAUNCH: 2,
    FinalVerdict.ERROR: 3,
}

TRUTH_EXIT_CODES: dict[TruthState, int] = {
    TruthState.SUCCESS: 0,
    TruthState.FINDINGS: 20,
    TruthState.INCOMPLETE: 30,
}

EXIT_INVARIANT_VIOLATION = 50
EXIT_USAGE_ERROR = 64

COVERAGE_THRESHOLD = 0.7
POLICY_HARD_FAIL_EXIT = 1


def normalize_verdict(value: str | FinalVerdict) -> FinalVerdict:
    """Map a verdict name or alias onto the closed verdict set."""
    if isinstance(value, FinalVerdict):
        return value
    key = str(value).strip().upper()
    if key in VERDICT_ALIASES:
        return VERDICT_ALIASES[key]
    return FinalVerdict(key)


def exit_code_for(verdict: str | FinalVerdict | TruthState) -> int:
    """Exit code for a decision verdict or a truth state."""
    if isinstance(verdict, TruthState):
        return TRUTH_EXIT_CODES[verdict]
    if isinstance(verdict, str) and verdict.strip().upper() in TruthState.__members__:
        return TRUTH_EXIT_CODES[TruthState(verdict.strip().upper())]
    try:
        return DECISION_EXIT_CODES[normalize_verdict(verdict)]
    except ValueError as exc:
        raise KeyError(f"Unknown verdict: {verdict}") from exc


@dataclass(frozen=True)
class OutcomeRecord:
    """Outcome of one flow or attempt."""

    name: str
    outcome: Outcome


@dataclass(frozen=True)
class DecisionSignals:
    truth: RunTruth | None = None
    rules_verdict: str | None = None
    coverage_ratio: float | None = None
    flows: tuple[OutcomeRecord, ...] = ()
    attempts: tuple[OutcomeRecord, ...] = ()
    policy_exit_code: int | None = None
    journey_verdict: str | None = None
    http_warnings: tuple[str, ...] = ()
    missing_secrets: tuple[str, ...] = ()
    baseline_regressions: tuple[str, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class DecisionReason:
    code: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


@dataclass(frozen=True)
class HistoryEntry:
    phase: int
    source: str
    suggested_verdict: str
    reason_code: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase,
            "source": self.source,
            "suggestedVerdict": self.suggested_verdict,
            "reasonCode": self.reason_code,
        }


@dataclass(frozen=True)
class FinalDecision:
    final_verdict: FinalVerdict
    verdict_source: str
    confidence: float
    reasons: tuple[DecisionReason, ...]
    verdict_history: tuple[HistoryEntry, ...]
    informational: tuple[DecisionReason, ...] = ()
    truth_state: TruthState | None = None

    @property
    def exit_code(self) -> int:
        return DECISION_EXIT_CODES[self.final_verdict]

    def to_dict(self) -> dict[str, Any]:
        return {
            "finalVerdict": self.final_verdict.value,
            "exitCode": self.exit_code,
            "confidence": self.confidence,
            "verdictSource": self.verdict_source,
            "reasons": [reason.to_dict() for reason in self.reasons],
            "verdictHistory": [entry.to_dict() for entry in self.verdict_history],
            "informational": [reason.to_dict() for reason in self.informational],
            "truthState": self.truth_state.value if self.truth_state is not None else None,
        }


@dataclass
class _State:
    verdict: FinalVerdict | None = None
    source: str = VerdictSource.INSUFFICIENT_DATA
    confidence: float = 0.0
    reasons: list[DecisionReason] = field(default_factory=list)
    history: list[HistoryEntry] = field(default_factory=list)

    def suggest(
        self,
        phase: int,
        source: str,
        verdict: FinalVerdict,
        reason_code: str,
        message: str,
        confidence: float,
    ) -> None:
        """Record a suggestion and apply it when it is at least as severe."""
        self.history.append(HistoryEntry(phase, source, verdict.value, reason_code))
        self.reasons.append(DecisionReason(reason_code, message))
        if self.verdict is None or VERDICT_RANK[verdict] > VERDICT_RANK[self.verdict]:
            self.verdict = verdict
            self.source = source
            self.confidence = confidence
        elif verdict is self.verdict:
            self.confidence = max(self.confidence, confidence)

    def downgrade_ready(self, phase: int, source: str, reason_code: str, message: str) -> None:
        self.history.append(
            HistoryEntry(phase, source, FinalVerdict.FRICTION.value, reason_code)
        )
        self.reasons.append(DecisionReason(reason_code, message))
        if self.verdict is FinalVerdict.READY:
            self.verdict = FinalVerdict.FRICTION
            self.source = source
            self.confidence = min(self.confidence, 0.7)


def _sorted_reasons(reasons: list[DecisionReason]) -> tuple[DecisionReason, ...]:
    unique = {(reason.code, reason.message): reason for reason in reasons}
    return tuple(unique[key] for key in sorted(unique))


def _current_verdict(state: _State) -> FinalVerdict:
    if state.verdict is None:
        raise DecisionInvariantError(
            f"No verdict after {len(state.history)} suggestion(s)"
        )
    return state.verdict


def _finalize(
    state: _State, signals: DecisionSignals, informational: list[DecisionReason]
) -> FinalDecision:
    return FinalDecision(
        final_verdict=_current_verdict(state),
        verdict_source=state.source,
        confidence=round(state.confidence, 2),
        reasons=_sorted_reasons(state.reasons),
        verdict_history=tuple(state.history),
        informational=_sorted_reasons(informational),
        truth_state=signals.truth.truth_state if signals.truth is not None else None,
    )


def compute_decision(signals: DecisionSignals) -> FinalDecision:
    """Merge all verdict signals into one final decision."""
    state = _State()
    informational: list[DecisionReason] = []

    if signals.error:
        state.suggest(0, VerdictSource.ERROR, FinalVerdict.ERROR, "RUN_ERROR", signals.error, 1.0)
        return _finalize(state, signals, informational)

    coverage_low = (
        signals.coverage_ratio is not None and signals.coverage_ratio < COVERAGE_THRESHOLD
    )

    # Phase 1: rules engine, with READY blocked by insufficient coverage.
    if signals.rules_verdict:
        rules = normalize_verdict(signals.rules_verdict)
        if rules is FinalVerdict.READY and coverage_low:
            state.suggest(
                1,
                VerdictSource.COVERAGE_DOWNGRADE,
                FinalVerdict.FRICTION,
                "COVERAGE_INSUFFICIENT",
                f"Coverage {signals.coverage_ratio:.2f} below {COVERAGE_THRESHOLD:.2f}",
                0.75,
            )
        else:
            state.suggest(
                1, VerdictSource.RULES_ENGINE, rules, "RULES_VERDICT", f"Rules engine: {rules.value}", 0.95
            )

    # Phase 2a: a failed flow is decisive.
    failed_flows = sorted(item.name for item in signals.flows if item.outcome is Outcome.FAILURE)
    if failed_flows:
        for name in failed_flows:
            state.suggest(
                2,
                VerdictSource.FLOWS_FAILURE,
                FinalVerdict.DO_NOT_LAUNCH,
                "FLOW_FAILED",
                f"Flow '{name}' failed",
                0.99,
            )
        state.verdict = FinalVerdict.DO_NOT_LAUNCH
        state.source = VerdictSource.FLOWS_FAILURE
        state.confidence = 0.99
        return _finalize(state, signals, informational)

    # Phase 2b-2e: friction flows, failed and friction attempts, policy.
    for name in sorted(item.name for item in signals.flows if item.outcome is Outcome.FRICTION):
        state.suggest(
            2, VerdictSource.FLOWS_FRICTION, FinalVerdict.FRICTION, "FLOW_FRICTION",
            f"Flow '{name}' completed with friction", 0.85,
        )
    failed_attempts = sorted(item.name for item in signals.attempts if item.outcome is Outcome.FAILURE)
    if failed_attempts:
        state.suggest(
            2, VerdictSource.ATTEMPTS_FAILURE, FinalVerdict.DO_NOT_LAUNCH, "ATTEMPT_FAILED",
            f"{len(failed_attempts)} attempt(s) failed: {', '.join(failed_attempts[:3])}", 0.95,
        )
    friction_attempts = sorted(
        item.name for item in signals.attempts if item.outcome is Outcome.FRICTION
    )
    if friction_attempts:
        state.suggest(
            2, VerdictSource.ATTEMPTS_FRICTION, FinalVerdict.FRICTION, "ATTEMPT_FRICTION",
            f"{len(friction_attempts)} attempt(s) with friction: {', '.join(friction_attempts[:3])}",
            0.85,
        )
    if signals.policy_exit_code == POLICY_HARD_FAIL_EXIT:
        state.suggest(
            2, VerdictSource.POLICY_HARD_FAILURE, FinalVerdict.DO_NOT_LAUNCH, "POLICY_HARD_FAIL",
            "Policy evaluation reported a hard failure", 0.99,
        )

    # Phase 3: truth and default verdict.
    if signals.truth is not None:
        suggested = TRUTH_TO_VERDICT[signals.truth.truth_state]
        state.suggest(
            3, VerdictSource.TRUTH, suggested, f"TRUTH_{signals.truth.truth_state.value}",
            signals.truth.reason, 0.95 if suggested is not FinalVerdict.FRICTION else 0.75,
        )
    applicable = [item for item in (*signals.flows, *signals.attempts) if item.outcome is not Outcome.SKIPPED]
    if state.verdict is None:
        if not applicable:
            state.suggest(
                3, VerdictSource.INSUFFICIENT_DATA, FinalVerdict.FRICTION, "NO_APPLICABLE_SIGNALS",
                "No applicable flows or attempts found to execute", 0.3,
            )
        else:
            state.suggest(
                3, VerdictSource.OBSERVED, FinalVerdict.READY, "OBSERVED_SUCCESS",
                f"Executed {len(applicable)} flow(s)/attempt(s) without failures", 0.95,
            )
    if state.verdict is FinalVerdict.READY and coverage_low:
        state.downgrade_ready(
            3, VerdictSource.COVERAGE_DOWNGRADE, "COVERAGE_INSUFFICIENT",
            f"Coverage {signals.coverage_ratio:.2f} below {COVERAGE_THRESHOLD:.2f}",
        )

    # Phase 4: journey can only downgrade; safety signals block READY.
    if signals.journey_verdict:
        journey = normalize_verdict(signals.journey_verdict)
        if VERDICT_RANK[journey] > VERDICT_RANK[_current_verdict(state)]:
            previous = state.verdict
            state.suggest(
                4, VerdictSource.JOURNEY_DOWNGRADE, journey, "JOURNEY_DOWNGRADE",
                f"Journey verdict downgraded from {previous.value} to {journey.value}",
                min(state.confidence, 0.85),
            )
    if signals.http_warnings:
        state.downgrade_ready(
            4, VerdictSource.NETWORK_SAFETY, "INSECURE_TRANSPORT",
            f"HTTP detected on {len(signals.http_warnings)} request(s): "
            f"{', '.join(sorted(signals.http_warnings)[:3])}",
        )
    if signals.missing_secrets:
        state.downgrade_ready(
            4, VerdictSource.SECRETS, "MISSING_SECRETS",
            f"Missing required secrets: {', '.join(sorted(signals.missing_secrets))}",
        )

    # Phase 5: baseline regressions are informational only.
    for regression in sorted(signals.baseline_regressions):
        informational.append(DecisionReason("BASELINE_REGRESSION", regression))

    return _finalize(state, signals, informational)
