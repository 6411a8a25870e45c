from __future__ import annotations

import pytest

from silentprobe.detection.classifier import (
    EVALUATORS,
    classify,
    classify_many,
    compute_confidence,
    resolve_kind,
)
from silentprobe.detection.evidence_law import EVIDENCE_LAW_DOWNGRADE
from silentprobe.detection.types import (
    EvidenceBundle,
    EvidenceSignals,
    Expectation,
    Observation,
    Promise,
    PromiseKind,
    VerdictStatus,
)

STRONG = EvidenceBundle(before_url="https://app.test/", after_url="https://app.test/")


def _expectation(kind: str = "navigation", value: str = "/dashboard", **kwargs: object) -> Expectation:
    return Expectation(
        id=kwargs.pop("id", "exp-1"),  # type: ignore[arg-type]
        type=kind,
        promise=Promise(kind=kind, value=value),
        **kwargs,  # type: ignore[arg-type]
    )


def _observation(signals: dict | None = None, **kwargs: object) -> Observation:
    values = {"attempted": True, "run_complete": True, "evidence": STRONG}
    values.update(kwargs)
    return Observation(
        signals=EvidenceSignals.from_dict(signals) if signals is not None else None,
        **values,  # type: ignore[arg-type]
    )


def test_missing_inputs_are_unclassifiable() -> None:
    verdict = classify(None, _observation())
    assert verdict is not None
    assert verdict.status is VerdictStatus.UNCLASSIFIABLE
    assert verdict.confidence == 0.0


def test_observed_short_circuits_everything() -> None:
    verdict = classify(_expectation(), _observation({"navigationChanged": False}, observed=True))
    assert verdict is not None
    assert verdict.status is VerdictStatus.OBSERVED
    assert verdict.confidence == 1.0


def test_not_attempted_without_proof_is_coverage_gap() -> None:
    observation = Observation(attempted=False, reason="safety_policy")
    verdict = classify(_expectation(), observation)
    assert verdict is not None
    assert verdict.status is VerdictStatus.COVERAGE_GAP
    assert verdict.reason == "safety_policy"
    assert verdict.rationale_signals == ("NOT_ATTEMPTED",)


def test_signals_count_as_attempt_proof() -> None:
    observation = Observation(attempted=False, run_complete=True, evidence=STRONG)
    signals = EvidenceSignals(network_activity=True)
    verdict = classify(_expectation("submit", "/api/save"), observation, signals)
    assert verdict is not None
    assert verdict.status is not VerdictStatus.COVERAGE_GAP
    # Evaluators still require an explicit attempt before confirming.
    assert verdict.type == "unknown_silent_failure"


def test_attempted_without_substantive_evidence_is_unproven() -> None:
    observation = Observation(attempted=True)
    verdict = classify(_expectation(), observation)
    assert verdict is not None
    assert verdict.status is VerdictStatus.UNPROVEN
    assert verdict.rationale_signals == ("NO_EVIDENCE",)


def test_navigation_silent_failure_is_confirmed() -> None:
    verdict = classify(_expectation(), _observation({"navigationChanged": False}))
    assert verdict is not None
    assert verdict.status is VerdictStatus.CONFIRMED
    assert verdict.type == "navigation_silent_failure"
    assert verdict.confidence == 1.0
    assert verdict.expectation_id == "exp-1"
    assert verdict.promise_value == "/dashboard"
    assert "RUN_COMPLETE" in verdict.rationale_signals


CONFIRMING_SIGNALS: dict[PromiseKind, dict[str, bool]] = {
    PromiseKind.NAVIGATION: {},
    PromiseKind.SUBMIT: {"networkActivity": True},
    PromiseKind.FEEDBACK: {},
    PromiseKind.STATE: {"stateChanged": True},
    PromiseKind.LOADING: {"loadingStarted": True},
    PromiseKind.PERMISSION: {"silentBlock": True},
}

FEEDBACK_SIGNALS = ("feedbackSeen", "ariaLiveUpdated")
DOM_SIGNALS = ("meaningfulDomChange", "domChanged")

DISCONFIRMERS: dict[PromiseKind, tuple[str, ...]] = {
    PromiseKind.NAVIGATION: (
        "navigationChanged", *DOM_SIGNALS, *FEEDBACK_SIGNALS, "ariaRoleAlertsDetected"
    ),
    PromiseKind.SUBMIT: (*DOM_SIGNALS, *FEEDBACK_SIGNALS, "ariaRoleAlertsDetected"),
    PromiseKind.FEEDBACK: (
        "navigationChanged", *DOM_SIGNALS, *FEEDBACK_SIGNALS, "ariaRoleAlertsDetected"
    ),
    PromiseKind.STATE: (*DOM_SIGNALS, *FEEDBACK_SIGNALS, "ariaRoleAlertsDetected"),
    PromiseKind.LOADING: ("navigationChanged", *DOM_SIGNALS, *FEEDBACK_SIGNALS),
    PromiseKind.PERMISSION: ("navigationChanged", *FEEDBACK_SIGNALS),
}


def test_every_promise_kind_has_disconfirmers() -> None:
    assert set(DISCONFIRMERS) == set(EVALUATORS) == set(CONFIRMING_SIGNALS)


@pytest.mark.parametrize("kind", list(PromiseKind))
def test_confirming_signals_confirm_under_evidence_law(kind: PromiseKind) -> None:
    verdict = classify(_expectation(kind.value), _observation(CONFIRMING_SIGNALS[kind]))
    assert verdict is not None
    assert verdict.status is VerdictStatus.CONFIRMED
    assert EVIDENCE_LAW_DOWNGRADE not in verdict.rationale_signals


@pytest.mark.parametrize(
    ("kind", "signal"),
    [(kind, signal) for kind, signals in DISCONFIRMERS.items() for signal in signals],
)
def test_disconfirming_signal_wins_over_confirmation(kind: PromiseKind, signal: str) -> None:
    signals = {**CONFIRMING_SIGNALS[kind], signal: True}
    assert classify(_expectation(kind.value), _observation(signals)) is None
    assert classify(_expectation(kind.value), _observation(signals, evidence=None)) is None


def test_incomplete_window_halves_confidence_and_suspects() -> None:
    verdict = classify(_expectation(), _observation({}, run_complete=False))
    assert verdict is not None
    assert verdict.status is VerdictStatus.SUSPECTED
    assert verdict.rationale_signals == ("INCOMPLETE_OBSERVATION",)
    assert verdict.confidence == 0.5


def test_run_complete_argument_is_fallback_only() -> None:
    observation = _observation({"networkActivity": True}, run_complete=None)
    incomplete = classify(_expectation(), observation, run_complete=False)
    assert incomplete is not None and incomplete.status is VerdictStatus.SUSPECTED


def test_missing_promise_value_is_unclassified() -> None:
    verdict = classify(_expectation(value=""), _observation({}))
    assert verdict is not None
    assert verdict.type == "unknown_silent_failure"
    assert verdict.status is VerdictStatus.SUSPECTED
    assert verdict.rationale_signals == ("UNCLASSIFIED",)


def test_submit_network_without_ui_outcome_is_confirmed() -> None:
    verdict = classify(_expectation("submit", "/api/save"), _observation({"networkActivity": True}))
    assert verdict is not None
    assert verdict.status is VerdictStatus.CONFIRMED
    assert "NETWORK_ACTIVITY_PRESENT_BUT_NO_UI_OUTCOME" in verdict.rationale_signals


def test_submit_disconfirmed_by_feedback() -> None:
    assert classify(_expectation("submit", "/api/save"), _observation({"ariaRoleAlertsDetected": True})) is None


def test_feedback_disconfirmed_by_navigation() -> None:
    assert classify(_expectation("feedback", "Saved"), _observation({"navigationChanged": True})) is None
    verdict = classify(_expectation("feedback", "Saved"), _observation({}))
    assert verdict is not None and verdict.type == "ui_feedback_silent_failure"


def test_state_disconfirmed_by_dom_outcome() -> None:
    expectation = _expectation("state", "cart.items")
    assert classify(expectation, _observation({"domChanged": True})) is None
    verdict = classify(expectation, _observation({"stateChanged": True}))
    assert verdict is not None
    assert verdict.type == "state_change_silent_failure"
    assert verdict.status is VerdictStatus.CONFIRMED


def test_loading_stalled_is_confirmed_and_resolved_without_outcome_is_suspected() -> None:
    expectation = _expectation("loading", "spinner")
    stalled = classify(expectation, _observation({"loadingStarted": True}))
    assert stalled is not None
    assert stalled.status is VerdictStatus.CONFIRMED
    assert stalled.type == "loading_phantom_failure"

    resolved = classify(expectation, _observation({"loadingStarted": True, "loadingResolved": True}))
    assert resolved is not None
    assert resolved.status is VerdictStatus.SUSPECTED
    assert resolved.rationale_signals == ("LOADING_RESOLVED_NO_OUTCOME",)

    with_outcome = {"loadingStarted": True, "loadingResolved": True, "domChanged": True}
    assert classify(expectation, _observation(with_outcome)) is None


def test_loading_never_started_is_unclassified() -> None:
    verdict = classify(_expectation("loading", "spinner"), _observation({"networkActivity": True}))
    assert verdict is not None
    assert verdict.type == "unknown_silent_failure"


def test_permission_requires_block_marker() -> None:
    expectation = _expectation("permission", "/admin")
    blocked = classify(expectation, _observation({"silentBlock": True}))
    assert blocked is not None
    assert blocked.status is VerdictStatus.CONFIRMED
    assert blocked.type == "permission_wall_silent_failure"

    by_reason = classify(expectation, _observation({"networkActivity": True}, reason="HTTP 403"))
    assert by_reason is not None and by_reason.status is VerdictStatus.CONFIRMED

    unblocked = classify(expectation, _observation({"networkActivity": True}))
    assert unblocked is not None and unblocked.type == "unknown_silent_failure"

    assert classify(expectation, _observation({"silentBlock": True, "feedbackSeen": True})) is None


def test_evidence_law_downgrades_unbacked_confirmation() -> None:
    observation = Observation(attempted=True, run_complete=True)
    verdict = classify(_expectation(), observation)
    assert verdict is not None
    assert verdict.status is VerdictStatus.SUSPECTED
    assert verdict.rationale_signals[-1] == EVIDENCE_LAW_DOWNGRADE


def test_explicit_signal_map_is_strong_proof() -> None:
    observation = Observation(attempted=True, run_complete=True)
    verdict = classify(_expectation(), observation, EvidenceSignals())
    assert verdict is not None
    assert verdict.status is VerdictStatus.CONFIRMED


def test_classify_is_idempotent() -> None:
    expectation = _expectation("submit", "/api/save")
    observation = _observation({"networkActivity": True})
    assert classify(expectation, observation) == classify(expectation, observation)


def test_confidence_only_drops_as_disconfirming_signals_appear() -> None:
    none = compute_confidence(PromiseKind.FEEDBACK, EvidenceSignals())
    one = compute_confidence(PromiseKind.FEEDBACK, EvidenceSignals(feedback_seen=True))
    two = compute_confidence(
        PromiseKind.FEEDBACK, EvidenceSignals(feedback_seen=True, dom_changed=True)
    )
    assert none > one > two
    assert 0.0 <= two <= 1.0


def test_resolve_kind_prefers_declared_then_infers() -> None:
    assert resolve_kind(_expectation("form", "x")) is PromiseKind.SUBMIT
    inferred = Expectation(
        id="e", type="", promise=Promise(description="Shows spinner while saving")
    )
    assert resolve_kind(inferred) is PromiseKind.LOADING
    forbidden = Expectation(id="e", type="", promise=Promise(value="returns 403 when blocked"))
    assert resolve_kind(forbidden) is PromiseKind.PERMISSION
    assert resolve_kind(Expectation(id="e", type="", promise=Promise(value="zzz"))) is None


def test_classify_many_keeps_input_order() -> None:
    pairs = [
        (_expectation(id=f"exp-{index}"), _observation({"navigationChanged": index % 2 == 0}))
        for index in range(6)
    ]
    serial = classify_many(pairs)
    pooled = classify_many(pairs, workers=4)

    assert serial == pooled
    assert [verdict is None for verdict in serial] == [True, False, True, False, True, False]
    assert [verdict.expectation_id for verdict in serial if verdict] == ["exp-1", "exp-3", "exp-5"]
