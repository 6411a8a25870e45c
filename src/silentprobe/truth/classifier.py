"""Run truth classification: SUCCESS, FINDINGS or INCOMPLETE.

Rules are evaluated in a fixed priority order and the first match wins.
Confirmed silent failures always surface as FINDINGS, even at low coverage.
INCOMPLETE always carries the safety statement.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from silentprobe.truth.types import (
    RunSummary,
    RunTruth,
    TruthConfidence,
    TruthState,
    TruthThresholds,
)

INCOMPLETE_SAFETY_STATEMENT = "THIS RESULT MUST NOT BE TREATED AS SAFE."
DEFAULT_THRESHOLDS = TruthThresholds()
MAX_SILENCE_KINDS_IN_REASON = 3


def top_reasons(breakdown: Mapping[str, int], limit: int = 2) -> list[tuple[str, int]]:
    """Return the most frequent reasons, by count descending then key ascending."""
    ordered = sorted(
        ((key, int(count)) for key, count in breakdown.items() if int(count) > 0),
        key=lambda item: (-item[1], item[0]),
    )
    return ordered[:limit]


def build_coverage_summary(
    summary: RunSummary, thresholds: TruthThresholds = DEFAULT_THRESHOLDS
) -> dict[str, Any]:
    """Coverage transparency block with deterministic key and breakdown order."""
    unattempted = max(0, summary.expectations_total - summary.attempted)
    return {
        "expectationsTotal": summary.expectations_total,
        "attempted": summary.attempted,
        "observed": summary.observed,
        "coverageRatio": summary.effective_coverage,
        "threshold": thresholds.min_coverage,
        "unattemptedCount": unattempted,
        "unattemptedBreakdown": {
            key: summary.unattempted_breakdown[key]
            for key in sorted(summary.unattempted_breakdown)
        },
        "incompleteReasons": sorted(set(summary.incomplete_reasons)),
        "topReasons": [
            {"reason": key, "count": count}
            for key, count in top_reasons(summary.unattempted_breakdown)
        ],
    }


def _percent(value: float) -> str:
    return f"{value * 100:.1f}%"


def _incomplete(
    summary: RunSummary,
    thresholds: TruthThresholds,
    confidence: TruthConfidence,
    reason: str,
    lead: str,
    action: str,
) -> RunTruth:
    return RunTruth(
        truth_state=TruthState.INCOMPLETE,
        confidence=confidence,
        reason=reason,
        what_this_means=(
            f"{lead} Results are partial and cannot rule out silent failures. "
            f"{INCOMPLETE_SAFETY_STATEMENT}"
        ),
        recommended_action=action,
        coverage_summary=build_coverage_summary(summary, thresholds),
    )


def _shortfall_reason(summary: RunSummary, thresholds: TruthThresholds) -> str:
    coverage = summary.effective_coverage
    not_full = summary.attempted < summary.expectations_total
    too_low = coverage < thresholds.min_coverage
    if not_full and too_low:
        return (
            f"Only {summary.attempted}/{summary.expectations_total} attempted "
            f"({_percent(coverage)} coverage)"
        )
    if not_full:
        return f"Only {summary.attempted}/{summary.expectations_total} expectations attempted"
    return (
        f"Coverage {_percent(coverage)} below threshold "
        f"{thresholds.min_coverage * 100:.0f}%"
    )


def classify_run_truth(
    summary: RunSummary, thresholds: TruthThresholds = DEFAULT_THRESHOLDS
) -> RunTruth:
    """Classify the run into exactly one truth state."""
    coverage = summary.effective_coverage
    critical_kinds = sorted(set(summary.critical_silence_kinds))

    # 1. Infrastructure failure, or nothing attempted with work to do.
    if summary.infra_failure or (summary.attempted == 0 and summary.expectations_total > 0):
        return _incomplete(
            summary,
            thresholds,
            TruthConfidence.LOW,
            "Observation infrastructure failure or incomplete run with zero attempts",
            "The browser observation infrastructure did not complete.",
            "Check the browser setup and that the target URL is reachable, then rerun.",
        )

    # 2. Nothing to verify.
    if summary.expectations_total == 0:
        return RunTruth(
            truth_state=TruthState.SUCCESS,
            confidence=TruthConfidence.HIGH,
            reason="No testable expectations found (nothing to verify)",
            what_this_means="No declared promises were found, so there are no silent failures to detect.",
            recommended_action="If you expected interactions, check the expectations input.",
            coverage_summary=build_coverage_summary(summary, thresholds),
        )

    # 3. Findings take precedence over coverage.
    if summary.silent_failures > 0:
        return RunTruth(
            truth_state=TruthState.FINDINGS,
            confidence=TruthConfidence.HIGH,
            reason=(
                f"{summary.silent_failures} silent failure(s) detected across "
                f"{summary.attempted} attempts"
            ),
            what_this_means=(
                "One or more interactions appeared to work but did not produce the "
                "promised outcome."
            ),
            recommended_action=f"Review and fix the {summary.silent_failures} finding(s), then rerun.",
            coverage_summary=build_coverage_summary(summary, thresholds),
        )

    # 4. Incomplete run or ambiguity that blocks a confident verdict.
    if summary.is_incomplete or critical_kinds:
        if critical_kinds:
            shown = ", ".join(critical_kinds[:MAX_SILENCE_KINDS_IN_REASON])
            reason = f"Critical ambiguity detected ({len(critical_kinds)}): {shown}."
            confidence = TruthConfidence.MEDIUM
            lead = "The run observed interactions with ambiguous intent or missing observables."
        else:
            reason = _shortfall_reason(summary, thresholds)
            confidence = TruthConfidence.MEDIUM if coverage > 0.5 else TruthConfidence.LOW
            lead = "The run did not complete observation of all declared promises."
        return _incomplete(
            summary,
            thresholds,
            confidence,
            reason,
            lead,
            "Extend the budget or investigate why observations were limited, then rerun.",
        )

    # 5. Enough coverage, no failures, no critical silence.
    if coverage >= thresholds.min_coverage:
        full = summary.attempted >= summary.expectations_total
        return RunTruth(
            truth_state=TruthState.SUCCESS,
            confidence=TruthConfidence.HIGH,
            reason=(
                f"All {summary.attempted}/{summary.expectations_total} expectations attempted, zero failures"
                if full
                else f"Coverage {_percent(coverage)} meets threshold "
                f"({thresholds.min_coverage * 100:.0f}%), no silent failures"
            ),
            what_this_means="Attempted interactions produced their promised outcomes.",
            recommended_action="Treat this as advisory for covered flows and rerun when the site changes.",
            coverage_summary=build_coverage_summary(summary, thresholds),
        )

    # 6. Partial coverage.
    return _incomplete(
        summary,
        thresholds,
        TruthConfidence.MEDIUM if coverage > 0.5 else TruthConfidence.LOW,
        _shortfall_reason(summary, thresholds),
        "The run did not reach the coverage threshold.",
        "Extend the budget or investigate why observations were limited, then rerun.",
    )


def build_truth_block(truth: RunTruth) -> dict[str, Any]:
    """Summary-artifact view of the truth."""
    block = truth.to_dict()
    if truth.truth_state is TruthState.INCOMPLETE:
        block["safetyStatement"] = INCOMPLETE_SAFETY_STATEMENT
    return block


def format_truth_as_text(truth: RunTruth) -> str:
    """Render the truth for console output."""
    coverage = truth.coverage_summary
    lines = [
        f"Result: {truth.truth_state.value} (confidence {truth.confidence.value})",
        f"Reason: {truth.reason}",
    ]
    unattempted = int(coverage.get("unattemptedCount", 0))
    if unattempted > 0:
        line = (
            f"{unattempted} of {coverage.get('expectationsTotal', 0)} expectations "
            "were not exercised."
        )
        causes = [item["reason"] for item in coverage.get("topReasons", [])]
        if causes:
            line += f" Primary cause(s): {', '.join(causes)}."
        lines.append(line)
    if truth.truth_state is TruthState.INCOMPLETE:
        lines.append(INCOMPLETE_SAFETY_STATEMENT)
    lines.append(f"Next: {truth.recommended_action}")
    return "\n".join(lines)
