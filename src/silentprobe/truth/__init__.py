"""Run truth classification and the decision authority."""

from silentprobe.truth.classifier import (
    INCOMPLETE_SAFETY_STATEMENT,
    build_coverage_summary,
    build_truth_block,
    classify_run_truth,
    format_truth_as_text,
    top_reasons,
)
from silentprobe.truth.decision import (
    DECISION_EXIT_CODES,
    EXIT_INVARIANT_VIOLATION,
    EXIT_USAGE_ERROR,
    TRUTH_EXIT_CODES,
    DecisionSignals,
    FinalDecision,
    FinalVerdict,
    Outcome,
    OutcomeRecord,
    compute_decision,
    exit_code_for,
)
from silentprobe.truth.types import (
    RunSummary,
    RunTruth,
    TruthConfidence,
    TruthState,
    TruthThresholds,
)

__all__ = [
    "DECISION_EXIT_CODES",
    "EXIT_INVARIANT_VIOLATION",
    "EXIT_USAGE_ERROR",
    "INCOMPLETE_SAFETY_STATEMENT",
    "TRUTH_EXIT_CODES",
    "DecisionSignals",
    "FinalDecision",
    "FinalVerdict",
    "Outcome",
    "OutcomeRecord",
    "RunSummary",
    "RunTruth",
    "TruthConfidence",
    "TruthState",
    "TruthThresholds",
    "build_coverage_summary",
    "build_truth_block",
    "classify_run_truth",
    "compute_decision",
    "exit_code_for",
    "format_truth_as_text",
    "top_reasons",
]
