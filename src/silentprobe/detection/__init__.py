"""Silent failure detection: expectations, classification and the Evidence Law."""

from silentprobe.detection.classifier import (
    EVALUATORS,
    classify,
    classify_many,
    compute_confidence,
    resolve_kind,
)
from silentprobe.detection.evidence_law import enforce_evidence_law, has_strong_proof
from silentprobe.detection.silence import (
    CRITICAL_SILENCE_KINDS,
    SilenceKind,
    attach_silence,
    summarize_critical_silences,
)
from silentprobe.detection.types import (
    EvidenceBundle,
    EvidenceSignals,
    Expectation,
    Observation,
    Promise,
    PromiseKind,
    SourceRef,
    Verdict,
    VerdictStatus,
)

__all__ = [
    "CRITICAL_SILENCE_KINDS",
    "EVALUATORS",
    "EvidenceBundle",
    "EvidenceSignals",
    "Expectation",
    "Observation",
    "Promise",
    "PromiseKind",
    "SilenceKind",
    "SourceRef",
    "Verdict",
    "VerdictStatus",
    "attach_silence",
    "classify",
    "classify_many",
    "compute_confidence",
    "enforce_evidence_law",
    "has_strong_proof",
    "resolve_kind",
    "summarize_critical_silences",
]
