"""Run-level truth and decision types."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any


class TruthState(str, Enum):
    SUCCESS = "SUCCESS"
    FINDINGS = "FINDINGS"
    INCOMPLETE = "INCOMPLETE"


class TruthConfidence(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


@dataclass(frozen=True)
class TruthThresholds:
    min_coverage: float = 0.90


@dataclass(frozen=True)
class RunSummary:
    """Aggregates for one run, fed to the truth classifier."""

    expectations_total: int = 0
    attempted: int = 0
    observed: int = 0
    silent_failures: int = 0
    coverage_ratio: float | None = None
    critical_silence_kinds: tuple[str, ...] = ()
    infra_failure: bool = False
    is_incomplete: bool = False
    incomplete_reasons: tuple[str, ...] = ()
    unattempted_breakdown: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Read-only view over a private copy.
        object.__setattr__(
            self, "unattempted_breakdown", MappingProxyType(dict(self.unattempted_breakdown))
        )

    @property
    def effective_coverage(self) -> float:
        if self.coverage_ratio is not None:
            return float(self.coverage_ratio)
        if self.expectations_total <= 0:
            return 0.0
        return round(min(1.0, self.attempted / self.expectations_total), 4)

    @property
    def critical_silence_count(self) -> int:
        return len(self.critical_silence_kinds)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> RunSummary:
        """Load from a summary artifact (camelCase keys)."""
        ratio = payload.get("coverageRatio")
        return cls(
            expectations_total=int(payload.get("expectationsTotal", 0) or 0),
            attempted=int(payload.get("attempted", 0) or 0),
            observed=int(payload.get("observed", 0) or 0),
            silent_failures=int(payload.get("silentFailures", 0) or 0),
            coverage_ratio=float(ratio) if ratio is not None else None,
            critical_silence_kinds=tuple(sorted(payload.get("criticalSilenceKinds") or [])),
            infra_failure=payload.get("infraFailure") is True,
            is_incomplete=payload.get("isIncomplete") is True,
            incomplete_reasons=tuple(payload.get("incompleteReasons") or []),
            unattempted_breakdown={
                str(key): int(value)
                for key, value in (payload.get("unattemptedBreakdown") or {}).items()
            },
        )


@dataclass(frozen=True)
class RunTruth:
    """Terminal truth for a run. Immutable."""

    truth_state: TruthState
    confidence: TruthConfidence
    reason: str
    what_this_means: str
    recommended_action: str
    coverage_summary: dict[str, Any]

    @property
    def safe_to_trust(self) -> bool:
        return self.truth_state is TruthState.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "truthState": self.truth_state.value,
            "confidence": self.confidence.value,
            "reason": self.reason,
            "whatThisMeans": self.what_this_means,
            "recommendedAction": self.recommended_action,
            "coverageSummary": self.coverage_summary,
        }
