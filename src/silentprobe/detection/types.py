"""Detection domain types: expectations, observations and verdicts."""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any


class PromiseKind(str, Enum):
    """Closed set of promise variants, one evaluator each."""

    NAVIGATION = "navigation"
    SUBMIT = "submit"
    FEEDBACK = "feedback"
    STATE = "state"
    LOADING = "loading"
    PERMISSION = "permission"


class VerdictStatus(str, Enum):
    CONFIRMED = "CONFIRMED"
    SUSPECTED = "SUSPECTED"
    OBSERVED = "OBSERVED"
    COVERAGE_GAP = "COVERAGE_GAP"
    UNPROVEN = "UNPROVEN"
    UNCLASSIFIABLE = "UNCLASSIFIABLE"


FAILURE_TYPES: dict[PromiseKind, str] = {
    PromiseKind.NAVIGATION: "navigation_silent_failure",
    PromiseKind.SUBMIT: "submit_silent_failure",
    PromiseKind.FEEDBACK: "ui_feedback_silent_failure",
    PromiseKind.STATE: "state_change_silent_failure",
    PromiseKind.LOADING: "loading_phantom_failure",
    PromiseKind.PERMISSION: "permission_wall_silent_failure",
}
UNKNOWN_FAILURE_TYPE = "unknown_silent_failure"


@dataclass(frozen=True)
class Promise:
    kind: str = ""
    value: str = ""
    description: str = ""
    state_key: str | None = None

    @property
    def label(self) -> str:
        return self.value or self.description or (self.state_key or "")


@dataclass(frozen=True)
class SourceRef:
    file: str = ""
    line: int | None = None

    @property
    def ref(self) -> str:
        return f"{self.file}:{self.line}" if self.line is not None else self.file


@dataclass(frozen=True)
class Expectation:
    """A declared promise extracted by static analysis. Immutable."""

    id: str
    type: str
    promise: Promise
    source: SourceRef = SourceRef()
    from_path: str | None = None
    selector: str | None = None
    action_type: str | None = None
    proven: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "promise": {
                "kind": self.promise.kind,
                "value": self.promise.value,
                "description": self.promise.description,
                "stateKey": self.promise.state_key,
            },
            "source": {"file": self.source.file, "line": self.source.line},
            "fromPath": self.from_path,
            "selector": self.selector,
            "actionType": self.action_type,
            "proven": self.proven,
        }


# camelCase keys as they appear in trace and expectation documents.
SIGNAL_ALIASES: dict[str, str] = {
    "navigationChanged": "navigation_changed",
    "routeChanged": "route_changed",
    "meaningfulDomChange": "meaningful_dom_change",
    "domChanged": "dom_changed",
    "feedbackSeen": "feedback_seen",
    "ariaLiveUpdated": "aria_live_updated",
    "ariaRoleAlertsDetected": "aria_role_alerts_detected",
    "networkActivity": "network_activity",
    "loadingStarted": "loading_started",
    "loadingResolved": "loading_resolved",
    "stateChanged": "state_changed",
    "silentBlock": "silent_block",
}


@dataclass(frozen=True)
class EvidenceSignals:
    """Boolean evidence derived from one interaction's before/after window."""

    navigation_changed: bool = False
    route_changed: bool = False
    meaningful_dom_change: bool = False
    dom_changed: bool = False
    feedback_seen: bool = False
    aria_live_updated: bool = False
    aria_role_alerts_detected: bool = False
    network_activity: bool = False
    loading_started: bool = False
    loading_resolved: bool = False
    state_changed: bool = False
    silent_block: bool = False

    @classmethod
    def from_dict(cls, payload: dict[str, Any] | None) -> EvidenceSignals:
        """Build from snake_case or camelCase keys. Unknown keys and non-bool values are ignored."""
        known = {field.name for field in fields(cls)}
        values: dict[str, bool] = {}
        for key, value in (payload or {}).items():
            name = SIGNAL_ALIASES.get(key, key)
            if name in known and isinstance(value, bool):
                values[name] = value
        return cls(**values)

    def to_dict(self) -> dict[str, bool]:
        return {alias: getattr(self, name) for alias, name in sorted(SIGNAL_ALIASES.items())}

    @property
    def feedback_present(self) -> bool:
        return self.feedback_seen or self.aria_live_updated or self.aria_role_alerts_detected

    @property
    def dom_outcome(self) -> bool:
        return self.meaningful_dom_change or self.dom_changed

    @property
    def attempt_proof(self) -> bool:
        return (
            self.loading_started
            or self.navigation_changed
            or self.network_activity
            or self.meaningful_dom_change
            or self.dom_changed
            or self.state_changed
            or self.feedback_seen
            or self.aria_live_updated
        )

    @property
    def observable(self) -> bool:
        return (
            self.navigation_changed
            or self.network_activity
            or self.meaningful_dom_change
            or self.feedback_seen
            or self.aria_live_updated
            or self.loading_started
            or self.loading_resolved
            or self.state_changed
            or self.silent_block
        )


@dataclass(frozen=True)
class EvidenceBundle:
    """Proof artifacts captured around an interaction."""

    before_url: str | None = None
    after_url: str | None = None
    before_dom_hash: str | None = None
    after_dom_hash: str | None = None
    dom_diff: bool = False
    network_requests: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "before_url": self.before_url,
            "after_url": self.after_url,
            "before_dom_hash": self.before_dom_hash,
            "after_dom_hash": self.after_dom_hash,
            "dom_diff": self.dom_diff,
            "network_requests": self.network_requests,
        }


@dataclass(frozen=True)
class SilenceRecord:
    kind: str
    reason: str

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "reason": self.reason}


@dataclass(frozen=True)
class Observation:
    """One interaction attempt as seen by the driver.

    ``signals`` is None when no signal map was recorded. ``run_complete`` is
    None when the observation window state is unknown.
    """

    attempted: bool = False
    observed: bool = False
    run_complete: bool | None = None
    reason: str = ""
    signals: EvidenceSignals | None = None
    evidence: EvidenceBundle | None = None
    silence_detected: SilenceRecord | None = None

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Observation:
        run_complete = payload.get("runComplete", payload.get("run_complete"))
        raw_signals = payload.get("evidenceSignals", payload.get("signals"))
        raw_evidence = payload.get("evidence")
        evidence = None
        if isinstance(raw_evidence, dict):
            evidence = EvidenceBundle(
                before_url=raw_evidence.get("before_url"),
                after_url=raw_evidence.get("after_url"),
                before_dom_hash=raw_evidence.get("before_dom_hash"),
                after_dom_hash=raw_evidence.get("after_dom_hash"),
                dom_diff=raw_evidence.get("dom_diff") is True,
                network_requests=int(raw_evidence.get("network_requests") or 0),
            )
        return cls(
            attempted=payload.get("attempted") is True,
            observed=payload.get("observed") is True,
            run_complete=run_complete if isinstance(run_complete, bool) else None,
            reason=str(payload.get("reason") or ""),
            signals=EvidenceSignals.from_dict(raw_signals) if isinstance(raw_signals, dict) else None,
            evidence=evidence,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "observed": self.observed,
            "runComplete": self.run_complete,
            "reason": self.reason,
            "evidenceSignals": self.signals.to_dict() if self.signals is not None else None,
            "evidence": self.evidence.to_dict() if self.evidence is not None else None,
            "silenceDetected": (
                self.silence_detected.to_dict() if self.silence_detected is not None else None
            ),
        }


@dataclass(frozen=True)
class Verdict:
    """Classification result for one expectation/observation pair."""

    type: str | None
    status: VerdictStatus
    confidence: float
    rationale_signals: tuple[str, ...]
    reason: str
    expectation_id: str | None = None
    promise_value: str | None = None

    @property
    def is_silent_failure(self) -> bool:
        return self.status in (VerdictStatus.CONFIRMED, VerdictStatus.SUSPECTED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "status": self.status.value,
            "confidence": self.confidence,
            "rationaleSignals": list(self.rationale_signals),
            "reason": self.reason,
            "expectationId": self.expectation_id,
            "promiseValue": self.promise_value,
        }
