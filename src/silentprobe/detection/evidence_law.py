"""Evidence Law: no CONFIRMED verdict without a strong proof artifact."""

from __future__ import annotations

from dataclasses import replace

from silentprobe.detection.types import EvidenceBundle, Verdict, VerdictStatus

EVIDENCE_LAW_DOWNGRADE = "EVIDENCE_LAW_DOWNGRADE"


def has_strong_proof(evidence: EvidenceBundle | None, *, explicit_signals: bool = False) -> bool:
    """Return True when at least one strong proof artifact exists.

    Strong proof is any of: a before/after URL pair, a before/after DOM
    fingerprint pair, a DOM diff record, captured network requests, or an
    explicitly recorded boolean signal map.
    """
    if explicit_signals:
        return True
    if evidence is None:
        return False
    if evidence.before_url and evidence.after_url:
        return True
    if evidence.before_dom_hash and evidence.after_dom_hash:
        return True
    return evidence.dom_diff or evidence.network_requests > 0


def enforce_evidence_law(
    verdict: Verdict | None,
    evidence: EvidenceBundle | None,
    *,
    explicit_signals: bool = False,
) -> Verdict | None:
    """Downgrade an unbacked CONFIRMED verdict to SUSPECTED. Other verdicts pass through."""
    if verdict is None or verdict.status is not VerdictStatus.CONFIRMED:
        return verdict
    if has_strong_proof(evidence, explicit_signals=explicit_signals):
        return verdict
    return replace(
        verdict,
        status=VerdictStatus.SUSPECTED,
        rationale_signals=(*verdict.rationale_signals, EVIDENCE_LAW_DOWNGRADE),
        reason=f"{verdict.reason} (downgraded: no strong proof artifact)",
    )
