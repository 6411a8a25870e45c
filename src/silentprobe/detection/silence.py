"""Silence records for observations that block a confident verdict."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace

from silentprobe.detection.types import Observation, SilenceRecord


class SilenceKind:
    """Known silence kinds attached to ambiguous observations."""

    INTENT_BLOCKED = "intent_blocked"
    NAVIGATION_AMBIGUOUS = "navigation_ambiguous"
    SUBMISSION_AMBIGUOUS = "submission_ambiguous"
    INTERACTION_TIMEOUT = "interaction_timeout"
    SAFETY_SKIP = "safety_skip"
    NO_EXPECTATION = "no_expectation"


CRITICAL_SILENCE_KINDS: frozenset[str] = frozenset(
    {
        SilenceKind.INTENT_BLOCKED,
        SilenceKind.NAVIGATION_AMBIGUOUS,
        SilenceKind.SUBMISSION_AMBIGUOUS,
    }
)


def attach_silence(observation: Observation, kind: str, reason: str) -> Observation:
    """Return a copy of ``observation`` carrying a silence record."""
    return replace(observation, silence_detected=SilenceRecord(kind=kind, reason=reason))


def is_critical(kind: str) -> bool:
    return kind in CRITICAL_SILENCE_KINDS


def summarize_critical_silences(silences: Iterable[SilenceRecord | str]) -> list[str]:
    """Return the distinct critical silence kinds, sorted."""
    kinds = {item.kind if isinstance(item, SilenceRecord) else item for item in silences}
    return sorted(kind for kind in kinds if is_critical(kind))
