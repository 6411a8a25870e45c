from __future__ import annotations

from silentprobe.detection.silence import (
    SilenceKind,
    attach_silence,
    is_critical,
    summarize_critical_silences,
)
from silentprobe.detection.types import Observation, SilenceRecord


def test_attach_silence_returns_new_observation() -> None:
    original = Observation(attempted=True)
    tagged = attach_silence(original, SilenceKind.NAVIGATION_AMBIGUOUS, "no route change")

    assert original.silence_detected is None
    assert tagged.silence_detected == SilenceRecord("navigation_ambiguous", "no route change")
    assert tagged.to_dict()["silenceDetected"] == {
        "kind": "navigation_ambiguous",
        "reason": "no route change",
    }


def test_only_ambiguity_and_blocked_intent_are_critical() -> None:
    assert is_critical(SilenceKind.INTENT_BLOCKED)
    assert is_critical(SilenceKind.SUBMISSION_AMBIGUOUS)
    assert not is_critical(SilenceKind.SAFETY_SKIP)
    assert not is_critical(SilenceKind.INTERACTION_TIMEOUT)


def test_summarize_critical_silences_dedupes_and_sorts() -> None:
    silences = [
        SilenceRecord(SilenceKind.SUBMISSION_AMBIGUOUS, "a"),
        SilenceRecord(SilenceKind.SAFETY_SKIP, "b"),
        SilenceKind.INTENT_BLOCKED,
        SilenceRecord(SilenceKind.SUBMISSION_AMBIGUOUS, "c"),
    ]
    assert summarize_critical_silences(silences) == ["intent_blocked", "submission_ambiguous"]
