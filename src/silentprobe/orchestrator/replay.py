"""Post-hoc re-classification of recorded traces."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from silentprobe.detection.classifier import classify_many
from silentprobe.detection.expectations import ExpectationSet
from silentprobe.detection.silence import summarize_critical_silences
from silentprobe.detection.types import Expectation, Observation, Verdict, VerdictStatus
from silentprobe.orchestrator.matching import observation_for, silence_kind_for
from silentprobe.truth.types import RunSummary

GAP_NOT_RECORDED = "not_recorded"


@dataclass(frozen=True)
class ReplayRow:
    sequence: int
    expectation_id: str
    verdict: Verdict | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sequence": self.sequence,
            "expectationId": self.expectation_id,
            "verdict": self.verdict.to_dict() if self.verdict is not None else None,
        }


@dataclass(frozen=True)
class ReplayResult:
    rows: tuple[ReplayRow, ...]
    summary: RunSummary


def reclassify_traces(
    records: Iterable[dict[str, Any]],
    expectations: ExpectationSet,
    *,
    workers: int | None = None,
) -> ReplayResult:
    """Classify every (expectation, observation) pair found in trace records.

    Each pair is judged exactly as the live scan judged it: ``observed`` is
    derived from the recorded signals and after-URL. The first attempted
    verdict per expectation counts toward the summary.
    """
    by_id = expectations.by_id()
    pairs: list[tuple[Expectation, Observation]] = []
    sequences: list[int] = []
    for record in records:
        observation = Observation.from_dict(record.get("observation") or {})
        after_url = (record.get("after") or {}).get("url")
        for expectation_id in record.get("expectationIds") or []:
            expectation = by_id.get(expectation_id)
            if expectation is None:
                continue
            pairs.append((expectation, observation_for(expectation, observation, after_url)))
            sequences.append(int(record.get("sequence", 0)))

    verdicts = classify_many(pairs, workers=workers)
    rows = tuple(
        ReplayRow(sequence, expectation.id, verdict)
        for sequence, (expectation, _), verdict in zip(sequences, pairs, verdicts)
    )

    final: dict[str, Verdict | None] = {}
    silences: list[str] = []
    for (expectation, _), verdict in zip(pairs, verdicts):
        if verdict is not None and verdict.status is VerdictStatus.COVERAGE_GAP:
            continue
        if verdict is not None and verdict.status in (
            VerdictStatus.SUSPECTED,
            VerdictStatus.UNPROVEN,
        ):
            silences.append(silence_kind_for(expectation))
        final.setdefault(expectation.id, verdict)

    total = len(expectations.expectations)
    attempted = len(final)
    settled = [verdict for verdict in final.values() if verdict is not None]
    summary = RunSummary(
        expectations_total=total,
        attempted=attempted,
        observed=sum(1 for verdict in settled if verdict.status is VerdictStatus.OBSERVED),
        silent_failures=sum(1 for verdict in settled if verdict.status is VerdictStatus.CONFIRMED),
        coverage_ratio=round(attempted / total, 4) if total else None,
        critical_silence_kinds=tuple(summarize_critical_silences(silences)),
        unattempted_breakdown={GAP_NOT_RECORDED: total - attempted} if total > attempted else {},
    )
    return ReplayResult(rows=rows, summary=summary)
