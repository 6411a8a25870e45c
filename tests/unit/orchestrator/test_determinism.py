from __future__ import annotations

import json
from pathlib import Path

from fakes import Effect, FakeClock, FakePage, FakeSitePage, button, fast_budget, form, link

from silentprobe.artifacts.canonical_json import read_jsonl
from silentprobe.artifacts.writer import ARTIFACT_INDEX_SCHEMA_VERSION, write_scan_artifacts
from silentprobe.detection.expectations import parse_expectations
from silentprobe.obs.run_artifacts import (
    ARTIFACT_INDEX_FILENAME,
    DECISION_FILENAME,
    DETERMINISTIC_GENERATED_AT,
    SUMMARY_FILENAME,
    TRACES_FILENAME,
)
from silentprobe.orchestrator.replay import GAP_NOT_RECORDED, reclassify_traces
from silentprobe.orchestrator.scan import run_scan

START = "https://app.test/"

EXPECTATIONS = {
    "expectations": [
        {
            "id": "fb-save",
            "type": "feedback",
            "promise": {"kind": "feedback", "value": "Saved"},
            "fromPath": "/",
            "selector": "#save",
        },
        {
            "id": "nav-about",
            "type": "navigation",
            "promise": {"kind": "navigation", "value": "/about"},
            "fromPath": "/",
        },
        {
            "id": "submit-contact",
            "type": "submit",
            "promise": {"kind": "submit", "value": "/api/contact"},
            "fromPath": "/about",
            "selector": "form#contact",
        },
        {
            "id": "never-seen",
            "type": "feedback",
            "promise": {"value": "Hidden"},
            "fromPath": "/",
            "selector": "#ghost",
        },
    ]
}


def _site() -> dict[str, FakeSitePage]:
    return {
        START: FakeSitePage(
            interactions=[
                link("a#about", "/about"),
                button("#save", "Save"),
                button("#remove", "Remove all"),
            ],
            effects={"a#about": Effect(navigate_to="https://app.test/about")},
        ),
        "https://app.test/about": FakeSitePage(
            dom="<main>about</main>",
            interactions=[form("form#contact", ["#email"], "#send")],
            effects={"#send": Effect(requests=2, dom="<main>thanks</main>", feedback=1)},
        ),
    }


def _run(run_dir: Path) -> dict:
    page = FakePage(_site(), FakeClock())
    result = run_scan(
        page, START, fast_budget(), parse_expectations(EXPECTATIONS), clock=page.clock
    )
    index = write_scan_artifacts(run_dir, result, generated_at=DETERMINISTIC_GENERATED_AT)
    return {"result": result, "index": index}


def test_identical_runs_produce_identical_artifacts(tmp_path: Path) -> None:
    first = _run(tmp_path / "one")
    second = _run(tmp_path / "two")

    for name in (TRACES_FILENAME, SUMMARY_FILENAME, DECISION_FILENAME, ARTIFACT_INDEX_FILENAME):
        assert (tmp_path / "one" / name).read_bytes() == (tmp_path / "two" / name).read_bytes()
    assert first["index"] == second["index"]
    assert first["index"]["schema_version"] == ARTIFACT_INDEX_SCHEMA_VERSION


def test_summary_reports_mixed_run(tmp_path: Path) -> None:
    outcome = _run(tmp_path / "run")
    summary = json.loads((tmp_path / "run" / SUMMARY_FILENAME).read_text(encoding="utf-8"))

    statuses = {verdict["expectationId"]: verdict["status"] for verdict in summary["verdicts"]}
    assert statuses == {
        "fb-save": "CONFIRMED",
        "nav-about": "OBSERVED",
        "submit-contact": "OBSERVED",
        "never-seen": "COVERAGE_GAP",
    }
    assert summary["truthState"] == "FINDINGS"
    assert summary["finalVerdict"] == "DO_NOT_LAUNCH"
    assert summary["unattemptedBreakdown"] == {"not_discovered": 1}
    assert summary["coverageRatio"] == 0.75
    assert summary["generatedAt"] == DETERMINISTIC_GENERATED_AT
    assert [gap["reason"] for gap in summary["coverageGaps"]] == ["safety_policy"]
    assert outcome["result"].decision.exit_code == 2


def test_replay_reclassifies_recorded_traces(tmp_path: Path) -> None:
    _run(tmp_path / "run")
    records = read_jsonl(tmp_path / "run" / TRACES_FILENAME)

    replay = reclassify_traces(records, parse_expectations(EXPECTATIONS), workers=2)

    by_id = {row.expectation_id: row.verdict for row in replay.rows}
    assert by_id["fb-save"] is not None
    assert by_id["fb-save"].status.value == "CONFIRMED"
    assert replay.summary.silent_failures == 1
    assert replay.summary.attempted == 3
    assert replay.summary.unattempted_breakdown == {GAP_NOT_RECORDED: 1}
