"""CLI contract tests: exit codes, artifacts and usage errors."""

from __future__ import annotations

import json
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import pytest
import yaml
from typer.testing import CliRunner

from fakes import FAST_TIMINGS, FakeClock, FakePage, FakeSitePage, button

import silentprobe.cli as cli_module
from silentprobe import __version__
from silentprobe.cli import cli
from silentprobe.errors import DecisionInvariantError, InfrastructureError
from silentprobe.obs.run_artifacts import DETERMINISTIC_GENERATED_AT
from silentprobe.orchestrator.scan import run_scan

if TYPE_CHECKING:
    from pathlib import Path

START = "https://app.test/"

EXPECTATIONS = {
    "expectations": [
        {
            "id": "fb-1",
            "type": "feedback",
            "promise": {"kind": "feedback", "value": "Saved"},
            "fromPath": "/",
            "selector": "#save",
        }
    ]
}


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch) -> Path:
    """Expectations, a fast-settling config and a fake browser."""
    (tmp_path / "expectations.json").write_text(json.dumps(EXPECTATIONS), encoding="utf-8")
    (tmp_path / "scan.yaml").write_text(
        yaml.safe_dump({"profile": "STANDARD", "budget": dict(FAST_TIMINGS)}), encoding="utf-8"
    )
    monkeypatch.delenv("SILENTPROBE_PROFILE", raising=False)
    monkeypatch.delenv("SILENTPROBE_RUN_ROOT", raising=False)

    @contextmanager
    def fake_browser(headless: bool = True):
        site = {START: FakeSitePage(interactions=[button("#save", "Save")])}
        yield FakePage(site, FakeClock())

    def fake_clock_scan(page: FakePage, url: str, budget: Any, expectations: Any, **kwargs: Any):
        return run_scan(page, url, budget, expectations, clock=page.clock, **kwargs)

    monkeypatch.setattr(cli_module, "open_browser", fake_browser)
    monkeypatch.setattr(cli_module, "run_scan", fake_clock_scan)
    return tmp_path


def _scan_args(workspace: Path, *extra: str) -> list[str]:
    return [
        "scan",
        START,
        "--expectations",
        str(workspace / "expectations.json"),
        "--config",
        str(workspace / "scan.yaml"),
        "--run-root",
        str(workspace / "runs"),
        "--timestamp-mode",
        "deterministic",
        *extra,
    ]


def test_version_flag() -> None:
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_scan_with_finding_exits_do_not_launch(workspace: Path) -> None:
    result = CliRunner().invoke(cli, _scan_args(workspace))

    assert result.exit_code == 2, result.output
    assert "Decision: DO_NOT_LAUNCH" in result.output

    run_dir = workspace / "runs" / "SCAN_DETERMINISTIC"
    summary = json.loads((run_dir / "summary.json").read_text(encoding="utf-8"))
    decision = json.loads((run_dir / "decision.json").read_text(encoding="utf-8"))
    assert summary["truthState"] == "FINDINGS"
    assert summary["generatedAt"] == DETERMINISTIC_GENERATED_AT
    assert decision["exitCode"] == 2
    assert (run_dir / "traces.jsonl").exists()
    assert (run_dir / "ARTIFACT_INDEX.json").exists()


def test_scan_truth_exit_mode(workspace: Path) -> None:
    result = CliRunner().invoke(cli, _scan_args(workspace, "--exit-mode", "truth"))
    assert result.exit_code == 20, result.output


def test_scan_infrastructure_failure_exits_error(workspace: Path, monkeypatch) -> None:
    @contextmanager
    def broken_browser(headless: bool = True):
        raise InfrastructureError("browser launch failed")
        yield  # pragma: no cover

    monkeypatch.setattr(cli_module, "open_browser", broken_browser)

    result = CliRunner().invoke(cli, _scan_args(workspace))

    assert result.exit_code == 3, result.output
    summary_path = workspace / "runs" / "SCAN_DETERMINISTIC" / "summary.json"
    summary = json.loads(summary_path.read_text(encoding="utf-8"))
    assert summary["truthState"] == "INCOMPLETE"
    assert summary["infraFailure"] is True


def test_scan_unresolved_decision_exits_invariant_violation(workspace: Path, monkeypatch) -> None:
    def unresolved_scan(*args: Any, **kwargs: Any):
        raise DecisionInvariantError("No verdict after 0 suggestion(s)")

    monkeypatch.setattr(cli_module, "run_scan", unresolved_scan)

    result = CliRunner().invoke(cli, _scan_args(workspace))

    assert result.exit_code == 50, result.output
    assert "Decision invariant violated" in result.output
    assert not (workspace / "runs" / "SCAN_DETERMINISTIC").exists()


def test_scan_rejects_non_http_url(workspace: Path) -> None:
    result = CliRunner().invoke(cli, ["scan", "file:///etc/passwd"])
    assert result.exit_code == 64


def test_scan_rejects_unknown_config_key(workspace: Path) -> None:
    (workspace / "scan.yaml").write_text("profile: QUICK\nturbo: true\n", encoding="utf-8")
    result = CliRunner().invoke(cli, _scan_args(workspace))
    assert result.exit_code == 64
    assert "CONFIG_UNKNOWN_KEY" in result.output


def test_classify_recorded_traces(tmp_path: Path) -> None:
    expectations = tmp_path / "expectations.json"
    expectations.write_text(json.dumps(EXPECTATIONS), encoding="utf-8")
    traces = tmp_path / "traces.jsonl"
    record = {
        "sequence": 0,
        "expectationIds": ["fb-1"],
        "observation": {"attempted": True, "runComplete": True, "evidenceSignals": {}},
    }
    traces.write_text(json.dumps(record) + "\n", encoding="utf-8")
    out = tmp_path / "verdicts.json"

    result = CliRunner().invoke(
        cli, ["classify", str(traces), "--expectations", str(expectations), "--out", str(out)]
    )

    assert result.exit_code == 20, result.output
    rows = json.loads(out.read_text(encoding="utf-8"))
    assert rows[0]["expectationId"] == "fb-1"
    assert rows[0]["verdict"]["status"] == "CONFIRMED"


def test_classify_missing_expectations_is_usage_error(tmp_path: Path) -> None:
    traces = tmp_path / "traces.jsonl"
    traces.write_text("", encoding="utf-8")
    result = CliRunner().invoke(
        cli, ["classify", str(traces), "--expectations", str(tmp_path / "absent.json")]
    )
    assert result.exit_code == 64


@pytest.mark.parametrize(
    ("payload", "expected"),
    [
        ({"expectationsTotal": 0, "attempted": 0}, 0),
        ({"expectationsTotal": 4, "attempted": 4, "silentFailures": 1}, 20),
        ({"expectationsTotal": 50, "attempted": 10, "isIncomplete": True}, 30),
    ],
)
def test_truth_command_exit_codes(tmp_path: Path, payload: dict, expected: int) -> None:
    summary = tmp_path / "summary.json"
    summary.write_text(json.dumps(payload), encoding="utf-8")

    result = CliRunner().invoke(cli, ["truth", str(summary)])

    assert result.exit_code == expected, result.output
    assert result.output.startswith("Result: ")


def test_truth_command_rejects_bad_json(tmp_path: Path) -> None:
    summary = tmp_path / "summary.json"
    summary.write_text("[1, 2]", encoding="utf-8")
    assert CliRunner().invoke(cli, ["truth", str(summary)]).exit_code == 64


def test_budget_command_lists_routes(tmp_path: Path) -> None:
    expectations = tmp_path / "expectations.json"
    expectations.write_text(json.dumps(EXPECTATIONS), encoding="utf-8")

    result = CliRunner().invoke(cli, ["budget", "--expectations", str(expectations), "--profile", "quick"])

    assert result.exit_code == 0, result.output
    assert "Route budgets (QUICK)" in result.output
    assert "critical_route" in result.output
    assert "20" in result.output


def test_config_init_refuses_overwrite(tmp_path: Path) -> None:
    path = tmp_path / ".silentprobe" / "scan.yaml"
    runner = CliRunner()

    first = runner.invoke(cli, ["config", "init", "--path", str(path)])
    assert first.exit_code == 0, first.output
    assert path.exists()

    second = runner.invoke(cli, ["config", "init", "--path", str(path)])
    assert second.exit_code == 1
    assert "--force" in second.output

    forced = runner.invoke(cli, ["config", "init", "--path", str(path), "--force"])
    assert forced.exit_code == 0
