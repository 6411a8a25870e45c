"""Deterministic artifact writer for scan runs."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from silentprobe.artifacts.canonical_json import sha256_file, write_json, write_jsonl
from silentprobe.obs.run_artifacts import (
    ARTIFACT_INDEX_FILENAME,
    DECISION_FILENAME,
    SUMMARY_FILENAME,
    TRACES_FILENAME,
)
from silentprobe.schemas.validator import validate_data

if TYPE_CHECKING:
    from pathlib import Path

    from silentprobe.orchestrator.scan import ScanResult

ARTIFACT_INDEX_SCHEMA_VERSION = "silentprobe.scan.v1"


def write_scan_artifacts(
    run_dir: Path,
    result: ScanResult,
    *,
    generated_at: str,
) -> dict[str, Any]:
    """Write traces, summary and decision, then the artifact index.

    Summary and decision are validated against the packaged schemas before
    anything is written. Raises SchemaViolation on a malformed payload.
    """
    summary = result.summary_dict(generated_at)
    decision = result.decision.to_dict()
    traces = [record.to_dict() for record in result.records]

    validate_data(summary, "run_summary", strict=True)
    validate_data(decision, "decision", strict=True)
    for trace in traces:
        validate_data(trace, "trace", strict=True)

    run_dir.mkdir(parents=True, exist_ok=True)
    traces_path = run_dir / TRACES_FILENAME
    write_jsonl(traces_path, traces)
    summary_path = run_dir / SUMMARY_FILENAME
    write_json(summary_path, summary)
    decision_path = run_dir / DECISION_FILENAME
    write_json(decision_path, decision)

    artifacts: list[tuple[str, Path]] = [
        (TRACES_FILENAME, traces_path),
        (SUMMARY_FILENAME, summary_path),
        (DECISION_FILENAME, decision_path),
    ]
    index_payload: dict[str, Any] = {
        "schema_version": ARTIFACT_INDEX_SCHEMA_VERSION,
        "artifacts": [
            {
                "name": artifact_name,
                "path": artifact_name,
                "sha256": sha256_file(artifact_path),
            }
            for artifact_name, artifact_path in artifacts
        ],
    }
    write_json(run_dir / ARTIFACT_INDEX_FILENAME, index_payload)
    return index_payload
