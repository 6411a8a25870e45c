"""Run directory resolution and run-id helpers for scan artifacts."""

from __future__ import annotations

import os
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

CanonicalTimestampMode = Literal["deterministic", "now"]

SILENTPROBE_RUN_ROOT_ENV = "SILENTPROBE_RUN_ROOT"
RUN_ID_PREFIX = "SCAN"
DETERMINISTIC_GENERATED_AT = "1970-01-01T00:00:00Z"

TRACES_FILENAME = "traces.jsonl"
SUMMARY_FILENAME = "summary.json"
DECISION_FILENAME = "decision.json"
ARTIFACT_INDEX_FILENAME = "ARTIFACT_INDEX.json"


def normalize_timestamp_mode(timestamp_mode: str) -> CanonicalTimestampMode:
    """Normalize CLI timestamp modes to canonical run-id modes."""
    normalized = timestamp_mode.strip().lower()
    if normalized in {"deterministic", "now"}:
        return normalized  # type: ignore[return-value]
    if normalized == "wallclock":
        return "now"
    raise ValueError(
        f"Unsupported timestamp mode: {timestamp_mode}. "
        "Expected one of: deterministic, now, wallclock."
    )


def get_default_run_root(
    cli_run_root: Path | None = None,
    *,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> Path:
    """Resolve run-root path: CLI flag, then environment, then ./out/runs."""
    if cli_run_root is not None:
        return cli_run_root.expanduser().resolve()

    environ = os.environ if env is None else env
    env_root = environ.get(SILENTPROBE_RUN_ROOT_ENV, "").strip()
    if env_root:
        return Path(env_root).expanduser().resolve()

    effective_cwd = (cwd or Path.cwd()).resolve()
    return (effective_cwd / "out" / "runs").resolve()


def make_run_id(prefix: str, timestamp_mode: CanonicalTimestampMode) -> str:
    """Create canonical run IDs."""
    prefix_clean = prefix.strip() or RUN_ID_PREFIX

    if timestamp_mode == "deterministic":
        return f"{prefix_clean}_DETERMINISTIC"
    if timestamp_mode == "now":
        return f"{prefix_clean}_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
    raise ValueError(f"Unsupported canonical timestamp mode: {timestamp_mode}")


def generated_at(timestamp_mode: str) -> str:
    """Timestamp for ``generatedAt``; fixed in deterministic mode."""
    if normalize_timestamp_mode(timestamp_mode) == "deterministic":
        return DETERMINISTIC_GENERATED_AT
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def resolve_run_dir(
    *,
    run_root: Path,
    timestamp_mode: str,
    prefix: str = RUN_ID_PREFIX,
) -> Path:
    """Concrete run directory under an already-resolved run root."""
    canonical_mode = normalize_timestamp_mode(timestamp_mode)
    return (run_root / make_run_id(prefix=prefix, timestamp_mode=canonical_mode)).resolve()
