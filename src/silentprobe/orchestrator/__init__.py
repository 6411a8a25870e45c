"""Scan orchestration."""

from silentprobe.orchestrator.scan import (
    CoverageGap,
    DeterminismFactor,
    ScanResult,
    TraceRecord,
    build_result,
    run_scan,
)

__all__ = [
    "CoverageGap",
    "DeterminismFactor",
    "ScanResult",
    "TraceRecord",
    "build_result",
    "run_scan",
]
