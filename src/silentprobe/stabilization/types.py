"""Stabilization result types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class IdleOutcome:
    """Result of one idle-detection wait (network or DOM)."""

    quiet: bool
    extensions: int
    timed_out: bool


@dataclass(frozen=True)
class SettleResult:
    """Outcome of a settle call. ``complete`` feeds an observation's runComplete."""

    load_state_reached: bool
    network_idle: bool
    dom_stable: bool
    network_extensions: int
    dom_extensions: int
    timed_out: bool
    elapsed_ms: int

    @property
    def complete(self) -> bool:
        return (
            self.load_state_reached
            and self.network_idle
            and self.dom_stable
            and not self.timed_out
        )

    def to_dict(self) -> dict[str, Any]:
        # elapsed_ms is timing-dependent and stays out of deterministic artifacts.
        return {
            "complete": self.complete,
            "load_state_reached": self.load_state_reached,
            "network_idle": self.network_idle,
            "dom_stable": self.dom_stable,
            "network_extensions": self.network_extensions,
            "dom_extensions": self.dom_extensions,
            "timed_out": self.timed_out,
        }
