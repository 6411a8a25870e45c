"""Bounded settle waits for network and DOM quiescence."""

from silentprobe.stabilization.settle import (
    MAX_ADAPTIVE_EXTENSIONS,
    settle,
    wait_for_navigation_stable,
)
from silentprobe.stabilization.types import IdleOutcome, SettleResult

__all__ = [
    "MAX_ADAPTIVE_EXTENSIONS",
    "IdleOutcome",
    "SettleResult",
    "settle",
    "wait_for_navigation_stable",
]
