"""Budget domain types."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


class BudgetProfile(str, Enum):
    """Caller-selected scan depth."""

    QUICK = "QUICK"
    STANDARD = "STANDARD"
    THOROUGH = "THOROUGH"
    EXHAUSTIVE = "EXHAUSTIVE"


@dataclass(frozen=True)
class ScanBudget:
    """Immutable limits for one scan run.

    Built once from a profile plus overrides. Per-route budgets are derived
    with ``dataclasses.replace`` and never mutate the run budget.
    """

    max_scan_duration_ms: int
    max_pages: int
    max_interactions_per_page: int
    max_unique_urls: int
    max_flows: int
    max_flow_steps: int
    interaction_timeout_ms: int = 10000
    navigation_timeout_ms: int = 15000
    initial_navigation_timeout_ms: int = 30000
    settle_timeout_ms: int = 30000
    settle_idle_ms: int = 1500
    settle_dom_stable_ms: int = 2000
    settle_poll_ms: int = 100
    navigation_stable_wait_ms: int = 2000
    stabilization_window_ms: int = 3000
    max_retries_per_interaction: int = 1
    adaptive_stabilization: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AllocationPolicy:
    """Multipliers and bounds for per-route interaction budgets."""

    critical_multiplier: float = 2.0
    expectation_multiplier: float = 1.5
    dense_expectation_threshold: int = 3
    non_critical_multiplier: float = 0.6
    large_project_routes: int = 10
    scale_down_routes: int = 50
    min_scale: float = 0.6
    min_budget: int = 5
    max_budget: int = 100


@dataclass(frozen=True)
class RouteAllocation:
    """Interaction budget assigned to a single route."""

    route: str
    budget: int
    is_critical: bool
    reason: str
    expectations_for_route: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "route": self.route,
            "budget": self.budget,
            "is_critical": self.is_critical,
            "reason": self.reason,
            "expectations_for_route": self.expectations_for_route,
        }
