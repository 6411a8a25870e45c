"""Scan budgets, profiles and per-route allocation."""

from silentprobe.budget.engine import (
    DEFAULT_ALLOCATION_POLICY,
    allocate,
    allocate_routes,
    plan_run_budget,
    route_budget,
)
from silentprobe.budget.profiles import PROFILE_LIMITS, create_scan_budget, parse_profile
from silentprobe.budget.types import AllocationPolicy, BudgetProfile, RouteAllocation, ScanBudget

__all__ = [
    "DEFAULT_ALLOCATION_POLICY",
    "PROFILE_LIMITS",
    "AllocationPolicy",
    "BudgetProfile",
    "RouteAllocation",
    "ScanBudget",
    "allocate",
    "allocate_routes",
    "create_scan_budget",
    "parse_profile",
    "plan_run_budget",
    "route_budget",
]
