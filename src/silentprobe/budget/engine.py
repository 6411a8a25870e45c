"""Deterministic per-route interaction budget allocation."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import replace

from silentprobe.budget.types import AllocationPolicy, RouteAllocation, ScanBudget

DEFAULT_ALLOCATION_POLICY = AllocationPolicy()

REASON_CRITICAL = "critical_route"
REASON_CRITICAL_DENSE = "critical_route_dense"
REASON_NON_CRITICAL_LARGE = "non_critical_large_project"
REASON_STANDARD = "standard"
REASON_SCALED_SUFFIX = "+scaled"


def _clamp(value: float, policy: AllocationPolicy) -> int:
    # Round first so 30 * (50 / 60) lands on 25, not 24.
    floored = math.floor(round(value, 6))
    return max(policy.min_budget, min(policy.max_budget, floored))


def allocate(
    route: str,
    expectations_for_route: int,
    total_routes: int,
    *,
    base: int,
    policy: AllocationPolicy = DEFAULT_ALLOCATION_POLICY,
) -> RouteAllocation:
    """Compute the interaction budget for one route.

    Routes with at least one declared expectation are critical and get
    ``base * critical_multiplier`` (boosted again when dense). Non-critical
    routes in large projects are reduced. Very large projects scale every
    route down. The result is always clamped to ``[min_budget, max_budget]``.
    """
    count = max(0, int(expectations_for_route))
    is_critical = count >= 1

    if is_critical:
        value = base * policy.critical_multiplier
        reason = REASON_CRITICAL
        if count > policy.dense_expectation_threshold:
            value *= policy.expectation_multiplier
            reason = REASON_CRITICAL_DENSE
    elif total_routes > policy.large_project_routes:
        value = base * policy.non_critical_multiplier
        reason = REASON_NON_CRITICAL_LARGE
    else:
        value = float(base)
        reason = REASON_STANDARD

    if total_routes > policy.scale_down_routes:
        value *= max(policy.min_scale, policy.scale_down_routes / total_routes)
        reason += REASON_SCALED_SUFFIX

    return RouteAllocation(
        route=route,
        budget=_clamp(value, policy),
        is_critical=is_critical,
        reason=reason,
        expectations_for_route=count,
    )


def allocate_routes(
    routes: Iterable[str],
    expectation_counts: Mapping[str, int],
    *,
    base: int,
    policy: AllocationPolicy = DEFAULT_ALLOCATION_POLICY,
) -> list[RouteAllocation]:
    """Allocate budgets for every distinct route, sorted by route URL ascending."""
    unique_routes = sorted(set(routes) | set(expectation_counts.keys()))
    total_routes = len(unique_routes)
    return [
        allocate(
            route,
            expectation_counts.get(route, 0),
            total_routes,
            base=base,
            policy=policy,
        )
        for route in unique_routes
    ]


def route_budget(scan_budget: ScanBudget, allocation: RouteAllocation) -> ScanBudget:
    """Derive a new budget carrying the route's interaction limit."""
    return replace(scan_budget, max_interactions_per_page=allocation.budget)


def plan_run_budget(scan_budget: ScanBudget, total_routes: int) -> ScanBudget:
    """Raise ``max_pages`` to cover declared routes, capped at ``max_unique_urls``."""
    wanted = min(max(scan_budget.max_pages, total_routes), scan_budget.max_unique_urls)
    if wanted == scan_budget.max_pages:
        return scan_budget
    return replace(scan_budget, max_pages=wanted)
