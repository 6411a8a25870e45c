"""Per-route allocation: criticality, density, project size and ordering."""

from __future__ import annotations

from silentprobe.budget.engine import (
    REASON_CRITICAL,
    REASON_CRITICAL_DENSE,
    REASON_NON_CRITICAL_LARGE,
    REASON_SCALED_SUFFIX,
    REASON_STANDARD,
    allocate,
    allocate_routes,
    plan_run_budget,
    route_budget,
)
from silentprobe.budget.profiles import create_scan_budget
from silentprobe.budget.types import AllocationPolicy


def test_critical_route_doubles_base() -> None:
    allocation = allocate("/checkout", 2, 5, base=20)
    assert allocation.budget == 40
    assert allocation.is_critical is True
    assert allocation.reason == REASON_CRITICAL


def test_dense_critical_route_gets_expectation_boost() -> None:
    allocation = allocate("/settings", 4, 5, base=20)
    assert allocation.budget == 60
    assert allocation.reason == REASON_CRITICAL_DENSE


def test_small_project_non_critical_route_keeps_base() -> None:
    allocation = allocate("/about", 0, 5, base=20)
    assert allocation.budget == 20
    assert allocation.is_critical is False
    assert allocation.reason == REASON_STANDARD


def test_large_project_non_critical_route_is_reduced() -> None:
    allocation = allocate("/about", 0, 11, base=20)
    assert allocation.budget == 12
    assert allocation.reason == REASON_NON_CRITICAL_LARGE


def test_very_large_project_scales_down() -> None:
    allocation = allocate("/a", 1, 60, base=30)
    # 30 * 2.0 * (50 / 60) = 50
    assert allocation.budget == 50
    assert allocation.reason == REASON_CRITICAL + REASON_SCALED_SUFFIX


def test_scale_never_drops_below_min_scale() -> None:
    allocation = allocate("/a", 1, 500, base=30)
    # 30 * 2.0 * 0.6 = 36
    assert allocation.budget == 36


def test_budget_is_clamped_to_policy_bounds() -> None:
    policy = AllocationPolicy(min_budget=5, max_budget=100)
    assert allocate("/tiny", 0, 20, base=2, policy=policy).budget == 5
    assert allocate("/huge", 10, 5, base=80, policy=policy).budget == 100


def test_allocations_are_sorted_and_independent_of_input_order() -> None:
    counts = {"/b": 1, "/a": 0, "/c": 5}
    first = allocate_routes(["/c", "/a", "/b", "/d"], counts, base=10)
    second = allocate_routes(["/d", "/b", "/a", "/c"], dict(reversed(list(counts.items()))), base=10)
    assert [item.route for item in first] == ["/a", "/b", "/c", "/d"]
    assert [item.to_dict() for item in first] == [item.to_dict() for item in second]


def test_routes_only_known_through_counts_are_allocated() -> None:
    allocations = allocate_routes([], {"/only-counted": 2}, base=10)
    assert [item.route for item in allocations] == ["/only-counted"]
    assert allocations[0].is_critical is True


def test_route_budget_derives_a_new_value() -> None:
    base = create_scan_budget("STANDARD")
    allocation = allocate("/a", 1, 1, base=base.max_interactions_per_page)
    derived = route_budget(base, allocation)
    assert derived.max_interactions_per_page == 60
    assert base.max_interactions_per_page == 30


def test_plan_run_budget_covers_declared_routes_up_to_unique_cap() -> None:
    budget = create_scan_budget("QUICK")
    assert plan_run_budget(budget, 1) is budget
    assert plan_run_budget(budget, 8).max_pages == 8
    assert plan_run_budget(budget, 500).max_pages == budget.max_unique_urls
