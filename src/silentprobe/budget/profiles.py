"""Named budget profiles and budget construction."""

from __future__ import annotations

from dataclasses import fields
from typing import Any

from silentprobe.budget.types import BudgetProfile, ScanBudget
from silentprobe.errors import (
    CONFIG_REASON_INVALID_VALUE,
    CONFIG_REASON_UNKNOWN_KEY,
    CONFIG_REASON_UNKNOWN_PROFILE,
    ConfigError,
)

# Keep this literal sorted by profile depth.
PROFILE_LIMITS: dict[BudgetProfile, dict[str, int]] = {
    BudgetProfile.QUICK: {
        "max_scan_duration_ms": 20000,
        "max_pages": 2,
        "max_interactions_per_page": 10,
        "max_unique_urls": 20,
        "max_flows": 1,
        "max_flow_steps": 5,
    },
    BudgetProfile.STANDARD: {
        "max_scan_duration_ms": 60000,
        "max_pages": 10,
        "max_interactions_per_page": 30,
        "max_unique_urls": 50,
        "max_flows": 3,
        "max_flow_steps": 10,
    },
    BudgetProfile.THOROUGH: {
        "max_scan_duration_ms": 300000,
        "max_pages": 50,
        "max_interactions_per_page": 60,
        "max_unique_urls": 200,
        "max_flows": 10,
        "max_flow_steps": 20,
    },
    BudgetProfile.EXHAUSTIVE: {
        "max_scan_duration_ms": 600000,
        "max_pages": 100,
        "max_interactions_per_page": 100,
        "max_unique_urls": 500,
        "max_flows": 20,
        "max_flow_steps": 40,
    },
}

BUDGET_FIELDS: frozenset[str] = frozenset(field.name for field in fields(ScanBudget))


def parse_profile(value: str | BudgetProfile) -> BudgetProfile:
    """Normalize a profile name (case-insensitive)."""
    if isinstance(value, BudgetProfile):
        return value
    normalized = str(value).strip().upper()
    try:
        return BudgetProfile(normalized)
    except ValueError as exc:
        allowed = ", ".join(profile.value for profile in BudgetProfile)
        raise ConfigError(
            f"Unknown budget profile: {value}. Expected one of: {allowed}.",
            CONFIG_REASON_UNKNOWN_PROFILE,
        ) from exc


def _coerce_value(key: str, value: Any) -> int | bool:
    if key == "adaptive_stabilization":
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in {"1", "true", "yes", "on"}:
            return True
        if isinstance(value, str) and value.strip().lower() in {"0", "false", "no", "off"}:
            return False
        raise ConfigError(f"Budget field {key} must be a boolean, got {value!r}")

    if isinstance(value, bool):
        raise ConfigError(f"Budget field {key} must be an integer, got {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise ConfigError(f"Budget field {key} must be a whole number, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(
            f"Budget field {key} must be an integer, got {value!r}",
            CONFIG_REASON_INVALID_VALUE,
        ) from exc
    if number < 0:
        raise ConfigError(f"Budget field {key} must be >= 0, got {number}")
    return number


def create_scan_budget(
    profile: str | BudgetProfile = BudgetProfile.STANDARD,
    overrides: dict[str, Any] | None = None,
) -> ScanBudget:
    """Build a scan budget from a profile, keeping profile values for anything not overridden."""
    resolved = parse_profile(profile)
    values: dict[str, Any] = dict(PROFILE_LIMITS[resolved])

    for key in sorted((overrides or {}).keys()):
        if key not in BUDGET_FIELDS:
            raise ConfigError(f"Unknown budget field: {key}", CONFIG_REASON_UNKNOWN_KEY)
        value = overrides[key]  # type: ignore[index]
        if value is None:
            continue
        values[key] = _coerce_value(key, value)

    return ScanBudget(**values)
