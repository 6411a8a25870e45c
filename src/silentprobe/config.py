"""Scan configuration: profile, YAML file, environment and CLI overrides.

Precedence, lowest to highest: profile defaults, ``.silentprobe/scan.yaml``,
``SILENTPROBE_*`` environment variables, explicit CLI overrides. This module
and ``obs.run_artifacts`` are the only places that read the environment.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from silentprobe.budget.profiles import BUDGET_FIELDS, create_scan_budget, parse_profile
from silentprobe.budget.types import BudgetProfile, ScanBudget
from silentprobe.errors import (
    CONFIG_REASON_INVALID_VALUE,
    CONFIG_REASON_PARSE_ERROR,
    CONFIG_REASON_UNKNOWN_KEY,
    ConfigError,
)
from silentprobe.obs.run_artifacts import get_default_run_root, normalize_timestamp_mode

DEFAULT_CONFIG_PATH = Path(".silentprobe") / "scan.yaml"

ENV_PROFILE = "SILENTPROBE_PROFILE"
# Environment variable -> budget field.
ENV_BUDGET_FIELDS: dict[str, str] = {
    "SILENTPROBE_ADAPTIVE_STABILIZATION": "adaptive_stabilization",
    "SILENTPROBE_INTERACTION_TIMEOUT_MS": "interaction_timeout_ms",
    "SILENTPROBE_NAVIGATION_TIMEOUT_MS": "navigation_timeout_ms",
    "SILENTPROBE_SETTLE_TIMEOUT_MS": "settle_timeout_ms",
}

CONFIG_FILE_KEYS = frozenset({"profile", "budget", "headless", "min_coverage", "timestamp_mode"})
EXIT_MODES = frozenset({"decision", "truth"})

# Keep this literal deterministic and sorted in write path.
DEFAULT_CONFIG_TEMPLATE: dict[str, Any] = {
    "profile": BudgetProfile.STANDARD.value,
    "headless": True,
    "min_coverage": 0.9,
    "timestamp_mode": "wallclock",
    "budget": {
        "adaptive_stabilization": False,
        "interaction_timeout_ms": 10000,
        "navigation_timeout_ms": 15000,
        "settle_timeout_ms": 30000,
    },
}


@dataclass(frozen=True)
class ScanConfig:
    """Everything a scan needs, resolved once before the run starts."""

    url: str
    profile: BudgetProfile
    budget: ScanBudget
    run_root: Path
    timestamp_mode: str = "wallclock"
    headless: bool = True
    exit_mode: str = "decision"
    min_coverage: float = 0.90

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "profile": self.profile.value,
            "budget": self.budget.to_dict(),
            "run_root": str(self.run_root),
            "timestamp_mode": self.timestamp_mode,
            "headless": self.headless,
            "exit_mode": self.exit_mode,
            "min_coverage": self.min_coverage,
        }


def read_config_file(path: Path) -> dict[str, Any]:
    """Read the YAML config file. A missing file is an empty config."""
    if not path.exists():
        return {}
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"{path} parse error: {exc}", CONFIG_REASON_PARSE_ERROR) from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(
            f"{path} parse error: expected mapping at top level", CONFIG_REASON_PARSE_ERROR
        )
    unknown = sorted(set(raw) - CONFIG_FILE_KEYS)
    if unknown:
        raise ConfigError(
            f"{path}: unknown config key(s): {', '.join(unknown)}", CONFIG_REASON_UNKNOWN_KEY
        )
    budget = raw.get("budget") or {}
    if not isinstance(budget, dict):
        raise ConfigError(f"{path}: `budget` must be a mapping", CONFIG_REASON_INVALID_VALUE)
    unknown_fields = sorted(set(budget) - BUDGET_FIELDS)
    if unknown_fields:
        raise ConfigError(
            f"{path}: unknown budget field(s): {', '.join(unknown_fields)}",
            CONFIG_REASON_UNKNOWN_KEY,
        )
    return raw


def _env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for name, field_name in sorted(ENV_BUDGET_FIELDS.items()):
        value = env.get(name, "").strip()
        if value:
            overrides[field_name] = value
    return overrides


def _coverage(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"min_coverage must be a number, got {value!r}") from exc
    if not 0.0 <= number <= 1.0:
        raise ConfigError(f"min_coverage must be within [0, 1], got {number}")
    return number


def load_scan_config(
    url: str,
    *,
    config_path: Path | None = None,
    profile: str | None = None,
    overrides: Mapping[str, Any] | None = None,
    env: Mapping[str, str] | None = None,
    run_root: Path | None = None,
    timestamp_mode: str | None = None,
    headless: bool | None = None,
    exit_mode: str = "decision",
    min_coverage: float | None = None,
) -> ScanConfig:
    """Resolve the scan configuration. Raises ConfigError on any invalid input."""
    environ = os.environ if env is None else env
    file_config = read_config_file(config_path or DEFAULT_CONFIG_PATH)

    resolved_profile = parse_profile(
        profile or environ.get(ENV_PROFILE, "").strip() or file_config.get("profile") or "STANDARD"
    )

    merged: dict[str, Any] = {}
    merged.update(file_config.get("budget") or {})
    merged.update(_env_overrides(environ))
    merged.update({key: value for key, value in (overrides or {}).items() if value is not None})
    budget = create_scan_budget(resolved_profile, merged)

    mode = timestamp_mode or str(file_config.get("timestamp_mode", "wallclock"))
    try:
        normalize_timestamp_mode(mode)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc

    if exit_mode not in EXIT_MODES:
        raise ConfigError(f"Unknown exit mode: {exit_mode}. Expected one of: decision, truth.")

    return ScanConfig(
        url=url,
        profile=resolved_profile,
        budget=budget,
        run_root=get_default_run_root(run_root, env=environ),
        timestamp_mode=mode,
        headless=bool(file_config.get("headless", True)) if headless is None else headless,
        exit_mode=exit_mode,
        min_coverage=_coverage(
            min_coverage if min_coverage is not None else file_config.get("min_coverage", 0.90)
        ),
    )


def write_default_config(path: Path = DEFAULT_CONFIG_PATH, *, force: bool = False) -> Path:
    """Create the default YAML config deterministically."""
    if path.exists() and not force:
        raise FileExistsError(f"Config file already exists: {path}")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(DEFAULT_CONFIG_TEMPLATE, sort_keys=True), encoding="utf-8")
    return path
