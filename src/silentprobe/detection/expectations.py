"""Load expectations produced by static analysis."""

from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from silentprobe.detection.types import Expectation, Promise, SourceRef
from silentprobe.errors import (
    EXPECTATIONS_REASON_MISSING,
    EXPECTATIONS_REASON_PARSE_ERROR,
    EXPECTATIONS_REASON_SCHEMA_INVALID,
    ExpectationInputError,
)
from silentprobe.schemas.validator import SchemaViolation, validate_data


@dataclass(frozen=True)
class ExpectationSet:
    """Expectations plus the routes they were declared on and any scripted flows."""

    expectations: tuple[Expectation, ...]
    routes: tuple[str, ...]
    flows: tuple[dict[str, Any], ...] = ()

    def counts_by_route(self) -> dict[str, int]:
        counts = Counter(item.from_path for item in self.expectations if item.from_path)
        return {route: counts[route] for route in sorted(counts)}

    def by_id(self) -> dict[str, Expectation]:
        return {item.id: item for item in self.expectations}

    def proven_count(self) -> int:
        return sum(1 for item in self.expectations if item.proven)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _build_expectation(raw: dict[str, Any], contracts: dict[str, Any]) -> Expectation:
    promise_raw = raw.get("promise") or {}
    source_raw = raw.get("source") or {}
    source = SourceRef(file=_text(source_raw.get("file")), line=source_raw.get("line"))
    return Expectation(
        id=str(raw["id"]),
        type=_text(raw.get("type")),
        promise=Promise(
            kind=_text(promise_raw.get("kind")),
            value=_text(promise_raw.get("value")),
            description=_text(promise_raw.get("description")),
            state_key=promise_raw.get("stateKey"),
        ),
        source=source,
        from_path=raw.get("fromPath"),
        selector=raw.get("selector"),
        action_type=raw.get("actionType"),
        proven=bool(source.file) and source.ref in contracts,
    )


def parse_expectations(payload: Any) -> ExpectationSet:
    """Validate and normalize an already-parsed expectations document."""
    if not isinstance(payload, dict):
        raise ExpectationInputError(
            "Expectations document must be a mapping with an 'expectations' list",
            EXPECTATIONS_REASON_SCHEMA_INVALID,
        )
    try:
        validate_data(payload, "expectations", strict=True)
    except SchemaViolation as exc:
        raise ExpectationInputError(str(exc), EXPECTATIONS_REASON_SCHEMA_INVALID) from exc

    contracts = payload.get("actionContracts") or {}
    expectations = [_build_expectation(raw, contracts) for raw in payload["expectations"]]

    seen: set[str] = set()
    for item in expectations:
        if item.id in seen:
            raise ExpectationInputError(
                f"Duplicate expectation id: {item.id}", EXPECTATIONS_REASON_SCHEMA_INVALID
            )
        seen.add(item.id)

    routes = set(payload.get("routes") or [])
    routes.update(item.from_path for item in expectations if item.from_path)
    return ExpectationSet(
        expectations=tuple(sorted(expectations, key=lambda item: item.id)),
        routes=tuple(sorted(routes)),
        flows=tuple(payload.get("flows") or ()),
    )


def load_expectations(path: Path) -> ExpectationSet:
    """Read a JSON or YAML expectations document from disk."""
    if not path.exists():
        raise ExpectationInputError(
            f"Expectations file not found: {path}", EXPECTATIONS_REASON_MISSING
        )
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            payload = json.loads(text)
        else:
            payload = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ExpectationInputError(
            f"Failed to parse expectations file {path}: {exc}",
            EXPECTATIONS_REASON_PARSE_ERROR,
        ) from exc
    return parse_expectations(payload)
