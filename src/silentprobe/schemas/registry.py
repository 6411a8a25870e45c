"""Schema registry backed by package data only.

Schemas ship inside ``silentprobe.schemas`` so validation behaves the same
regardless of the current working directory.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from functools import lru_cache
from importlib.resources import files
from typing import Any

SCHEMA_PACKAGE = "silentprobe.schemas"
SCHEMA_SUFFIX = ".schema.json"


@dataclass(frozen=True)
class SchemaRegistry:
    """Registry of available schemas.

    Attributes:
        available: Sorted tuple of canonical schema names (without suffix)
    """

    available: tuple[str, ...] = ()

    def __init__(self) -> None:
        names = [
            item.name[: -len(SCHEMA_SUFFIX)]
            for item in files(SCHEMA_PACKAGE).iterdir()
            if item.name.endswith(SCHEMA_SUFFIX)
        ]
        object.__setattr__(self, "available", tuple(sorted(names)))

    def get_text(self, name: str) -> str:
        canonical_name = name[: -len(SCHEMA_SUFFIX)] if name.endswith(SCHEMA_SUFFIX) else name
        if canonical_name not in self.available:
            raise KeyError(
                f"Schema '{canonical_name}' not found in package data. "
                f"Available schemas: {', '.join(self.available)}"
            )
        return (files(SCHEMA_PACKAGE) / f"{canonical_name}{SCHEMA_SUFFIX}").read_text(
            encoding="utf-8"
        )

    def get_json(self, name: str) -> dict[str, Any]:
        return json.loads(self.get_text(name))


@lru_cache(maxsize=1)
def get_registry() -> SchemaRegistry:
    return SchemaRegistry()
