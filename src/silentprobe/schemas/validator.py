"""Schema validation over the packaged schema registry."""

from __future__ import annotations

from typing import Any

from jsonschema.validators import Draft202012Validator

from silentprobe.schemas.registry import get_registry


class SchemaViolation(ValueError):
    """Data failed validation against a packaged schema."""

    def __init__(self, schema_name: str, errors: list[str]) -> None:
        super().__init__(
            f"Schema validation failed for '{schema_name}':\n"
            + "\n".join(f"  - {msg}" for msg in errors)
        )
        self.schema_name = schema_name
        self.errors = errors


def validate_data(
    data: dict[str, Any] | list[dict[str, Any]],
    schema_name: str,
    strict: bool = True,
) -> tuple[bool, list[str]]:
    """Validate data against a schema from package data.

    Args:
        data: Data to validate (single dict or list of dicts)
        schema_name: Name of schema to validate against
        strict: If True, raise on validation errors; if False, return error list

    Returns:
        Tuple of (is_valid, error_messages)

    Raises:
        KeyError: If schema not found in package data
        SchemaViolation: If validation fails and strict=True
    """
    schema = get_registry().get_json(schema_name)
    validator = Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(data), key=lambda error: [str(p) for p in error.path])

    if errors:
        error_messages = [
            f"{'.'.join(str(p) for p in e.path)}: {e.message}" if e.path else e.message
            for e in errors
        ]
        if strict:
            raise SchemaViolation(schema_name, error_messages)
        return False, error_messages

    return True, []
