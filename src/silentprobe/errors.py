"""Error taxonomy shared across SilentProbe components."""

from __future__ import annotations

CONFIG_REASON_PARSE_ERROR = "CONFIG_PARSE_ERROR"
CONFIG_REASON_UNKNOWN_KEY = "CONFIG_UNKNOWN_KEY"
CONFIG_REASON_INVALID_VALUE = "CONFIG_INVALID_VALUE"
CONFIG_REASON_UNKNOWN_PROFILE = "CONFIG_UNKNOWN_PROFILE"

EXPECTATIONS_REASON_MISSING = "EXPECTATIONS_MISSING"
EXPECTATIONS_REASON_PARSE_ERROR = "EXPECTATIONS_PARSE_ERROR"
EXPECTATIONS_REASON_SCHEMA_INVALID = "EXPECTATIONS_SCHEMA_INVALID"

FLOW_REASON_STEP_INVALID = "FLOW_STEP_INVALID"


class ConfigError(ValueError):
    """Scan configuration could not be built."""

    reason_code: str

    def __init__(self, message: str, reason_code: str = CONFIG_REASON_INVALID_VALUE) -> None:
        super().__init__(message)
        self.reason_code = reason_code


class ExpectationInputError(ValueError):
    """Expectations document is missing or malformed."""

    reason_code: str

    def __init__(self, message: str, reason_code: str = EXPECTATIONS_REASON_SCHEMA_INVALID) -> None:
        super().__init__(message)
        self.reason_code = reason_code


class FlowValidationError(ValueError):
    """A flow step is malformed. Raised immediately, never retried."""

    reason_code: str

    def __init__(self, message: str, reason_code: str = FLOW_REASON_STEP_INVALID) -> None:
        super().__init__(message)
        self.reason_code = reason_code


class DriverError(RuntimeError):
    """Browser operation failed."""


class DriverTimeout(DriverError):
    """Browser operation exceeded its bounded wait."""


class InfrastructureError(RuntimeError):
    """The browser or navigation layer itself did not complete."""


class DecisionInvariantError(RuntimeError):
    """The decision authority finished without a verdict."""
