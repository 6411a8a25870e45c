"""Destructive-action safety gate applied before any interaction."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from silentprobe.driver.types import Interaction, InteractionType

SAFETY_POLICY_REASON = "safety_policy"

DESTRUCTIVE_PATTERN = re.compile(
    r"\b(delete|remove|erase|wipe|destroy|drop|reset|terminate|unsubscribe|deactivate)\b"
)
FINANCIAL_PATTERN = re.compile(r"\b(pay|purchase|checkout)\b")
SAFE_CLEAR_PATTERN = re.compile(
    r"\bclear\s+(all\s+filters|filters?|search|selection|input|form|query|results)\b"
)
SENSITIVE_CLEAR_PATTERN = re.compile(
    r"\bclear\s+(all|data|account|history|cache|cookies|storage|everything|profile)\b"
)

AUTH_EXEMPT_TYPES: frozenset[InteractionType] = frozenset(
    {InteractionType.LOGIN, InteractionType.LOGOUT}
)


@dataclass(frozen=True)
class SkipDecision:
    """Whether an interaction is withheld, and why."""

    skip: bool
    reason: str | None = None
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"skip": self.skip, "reason": self.reason, "message": self.message}


ALLOWED = SkipDecision(skip=False)


def _text_sources(interaction: Interaction) -> list[str]:
    parts = (interaction.text, interaction.label, interaction.aria_label)
    return [part.strip().lower() for part in parts if part and part.strip()]


def _sensitive_clear(source: str) -> str | None:
    """First sensitive "clear ..." phrase in one text source not covered by a safe one."""
    safe_starts = {match.start() for match in SAFE_CLEAR_PATTERN.finditer(source)}
    for match in SENSITIVE_CLEAR_PATTERN.finditer(source):
        if match.start() not in safe_starts:
            return match.group(0)
    return None


def should_skip(interaction: Interaction) -> SkipDecision:
    """Decide whether ``interaction`` must be withheld by the safety policy."""
    if interaction.danger:
        return SkipDecision(True, SAFETY_POLICY_REASON, "Interaction is explicitly marked dangerous")

    if interaction.type in AUTH_EXEMPT_TYPES:
        return ALLOWED

    sources = _text_sources(interaction)
    if not sources:
        return ALLOWED
    text = " ".join(sources)

    match = DESTRUCTIVE_PATTERN.search(text)
    if match:
        return SkipDecision(
            True,
            SAFETY_POLICY_REASON,
            f"Destructive action keyword '{match.group(1)}' in '{text}'",
        )

    match = FINANCIAL_PATTERN.search(text)
    if match:
        return SkipDecision(
            True,
            SAFETY_POLICY_REASON,
            f"Financial action keyword '{match.group(1)}' in '{text}'",
        )

    for source in sources:
        phrase = _sensitive_clear(source)
        if phrase:
            return SkipDecision(
                True, SAFETY_POLICY_REASON, f"Clears sensitive state: '{phrase}' in '{text}'"
            )

    return ALLOWED
