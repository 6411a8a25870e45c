"""Interaction discovery and deterministic prioritization."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from silentprobe.driver.types import CATEGORY_RANK, Interaction, InteractionType

if TYPE_CHECKING:
    from silentprobe.driver.page import PageHandle

logger = logging.getLogger(__name__)

LOGOUT_PATTERN = re.compile(r"\b(log\s?out|sign\s?out)\b")
LOGIN_PATTERN = re.compile(r"\b(log\s?in|sign\s?in)\b")


def _text(raw: dict[str, Any], key: str) -> str:
    value = raw.get(key)
    return "" if value is None else " ".join(str(value).split())


def interaction_from_raw(raw: dict[str, Any]) -> Interaction | None:
    """Normalize one raw descriptor returned by ``PageHandle.query_interactions``."""
    selector = _text(raw, "selector")
    if not selector:
        return None
    try:
        kind = InteractionType(_text(raw, "type").lower())
    except ValueError:
        logger.debug("ignoring interaction with unknown type %r", raw.get("type"))
        return None

    text = _text(raw, "text")
    label = _text(raw, "label")
    aria_label = _text(raw, "ariaLabel")
    combined = f"{text} {label} {aria_label}".lower()

    if kind is InteractionType.FORM and raw.get("hasPassword"):
        kind = InteractionType.LOGIN
    elif kind in (InteractionType.LINK, InteractionType.BUTTON) and LOGOUT_PATTERN.search(combined):
        kind = InteractionType.LOGOUT
    elif kind is InteractionType.FORM and LOGIN_PATTERN.search(combined):
        kind = InteractionType.LOGIN

    inputs = raw.get("inputs") or []
    return Interaction(
        type=kind,
        selector=selector,
        label=label,
        text=text,
        aria_label=aria_label,
        href=raw.get("href") or None,
        danger=bool(raw.get("danger")),
        input_selectors=tuple(str(item) for item in inputs if item),
        submit_selector=raw.get("submit") or None,
    )


def discover_interactions(page: PageHandle) -> list[Interaction]:
    """Query the page and return unique interactions in document order."""
    seen: set[tuple[InteractionType, str]] = set()
    found: list[Interaction] = []
    for raw in page.query_interactions():
        interaction = interaction_from_raw(raw)
        if interaction is None:
            continue
        key = (interaction.type, interaction.selector)
        if key in seen:
            continue
        seen.add(key)
        found.append(interaction)
    logger.debug("discovered %d interactions on %s", len(found), page.url)
    return found


def prioritize(interactions: Iterable[Interaction], limit: int | None = None) -> list[Interaction]:
    """Order links, buttons, forms, then everything else; stable by selector."""
    ordered = sorted(interactions, key=lambda item: (CATEGORY_RANK[item.type], item.selector))
    return ordered if limit is None else ordered[: max(0, limit)]
