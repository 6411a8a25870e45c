"""Driver domain types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class InteractionType(str, Enum):
    """Kinds of interaction the driver knows how to execute."""

    LINK = "link"
    BUTTON = "button"
    FORM = "form"
    LOGIN = "login"
    LOGOUT = "logout"
    HOVER = "hover"
    KEYBOARD = "keyboard"
    FILE_UPLOAD = "file_upload"


# Links first, then buttons, then forms, then everything else.
CATEGORY_RANK: dict[InteractionType, int] = {
    InteractionType.LINK: 0,
    InteractionType.BUTTON: 1,
    InteractionType.LOGOUT: 1,
    InteractionType.FORM: 2,
    InteractionType.LOGIN: 2,
    InteractionType.HOVER: 3,
    InteractionType.KEYBOARD: 3,
    InteractionType.FILE_UPLOAD: 3,
}


@dataclass(frozen=True)
class Interaction:
    """One discovered interaction on a page."""

    type: InteractionType
    selector: str
    label: str = ""
    text: str = ""
    aria_label: str = ""
    href: str | None = None
    danger: bool = False
    input_selectors: tuple[str, ...] = ()
    submit_selector: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "selector": self.selector,
            "label": self.label,
            "text": self.text,
            "aria_label": self.aria_label,
            "href": self.href,
            "danger": self.danger,
            "input_selectors": list(self.input_selectors),
            "submit_selector": self.submit_selector,
        }


@dataclass(frozen=True)
class NetworkCounters:
    """Cumulative request activity observed on a page."""

    events: int = 0
    inflight: int = 0
    blocked: int = 0


@dataclass(frozen=True)
class FeedbackState:
    """Visible user feedback present in the document."""

    feedback_count: int = 0
    aria_live_text: str = ""
    alert_count: int = 0
    loading_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "feedback_count": self.feedback_count,
            "aria_live_text": self.aria_live_text,
            "alert_count": self.alert_count,
            "loading_count": self.loading_count,
        }


@dataclass(frozen=True)
class PageSnapshot:
    """Point-in-time evidence captured before or after an interaction."""

    url: str
    dom_hash: str
    storage: dict[str, dict[str, str]] = field(default_factory=dict)
    feedback: FeedbackState = field(default_factory=FeedbackState)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "dom_hash": self.dom_hash,
            "storage_keys": {
                area: sorted(values.keys()) for area, values in sorted(self.storage.items())
            },
            "feedback": self.feedback.to_dict(),
        }
