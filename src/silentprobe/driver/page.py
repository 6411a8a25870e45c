"""Page handle contract consumed by the driver and stabilization engine."""

from __future__ import annotations

from typing import Any, Protocol

from silentprobe.driver.types import FeedbackState, NetworkCounters


class PageHandle(Protocol):
    """Browser page primitives the core relies on.

    Every blocking call takes an explicit timeout. Implementations raise
    ``DriverTimeout`` when the timeout elapses and ``DriverError`` for any
    other browser failure.
    """

    @property
    def url(self) -> str: ...

    def goto(self, url: str, *, timeout_ms: int) -> int | None: ...

    def click(self, selector: str, *, timeout_ms: int) -> None: ...

    def fill(self, selector: str, value: str, *, timeout_ms: int) -> None: ...

    def hover(self, selector: str, *, timeout_ms: int) -> None: ...

    def focus(self, selector: str, *, timeout_ms: int) -> None: ...

    def press(self, selector: str, key: str, *, timeout_ms: int) -> None: ...

    def set_input_files(self, selector: str, files: list[str], *, timeout_ms: int) -> None: ...

    def evaluate(self, expression: str, arg: Any = None) -> Any: ...

    def wait_for_load_state(self, state: str, *, timeout_ms: int) -> None: ...

    def wait_for_timeout(self, timeout_ms: float) -> None: ...

    def query_interactions(self) -> list[dict[str, Any]]: ...

    def dom_fingerprint(self) -> str: ...

    def storage_snapshot(self) -> dict[str, dict[str, str]]: ...

    def feedback_snapshot(self) -> FeedbackState: ...

    def network_counters(self) -> NetworkCounters: ...

    def mutation_count(self) -> int: ...
