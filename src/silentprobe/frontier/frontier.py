"""FIFO crawl frontier bounded by the scan budget."""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

from silentprobe.frontier.urls import CRAWLABLE_SCHEMES, canonicalize_url, same_origin

if TYPE_CHECKING:
    from silentprobe.budget.types import ScanBudget

logger = logging.getLogger(__name__)

STOP_MAX_PAGES = "max_pages"
STOP_MAX_SCAN_DURATION = "max_scan_duration"


@dataclass(frozen=True)
class FrontierStats:
    """Counters reported in the run summary."""

    pages_discovered: int
    pages_visited: int
    queue_length: int
    frontier_capped: bool
    stop_reason: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "pages_discovered": self.pages_discovered,
            "pages_visited": self.pages_visited,
            "queue_length": self.queue_length,
            "frontier_capped": self.frontier_capped,
            "stop_reason": self.stop_reason,
        }


class PageFrontier:
    """Owns the queue of same-origin pages left to visit in one run.

    The queue and the visited set are private. Callers go through ``add``,
    ``next`` and ``mark_visited`` only.
    """

    def __init__(
        self,
        start_url: str,
        budget: ScanBudget,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._start_url = canonicalize_url(start_url)
        if urlsplit(self._start_url).scheme not in CRAWLABLE_SCHEMES:
            raise ValueError(f"Start URL must be http(s): {start_url}")
        self._max_pages = budget.max_pages
        self._max_unique_urls = budget.max_unique_urls
        self._clock = clock
        self._deadline = clock() + budget.max_scan_duration_ms / 1000.0

        self._queue: deque[str] = deque([self._start_url])
        self._discovered: set[str] = {self._start_url}
        self._visited: set[str] = set()
        self._pages_visited = 0
        self._frontier_capped = False
        self._stop_reason: str | None = None

    @property
    def start_url(self) -> str:
        return self._start_url

    @property
    def frontier_capped(self) -> bool:
        return self._frontier_capped

    @property
    def pages_discovered(self) -> int:
        return len(self._discovered)

    @property
    def pages_visited(self) -> int:
        return self._pages_visited

    def time_exhausted(self) -> bool:
        return self._clock() >= self._deadline

    def add(self, url: str) -> bool:
        """Queue ``url`` if it is new, same-origin and within the unique-URL cap."""
        try:
            canonical = canonicalize_url(url, base=self._start_url)
        except ValueError:
            logger.debug("frontier rejected unparsable url %r", url)
            return False

        if urlsplit(canonical).scheme not in CRAWLABLE_SCHEMES:
            return False
        if not same_origin(canonical, self._start_url):
            return False
        if canonical in self._discovered:
            return False
        if self.pages_discovered >= self._max_unique_urls:
            if not self._frontier_capped:
                logger.warning(
                    "frontier capped at %s unique urls; dropping %s",
                    self._max_unique_urls,
                    canonical,
                )
            self._frontier_capped = True
            return False

        self._discovered.add(canonical)
        self._queue.append(canonical)
        return True

    def next(self) -> str | None:
        """Pop the next unvisited URL, or None when the queue or budget is exhausted."""
        if self._pages_visited >= self._max_pages:
            self._stop_reason = STOP_MAX_PAGES
            return None
        if self.time_exhausted():
            self._stop_reason = STOP_MAX_SCAN_DURATION
            return None
        while self._queue:
            url = self._queue.popleft()
            if url not in self._visited:
                return url
        return None

    def mark_visited(self, url: str) -> None:
        canonical = canonicalize_url(url, base=self._start_url)
        if canonical in self._visited:
            return
        self._visited.add(canonical)
        self._pages_visited += 1

    def is_visited(self, url: str) -> bool:
        return canonicalize_url(url, base=self._start_url) in self._visited

    def stats(self) -> FrontierStats:
        return FrontierStats(
            pages_discovered=self.pages_discovered,
            pages_visited=self._pages_visited,
            queue_length=len(self._queue),
            frontier_capped=self._frontier_capped,
            stop_reason=self._stop_reason,
        )
