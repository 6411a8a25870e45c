from __future__ import annotations

import pytest

from fakes import FakeClock

from silentprobe.budget.profiles import create_scan_budget
from silentprobe.frontier.frontier import (
    STOP_MAX_PAGES,
    STOP_MAX_SCAN_DURATION,
    PageFrontier,
)


def _frontier(clock: FakeClock | None = None, **overrides: int) -> PageFrontier:
    budget = create_scan_budget("STANDARD", overrides)
    return PageFrontier("https://app.test/", budget, clock=clock or FakeClock())


def test_start_url_must_be_http() -> None:
    with pytest.raises(ValueError):
        PageFrontier("ftp://app.test/", create_scan_budget("QUICK"), clock=FakeClock())


def test_fifo_order_and_deduplication() -> None:
    frontier = _frontier()
    assert frontier.add("/b") is True
    assert frontier.add("https://app.test/c#frag") is True
    assert frontier.add("https://app.test/b?utm_source=x") is False
    assert frontier.add("https://other.test/d") is False
    assert frontier.add("mailto:someone@app.test") is False

    order = []
    while True:
        url = frontier.next()
        if url is None:
            break
        order.append(url)
        frontier.mark_visited(url)

    assert order == ["https://app.test/", "https://app.test/b", "https://app.test/c"]
    assert frontier.stats().stop_reason is None


def test_unique_url_cap_sets_frontier_capped() -> None:
    frontier = _frontier(max_unique_urls=3)

    assert frontier.add("/a") is True
    assert frontier.add("/b") is True
    assert frontier.frontier_capped is False
    assert frontier.add("/c") is False

    stats = frontier.stats()
    assert stats.frontier_capped is True
    assert stats.pages_discovered == 3
    assert stats.queue_length == 3


def test_max_pages_stops_with_reason() -> None:
    frontier = _frontier(max_pages=1)
    frontier.add("/next")

    first = frontier.next()
    assert first == "https://app.test/"
    frontier.mark_visited(first)

    assert frontier.next() is None
    assert frontier.stats().stop_reason == STOP_MAX_PAGES
    assert frontier.stats().queue_length == 1


def test_scan_duration_stops_with_reason() -> None:
    clock = FakeClock()
    frontier = _frontier(clock, max_scan_duration_ms=1000)

    clock.advance(1.5)

    assert frontier.time_exhausted() is True
    assert frontier.next() is None
    assert frontier.stats().stop_reason == STOP_MAX_SCAN_DURATION


def test_mark_visited_counts_each_page_once() -> None:
    frontier = _frontier()
    frontier.mark_visited("https://app.test/")
    frontier.mark_visited("https://APP.test/#top")

    assert frontier.pages_visited == 1
    assert frontier.is_visited("https://app.test")
    assert frontier.next() is None
