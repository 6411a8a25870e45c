from __future__ import annotations

from silentprobe.driver.evidence import build_evidence, derive_signals
from silentprobe.driver.types import FeedbackState, NetworkCounters, PageSnapshot

BEFORE = PageSnapshot(url="https://app.test/", dom_hash="a")


def _derive(after: PageSnapshot, **kwargs: object):
    values = {
        "network_before": NetworkCounters(events=3),
        "network_after": NetworkCounters(events=3),
    }
    values.update(kwargs)
    return derive_signals(BEFORE, after, **values)  # type: ignore[arg-type]


def test_no_change_yields_no_signals() -> None:
    signals = _derive(PageSnapshot(url="https://app.test/#top", dom_hash="a"))
    assert signals.observable is False
    assert signals.attempt_proof is False


def test_navigation_is_not_a_meaningful_dom_change() -> None:
    signals = _derive(PageSnapshot(url="https://app.test/next", dom_hash="b"))
    assert signals.navigation_changed is True
    assert signals.route_changed is True
    assert signals.dom_changed is True
    assert signals.meaningful_dom_change is False


def test_same_page_dom_change_is_meaningful() -> None:
    signals = _derive(PageSnapshot(url="https://app.test/", dom_hash="b"))
    assert signals.meaningful_dom_change is True
    assert signals.navigation_changed is False


def test_feedback_network_storage_and_block_signals() -> None:
    after = PageSnapshot(
        url="https://app.test/",
        dom_hash="a",
        storage={"localStorage": {"cart": "1"}},
        feedback=FeedbackState(feedback_count=1, aria_live_text="Saved", alert_count=1),
    )
    signals = _derive(
        after,
        network_after=NetworkCounters(events=5, blocked=1),
    )
    assert signals.feedback_seen is True
    assert signals.aria_live_updated is True
    assert signals.aria_role_alerts_detected is True
    assert signals.network_activity is True
    assert signals.state_changed is True
    assert signals.silent_block is True


def test_transient_loading_is_started_and_resolved() -> None:
    after = PageSnapshot(url="https://app.test/", dom_hash="a")
    signals = _derive(after, during=FeedbackState(loading_count=1))
    assert signals.loading_started is True
    assert signals.loading_resolved is True

    stuck = _derive(PageSnapshot(url="https://app.test/", dom_hash="a", feedback=FeedbackState(loading_count=1)))
    assert stuck.loading_started is True
    assert stuck.loading_resolved is False


def test_build_evidence_counts_request_delta() -> None:
    after = PageSnapshot(url="https://app.test/x", dom_hash="b")
    evidence = build_evidence(
        BEFORE,
        after,
        network_before=NetworkCounters(events=2),
        network_after=NetworkCounters(events=7),
    )
    assert evidence.network_requests == 5
    assert evidence.dom_diff is True
    assert evidence.to_dict()["after_url"] == "https://app.test/x"
