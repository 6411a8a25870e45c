"""Before/after evidence capture and signal derivation."""

from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from silentprobe.detection.types import EvidenceBundle, EvidenceSignals
from silentprobe.driver.types import FeedbackState, NetworkCounters, PageSnapshot
from silentprobe.frontier.urls import urls_equivalent

if TYPE_CHECKING:
    from silentprobe.driver.page import PageHandle


def capture_snapshot(page: PageHandle) -> PageSnapshot:
    return PageSnapshot(
        url=page.url,
        dom_hash=page.dom_fingerprint(),
        storage=page.storage_snapshot(),
        feedback=page.feedback_snapshot(),
    )


def derive_signals(
    before: PageSnapshot,
    after: PageSnapshot,
    *,
    network_before: NetworkCounters,
    network_after: NetworkCounters,
    during: FeedbackState | None = None,
) -> EvidenceSignals:
    """Turn two snapshots and the network delta into boolean evidence.

    ``during`` is a feedback sample taken right after the action, before
    settling, so a loading indicator that came and went is still seen.
    """
    navigation_changed = not urls_equivalent(before.url, after.url)
    dom_changed = before.dom_hash != after.dom_hash
    peak_loading = max(after.feedback.loading_count, during.loading_count if during else 0)
    loading_started = peak_loading > before.feedback.loading_count
    feedback_seen = after.feedback.feedback_count > before.feedback.feedback_count or (
        during is not None and during.feedback_count > before.feedback.feedback_count
    )
    return EvidenceSignals(
        navigation_changed=navigation_changed,
        route_changed=navigation_changed and urlsplit(before.url).path != urlsplit(after.url).path,
        meaningful_dom_change=dom_changed and not navigation_changed,
        dom_changed=dom_changed,
        feedback_seen=feedback_seen,
        aria_live_updated=bool(after.feedback.aria_live_text)
        and after.feedback.aria_live_text != before.feedback.aria_live_text,
        aria_role_alerts_detected=after.feedback.alert_count > before.feedback.alert_count,
        network_activity=network_after.events > network_before.events,
        loading_started=loading_started,
        loading_resolved=loading_started
        and after.feedback.loading_count <= before.feedback.loading_count,
        state_changed=before.storage != after.storage,
        silent_block=network_after.blocked > network_before.blocked,
    )


def build_evidence(
    before: PageSnapshot,
    after: PageSnapshot,
    *,
    network_before: NetworkCounters,
    network_after: NetworkCounters,
) -> EvidenceBundle:
    return EvidenceBundle(
        before_url=before.url,
        after_url=after.url,
        before_dom_hash=before.dom_hash,
        after_dom_hash=after.dom_hash,
        dom_diff=before.dom_hash != after.dom_hash,
        network_requests=max(0, network_after.events - network_before.events),
    )
