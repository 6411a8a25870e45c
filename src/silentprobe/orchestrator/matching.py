"""Pair discovered interactions with declared expectations."""

from __future__ import annotations

from dataclasses import replace
from urllib.parse import urlsplit

from silentprobe.detection.classifier import resolve_kind
from silentprobe.detection.silence import SilenceKind
from silentprobe.detection.types import EvidenceSignals, Expectation, Observation, PromiseKind
from silentprobe.driver.types import Interaction
from silentprobe.frontier.urls import canonicalize_url

SILENCE_BY_KIND: dict[PromiseKind | None, str] = {
    PromiseKind.NAVIGATION: SilenceKind.NAVIGATION_AMBIGUOUS,
    PromiseKind.SUBMIT: SilenceKind.SUBMISSION_AMBIGUOUS,
}


def route_path(route: str, base: str | None = None) -> str:
    """Path component of a route or URL, ``/`` when empty."""
    try:
        canonical = canonicalize_url(route, base=base)
    except ValueError:
        return route or "/"
    return urlsplit(canonical).path or "/"


def expectation_matches(
    expectation: Expectation,
    interaction: Interaction,
    page_url: str,
) -> bool:
    """True when ``interaction`` on ``page_url`` is the one ``expectation`` declares.

    A declared ``fromPath`` must equal the page path. A declared selector must
    match the interaction or one of its form controls. Without a selector, a
    link whose target path equals the promised value matches.
    """
    if expectation.from_path and route_path(expectation.from_path, page_url) != route_path(page_url):
        return False
    if expectation.selector:
        candidates = {interaction.selector, *interaction.input_selectors}
        if interaction.submit_selector:
            candidates.add(interaction.submit_selector)
        return expectation.selector in candidates
    if interaction.href and expectation.promise.value:
        return route_path(interaction.href, page_url) == route_path(
            expectation.promise.value, page_url
        )
    return False


def promise_observed(
    expectation: Expectation,
    signals: EvidenceSignals,
    after_url: str | None,
) -> bool:
    """Whether the promised outcome itself was seen."""
    kind = resolve_kind(expectation)
    if kind is PromiseKind.NAVIGATION:
        if not signals.navigation_changed:
            return False
        target = expectation.promise.value
        if not target or after_url is None:
            return True
        return route_path(target, after_url) == route_path(after_url)
    if kind is PromiseKind.SUBMIT:
        return signals.network_activity and (
            signals.feedback_present or signals.dom_outcome or signals.navigation_changed
        )
    if kind is PromiseKind.FEEDBACK:
        return signals.feedback_present
    if kind is PromiseKind.STATE:
        return signals.state_changed
    if kind is PromiseKind.LOADING:
        return signals.loading_resolved and (signals.dom_outcome or signals.feedback_present)
    if kind is PromiseKind.PERMISSION:
        return not signals.silent_block and (
            signals.navigation_changed or signals.dom_outcome or signals.feedback_present
        )
    return signals.navigation_changed or signals.dom_outcome or signals.feedback_present


def silence_kind_for(expectation: Expectation) -> str:
    return SILENCE_BY_KIND.get(resolve_kind(expectation), SilenceKind.INTENT_BLOCKED)


def observation_for(
    expectation: Expectation,
    observation: Observation,
    after_url: str | None,
) -> Observation:
    """The observation one matched expectation is classified against.

    ``observed`` is derived from the recorded signals and the URL after the
    interaction, so a live scan and a replay of its traces agree.
    """
    observed = (
        observation.attempted
        and observation.signals is not None
        and promise_observed(expectation, observation.signals, after_url)
    )
    return replace(observation, observed=observed, silence_detected=None)
