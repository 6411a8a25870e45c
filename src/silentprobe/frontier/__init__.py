"""Crawl frontier, URL canonicalization and the interaction safety gate."""

from silentprobe.frontier.frontier import FrontierStats, PageFrontier
from silentprobe.frontier.safety import SkipDecision, should_skip
from silentprobe.frontier.urls import (
    canonicalize_url,
    count_tracking_params,
    drop_tracking_params,
    is_tracking_param,
    same_origin,
    urls_equivalent,
)

__all__ = [
    "FrontierStats",
    "PageFrontier",
    "SkipDecision",
    "canonicalize_url",
    "count_tracking_params",
    "drop_tracking_params",
    "is_tracking_param",
    "same_origin",
    "should_skip",
    "urls_equivalent",
]
