"""URL canonicalization used as the frontier's deduplication key."""

from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

TRACKING_PARAMS: frozenset[str] = frozenset(
    {"gclid", "fbclid", "msclkid", "dclid", "mc_cid", "mc_eid", "_ga", "_gl"}
)
TRACKING_PREFIXES: tuple[str, ...] = ("utm_",)
DEFAULT_PORTS: dict[str, int] = {"http": 80, "https": 443}
CRAWLABLE_SCHEMES: frozenset[str] = frozenset({"http", "https"})


def is_tracking_param(key: str) -> bool:
    lowered = key.lower()
    return lowered in TRACKING_PARAMS or lowered.startswith(TRACKING_PREFIXES)


def _netloc(scheme: str, url: str) -> str:
    parts = urlsplit(url)
    host = (parts.hostname or "").lower()
    if ":" in host:
        host = f"[{host}]"
    try:
        port = parts.port
    except ValueError as exc:
        raise ValueError(f"Invalid port in URL: {url}") from exc
    userinfo = ""
    if parts.username:
        userinfo = parts.username
        if parts.password:
            userinfo += f":{parts.password}"
        userinfo += "@"
    if port is not None and DEFAULT_PORTS.get(scheme) != port:
        return f"{userinfo}{host}:{port}"
    return f"{userinfo}{host}"


def canonicalize_url(url: str, base: str | None = None) -> str:
    """Return the canonical form of ``url``.

    Lowercases scheme and host, drops default ports and the fragment, removes
    tracking parameters and sorts the remaining query parameters by key.
    Applying it twice yields the same string.
    """
    raw = url.strip()
    if base:
        raw = urljoin(base, raw)
    parts = urlsplit(raw)
    scheme = parts.scheme.lower()
    if scheme not in CRAWLABLE_SCHEMES:
        return urlunsplit((scheme, parts.netloc, parts.path, parts.query, ""))

    pairs = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if not is_tracking_param(key)
    ]
    pairs.sort(key=lambda pair: pair[0])
    return urlunsplit(
        (scheme, _netloc(scheme, raw), parts.path or "/", urlencode(pairs), "")
    )


def count_tracking_params(url: str) -> int:
    query = urlsplit(url).query
    return sum(1 for key, _ in parse_qsl(query, keep_blank_values=True) if is_tracking_param(key))


def drop_tracking_params(url: str) -> str:
    """Remove tracking parameters, keeping everything else as written."""
    parts = urlsplit(url)
    pairs = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if not is_tracking_param(key)
    ]
    return urlunsplit(
        (parts.scheme, parts.netloc, parts.path, urlencode(pairs), parts.fragment)
    )


def urls_equivalent(left: str, right: str) -> bool:
    try:
        return canonicalize_url(left) == canonicalize_url(right)
    except ValueError:
        return False


def _origin(url: str) -> tuple[str, str, int | None]:
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    port = parts.port if parts.port is not None else DEFAULT_PORTS.get(scheme)
    return scheme, (parts.hostname or "").lower(), port


def same_origin(left: str, right: str) -> bool:
    """True when both URLs share scheme, host and effective port."""
    try:
        return _origin(left) == _origin(right)
    except ValueError:
        return False
