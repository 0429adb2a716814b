"""URL canonicalisation used as the primary dedup key."""

from __future__ import annotations

from urllib.parse import unquote_plus, urlsplit, urlunsplit

TRACKING_PARAMS = frozenset(
    {
        # UTM family
        "utm_source",
        "utm_medium",
        "utm_campaign",
        "utm_term",
        "utm_content",
        "utm_id",
        # ad platform click ids
        "gclid",
        "fbclid",
        "msclkid",
        "yclid",
        # email campaigns
        "mc_cid",
        "mc_eid",
        "ref",
        "src",
    }
)

_DEFAULT_PORTS = {"http": 80, "https": 443}


def _is_tracking(pair: str) -> bool:
    # kept pairs are emitted verbatim
    key = unquote_plus(pair.partition("=")[0])
    return key.lower() in TRACKING_PARAMS


def canonicalize(url: str) -> str:
    """Strip tracking parameters and rebuild the URL deterministically.

    Relative or malformed URLs are returned unchanged.
    """

    if not url or not url.strip():
        return url
    try:
        parts = urlsplit(url.strip())
        port = parts.port
    except ValueError:
        return url
    host = parts.hostname
    if not parts.scheme or not host:
        return url

    scheme = parts.scheme.lower()
    netloc = f"[{host}]" if ":" in host else host
    if parts.username is not None:
        userinfo = parts.username
        if parts.password is not None:
            userinfo += f":{parts.password}"
        netloc = f"{userinfo}@{netloc}"
    if port is not None and port != _DEFAULT_PORTS.get(scheme):
        netloc += f":{port}"

    query = "&".join(pair for pair in parts.query.split("&") if pair and not _is_tracking(pair))
    return urlunsplit((scheme, netloc, parts.path or "/", query, parts.fragment))


__all__ = ["TRACKING_PARAMS", "canonicalize"]
