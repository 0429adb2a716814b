"""Parse the publish-time labels found on source listing pages."""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from email.utils import parsedate_to_datetime

from ..models import to_utc, utcnow

_RELATIVE = re.compile(r"(\d+)\s*(m|h|d|minute|hour|day)s?\s*ago", re.IGNORECASE)
_ABSOLUTE_FORMATS = ("%B %d, %Y", "%b %d, %Y", "%Y-%m-%d %H:%M", "%m/%d/%Y")


def parse_relative(text: str, anchor: datetime) -> datetime | None:
    """``"33m ago"``, ``"2 hours ago"``, ``"3d ago"`` relative to ``anchor``."""

    match = _RELATIVE.search(text or "")
    if not match:
        return None
    value = int(match.group(1))
    unit = match.group(2).lower()[0]
    if unit == "m":
        return anchor - timedelta(minutes=value)
    if unit == "h":
        return anchor - timedelta(hours=value)
    return anchor - timedelta(days=value)


def parse_absolute(text: str) -> datetime | None:
    """ISO 8601, RFC 2822 and a few listing formats; naive values are taken as UTC."""

    text = (text or "").strip()
    if not text:
        return None
    try:
        return to_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass
    try:
        return to_utc(parsedate_to_datetime(text))
    except (TypeError, ValueError, IndexError):
        pass
    for fmt in _ABSOLUTE_FORMATS:
        try:
            return to_utc(datetime.strptime(text, fmt))
        except ValueError:
            continue
    return None


def parse_time(text: str, anchor: datetime | None = None) -> datetime | None:
    if not text or not text.strip():
        return None
    anchor = to_utc(anchor) or utcnow()
    return parse_relative(text, anchor) or parse_absolute(text)


__all__ = ["parse_absolute", "parse_relative", "parse_time"]
