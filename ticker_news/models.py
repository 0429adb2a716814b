"""Domain records shared by the repositories, the engine and the crawlers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from urllib.parse import urlparse


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime | None) -> datetime | None:
    """Normalise naive values to UTC and aware values into UTC."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(slots=True)
class WatchedEntity:
    """A tracked exchange+symbol pair."""

    id: str
    exchange: str
    symbol: str
    company_name: str | None = None
    icon_url: str | None = None
    alerts_enabled: bool = True
    created_utc: datetime = field(default_factory=utcnow)

    @property
    def ticker(self) -> str:
        return f"{self.exchange}:{self.symbol}"


@dataclass(slots=True)
class Source:
    """Global catalog entry for a news origin."""

    id: int
    name: str
    base_url: str
    enabled: bool = True
    display_name: str | None = None

    @property
    def host(self) -> str:
        parsed = urlparse(self.base_url if "//" in self.base_url else f"//{self.base_url}")
        return (parsed.hostname or self.base_url).lower()


@dataclass(slots=True)
class WatchedSource:
    """Association between a watched entity and a source."""

    entity_id: str
    source: Source
    enabled: bool = True
    custom_query: str | None = None


@dataclass(slots=True)
class RawArticle:
    """An article as returned by a source crawler, before dedup."""

    title: str
    url: str
    published_utc: datetime | None = None
    summary: str | None = None


@dataclass(slots=True)
class NewsItem:
    id: str
    entity_id: str
    source_id: int
    title: str
    url: str
    canonical_url: str
    title_hash: str
    fetched_utc: datetime
    summary: str | None = None
    simhash64: int = 0
    published_utc: datetime | None = None
    is_read: bool = False
    notification_sent: bool = False

    @property
    def sort_time(self) -> datetime:
        return self.published_utc or self.fetched_utc


@dataclass(slots=True)
class CrawlState:
    """Per-source crawl bookkeeping persisted across restarts."""

    source_id: int
    last_crawl_utc: datetime | None = None
    requests_per_second: float = 1.0
    requests_per_minute: int = 10
    robots_txt: str | None = None
    robots_txt_fetched_utc: datetime | None = None
    consecutive_errors: int = 0
    last_error: str | None = None
    last_error_utc: datetime | None = None


__all__ = [
    "CrawlState",
    "NewsItem",
    "RawArticle",
    "Source",
    "WatchedEntity",
    "WatchedSource",
    "to_utc",
    "utcnow",
]
