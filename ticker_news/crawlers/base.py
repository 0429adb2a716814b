"""Source crawler Service Provider Interface and name registry."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable

from ..models import RawArticle, WatchedEntity


class SourceCrawler(ABC):
    """Uniform crawler contract enabling plug-and-play news sources.

    ``fetch`` raising is a per-source failure; an empty list is a normal
    zero-item outcome.
    """

    name: str = ""
    base_host: str = ""

    @abstractmethod
    def build_query_urls(self, entity: WatchedEntity, custom_query: str | None = None) -> list[str]:
        """Listing URLs to crawl for ``entity``."""

    @abstractmethod
    async def fetch(self, url: str) -> list[RawArticle]:
        """Fetch and parse one listing URL."""


class CrawlerRegistry:
    """Crawler lookup by source name, case-insensitive."""

    def __init__(self, crawlers: Iterable[SourceCrawler] = ()) -> None:
        self._crawlers: dict[str, SourceCrawler] = {}
        for crawler in crawlers:
            self.register(crawler)

    def register(self, crawler: SourceCrawler) -> None:
        self._crawlers[crawler.name.lower()] = crawler

    def get(self, name: str) -> SourceCrawler | None:
        return self._crawlers.get((name or "").lower())

    def names(self) -> list[str]:
        return sorted(crawler.name for crawler in self._crawlers.values())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._crawlers

    def __len__(self) -> int:
        return len(self._crawlers)


__all__ = ["CrawlerRegistry", "SourceCrawler"]
