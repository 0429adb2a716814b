"""Infra layer utilities (storage, repositories, UA pool)."""

from .repositories import (
    CrawlStateRepository,
    NewsRepository,
    SourceRepository,
    WatchlistRepository,
)
from .storage import SQLiteManager
from .ua_pool import UserAgentPool

__all__ = [
    "CrawlStateRepository",
    "NewsRepository",
    "SQLiteManager",
    "SourceRepository",
    "UserAgentPool",
    "WatchlistRepository",
]
