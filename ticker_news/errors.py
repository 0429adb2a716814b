"""Exception hierarchy shared across the package."""

from __future__ import annotations


class TickerNewsError(Exception):
    """Base class for all ticker-news errors."""


class ConfigError(TickerNewsError):
    """Settings file is unreadable or fails validation."""


class FetchError(TickerNewsError):
    """A source fetch failed after exhausting its retries."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(f"{message}: {url}")
        self.url = url


class EntityNotFoundError(TickerNewsError):
    """A watched entity, source or news item does not exist."""


__all__ = ["ConfigError", "EntityNotFoundError", "FetchError", "TickerNewsError"]
