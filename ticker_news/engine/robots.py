"""robots.txt cache kept on the crawl state of each source."""

from __future__ import annotations

from datetime import datetime, timedelta

import structlog

from ..config import RobotsConfig
from ..errors import FetchError
from ..infra.repositories import CrawlStateRepository
from ..models import CrawlState, utcnow
from .fetcher import FetchRequest, Fetcher

# a missing robots.txt means "no restrictions"; cache it as empty text
_ABSENT_STATUSES = frozenset({404, 410})


def is_fresh(state: CrawlState, cache_hours: float, now: datetime | None = None) -> bool:
    if state.robots_txt is None or state.robots_txt_fetched_utc is None:
        return False
    age = (now or utcnow()) - state.robots_txt_fetched_utc
    return age < timedelta(hours=cache_hours)


class RobotsCache:
    def __init__(
        self,
        fetcher: Fetcher,
        states: CrawlStateRepository,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.states = states
        self.logger = logger or structlog.get_logger("ticker_news.robots").bind(component="robots")

    async def ensure(self, state: CrawlState, host: str, config: RobotsConfig) -> bool:
        """Refresh the cached robots.txt when stale. Returns whether a fetch happened.

        Fetch failures are logged and leave the previous cache untouched.
        """

        now = utcnow()
        if is_fresh(state, config.cache_hours, now):
            return False
        url = f"https://{host}/robots.txt"
        try:
            response = await self.fetcher.fetch(
                FetchRequest(url=url, accept_statuses=_ABSENT_STATUSES)
            )
        except FetchError as exc:
            self.logger.warning("robots_fetch_failed", host=host, error=str(exc))
            return True
        text = "" if response.status_code in _ABSENT_STATUSES else response.text
        text = text[: config.max_chars]
        self.states.save_robots(state.source_id, text, now)
        state.robots_txt = text
        state.robots_txt_fetched_utc = now
        self.logger.info("robots_refreshed", host=host, chars=len(text))
        return True


__all__ = ["RobotsCache", "is_fresh"]
