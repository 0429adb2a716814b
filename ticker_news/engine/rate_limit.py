"""Per-source request budget: limit resolution and inter-request delay."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable

from ..config import RateLimitConfig
from ..models import CrawlState, utcnow


@dataclass(frozen=True, slots=True)
class RateLimit:
    requests_per_second: float
    requests_per_minute: int

    @property
    def min_interval(self) -> float:
        """Seconds that must separate two crawls of the same source."""

        return max(1.0 / self.requests_per_second, 60.0 / self.requests_per_minute)


def resolve_rate_limit(config: RateLimitConfig, host: str) -> RateLimit:
    """Apply the per-host override for ``host`` on top of the global defaults."""

    rps = config.requests_per_second
    rpm = config.requests_per_minute
    override = config.per_host.get((host or "").lower())
    if override is not None:
        if override.requests_per_second is not None and override.requests_per_second > 0:
            rps = override.requests_per_second
        if override.requests_per_minute is not None and override.requests_per_minute > 0:
            rpm = override.requests_per_minute
    return RateLimit(requests_per_second=rps, requests_per_minute=rpm)


def compute_wait(state: CrawlState, now: datetime | None = None) -> float:
    """Seconds to wait before the source described by ``state`` may be crawled."""

    if state.last_crawl_utc is None:
        return 0.0
    limit = RateLimit(state.requests_per_second, state.requests_per_minute)
    elapsed = ((now or utcnow()) - state.last_crawl_utc).total_seconds()
    return max(0.0, limit.min_interval - elapsed)


class RateLimiter:
    """Sleep out the remainder of a source's minimum interval."""

    def __init__(
        self,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._sleep = sleep
        self._clock = clock

    async def wait(self, state: CrawlState) -> float:
        delay = compute_wait(state, self._clock())
        if delay > 0:
            await self._sleep(delay)
        return delay


__all__ = ["RateLimit", "RateLimiter", "compute_wait", "resolve_rate_limit"]
