from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from ticker_news.config import RateLimitConfig
from ticker_news.engine.rate_limit import RateLimit, RateLimiter, compute_wait, resolve_rate_limit
from ticker_news.models import CrawlState, utcnow


def test_min_interval_takes_stricter_limit() -> None:
    assert RateLimit(1.0, 60).min_interval == pytest.approx(1.0)
    assert RateLimit(1.0, 10).min_interval == pytest.approx(6.0)
    assert RateLimit(0.25, 600).min_interval == pytest.approx(4.0)


def test_wait_for_remainder_of_interval() -> None:
    now = utcnow()
    state = CrawlState(
        source_id=1,
        last_crawl_utc=now - timedelta(milliseconds=200),
        requests_per_second=1.0,
        requests_per_minute=60,
    )
    assert compute_wait(state, now) == pytest.approx(0.8)


def test_no_wait_without_previous_crawl_or_after_interval() -> None:
    now = utcnow()
    assert compute_wait(CrawlState(source_id=1), now) == 0.0
    state = CrawlState(source_id=1, last_crawl_utc=now - timedelta(seconds=30), requests_per_minute=10)
    assert compute_wait(state, now) == 0.0


def test_per_host_override_with_fallbacks() -> None:
    config = RateLimitConfig(
        requests_per_second=1.0,
        requests_per_minute=10,
        per_host={
            "finance.yahoo.com": {"requests_per_second": 0.5, "requests_per_minute": 0},
            "www.reuters.com": {"requests_per_minute": 30},
        },
    )
    assert resolve_rate_limit(config, "Finance.Yahoo.com") == RateLimit(0.5, 10)
    assert resolve_rate_limit(config, "www.reuters.com") == RateLimit(1.0, 30)
    assert resolve_rate_limit(config, "unknown.example") == RateLimit(1.0, 10)


def test_rate_limiter_sleeps_remaining_time() -> None:
    now = utcnow()
    slept: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        slept.append(seconds)

    limiter = RateLimiter(sleep=fake_sleep, clock=lambda: now)
    state = CrawlState(source_id=1, last_crawl_utc=now - timedelta(seconds=2), requests_per_minute=10)

    waited = asyncio.run(limiter.wait(state))
    assert waited == pytest.approx(4.0)
    assert slept == [pytest.approx(4.0)]

    slept.clear()
    asyncio.run(limiter.wait(CrawlState(source_id=1)))
    assert slept == []
