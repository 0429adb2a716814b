"""Concrete request strategies used by the chain."""

from __future__ import annotations

import random

import httpx

from ...config import HttpConfig
from ...infra import UserAgentPool
from .chain import AntiBotChain, AntiBotContext, RequestDirective, Strategy

BROWSER_HEADERS = {
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,"
        "image/avif,image/webp,image/apng,*/*;q=0.8"
    ),
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "sec-ch-ua": '"Not A(Brand";v="8", "Chromium";v="120", "Google Chrome";v="120"',
    "sec-ch-ua-mobile": "?0",
    "sec-ch-ua-platform": '"Windows"',
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "same-origin",
    "Sec-Fetch-User": "?1",
    "Upgrade-Insecure-Requests": "1",
}


class BrowserHeadersStrategy(Strategy):
    """Send the header set of a desktop browser so sources are less likely to block us."""

    def before_request(self, context: AntiBotContext, directive: RequestDirective) -> None:
        for name, value in BROWSER_HEADERS.items():
            directive.headers.setdefault(name, value)
        if context.referer:
            directive.headers.setdefault("Referer", context.referer)
        directive.timeout = context.http.timeout_seconds


class UserAgentStrategy(Strategy):
    """Pick a user agent from the pool for every attempt."""

    def __init__(self, pool: UserAgentPool | None) -> None:
        self.pool = pool or UserAgentPool()

    def before_request(self, context: AntiBotContext, directive: RequestDirective) -> None:
        directive.headers.setdefault("User-Agent", self.pool.get())


class RetryStrategy(Strategy):
    """Exponential backoff with jitter: roughly base, 2*base, 4*base between attempts."""

    def before_request(self, context: AntiBotContext, directive: RequestDirective) -> None:
        context.max_attempts = max(1, context.http.retry_attempts + 1)
        if context.attempt > 1:
            directive.delay = context.retry_delay

    def after_success(self, context: AntiBotContext, response: httpx.Response) -> None:
        context.attempt = 1
        context.retry_delay = 0.0

    def after_failure(self, context: AntiBotContext, response: httpx.Response | None, error: Exception | None) -> None:
        base = context.http.backoff_seconds * (2 ** (context.attempt - 1))
        context.retry_delay = base * random.uniform(0.8, 1.2)
        context.attempt += 1


def build_chain(
    http: HttpConfig,
    ua_pool: UserAgentPool | None,
    referer: str | None = None,
) -> tuple[AntiBotContext, AntiBotChain]:
    """Utility to build a ready-to-use chain from config."""

    context = AntiBotContext(http=http, referer=referer)
    strategies: list[Strategy] = [
        RetryStrategy(),
        UserAgentStrategy(ua_pool),
        BrowserHeadersStrategy(),
    ]
    return context, AntiBotChain(strategies)


__all__ = [
    "BROWSER_HEADERS",
    "BrowserHeadersStrategy",
    "RetryStrategy",
    "UserAgentStrategy",
    "build_chain",
]
