"""Async HTTP fetching with anti-bot strategy integration."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict

import httpx
import structlog

from ..config import HttpConfig
from ..errors import FetchError
from ..infra import UserAgentPool
from .antibot import strategies
from .antibot.chain import AntiBotChain, AntiBotContext


@dataclass(slots=True)
class FetchRequest:
    """One GET against a source or its robots.txt."""

    url: str
    params: dict[str, Any] | None = None
    headers: dict[str, str] | None = None
    referer: str | None = None
    timeout: float | None = None
    # statuses handed back to the caller instead of being treated as failures
    accept_statuses: frozenset[int] = frozenset()


@dataclass(slots=True)
class FetchResponse:
    """Decoded response handed back to crawlers and the robots cache."""

    url: str
    status_code: int
    text: str
    headers: Dict[str, str]
    raw: httpx.Response | None = field(repr=False, default=None)


class Fetcher:
    """Coordinate request execution and the anti-bot strategy chain."""

    def __init__(
        self,
        http: HttpConfig,
        ua_pool: UserAgentPool | None = None,
        client: httpx.AsyncClient | None = None,
        logger: structlog.BoundLogger | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.http = http
        self.ua_pool = ua_pool or UserAgentPool(http.user_agents)
        self.logger = logger or structlog.get_logger("ticker_news.fetcher")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            follow_redirects=True,
            timeout=http.timeout_seconds,
        )
        self._sleep = sleep

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "Fetcher":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def update_config(self, http: HttpConfig) -> None:
        """Pick up reloaded HTTP settings for subsequent requests."""

        self.http = http
        if http.user_agents:
            self.ua_pool.refresh(http.user_agents)

    async def fetch(self, request: FetchRequest) -> FetchResponse:
        context, chain = self._build_chain(request.referer)
        while True:
            directive = chain.prepare(context)
            req_headers = directive.merged_headers(request.headers)
            timeout = request.timeout or directive.timeout or self.http.timeout_seconds

            if directive.delay:
                await self._sleep(directive.delay)

            try:
                response = await self._client.get(
                    request.url,
                    params=request.params,
                    headers=req_headers,
                    timeout=timeout,
                )
            except httpx.HTTPError as exc:
                self.logger.warning(
                    "fetch_error",
                    url=request.url,
                    attempt=context.attempt,
                    error=str(exc),
                )
                chain.notify_failure(context, None, exc)
            else:
                if response.status_code in request.accept_statuses or not response.is_error:
                    chain.notify_success(context, response)
                    return FetchResponse(
                        url=str(response.url),
                        status_code=response.status_code,
                        text=response.text,
                        headers=dict(response.headers),
                        raw=response,
                    )
                if not self._is_retryable(response):
                    raise FetchError(request.url, f"Unexpected status {response.status_code}")
                self.logger.warning(
                    "fetch_retryable_status",
                    url=request.url,
                    attempt=context.attempt,
                    status=response.status_code,
                )
                chain.notify_failure(context, response, None)

            if not chain.should_retry(context):
                break

        raise FetchError(
            request.url,
            f"Fetch failed after {context.max_attempts} attempts ({context.describe_failure()})",
        ) from context.last_exception

    async def get_text(self, url: str, referer: str | None = None) -> str:
        response = await self.fetch(FetchRequest(url=url, referer=referer))
        return response.text

    def _build_chain(self, referer: str | None) -> tuple[AntiBotContext, AntiBotChain]:
        return strategies.build_chain(self.http, self.ua_pool, referer)

    @staticmethod
    def _is_retryable(response: httpx.Response) -> bool:
        return response.status_code >= 500 or response.status_code == 429


__all__ = ["FetchRequest", "FetchResponse", "Fetcher"]
