"""Request shaping for one logical fetch: attempt bookkeeping plus pluggable strategies."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

import httpx

from ...config import HttpConfig


@dataclass
class RequestDirective:
    """What the next attempt should send, and how long to wait before sending it."""

    headers: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None
    delay: float | None = None

    def merged_headers(self, overrides: dict[str, str] | None) -> dict[str, str]:
        merged = dict(self.headers)
        if overrides:
            merged.update(overrides)
        return merged


@dataclass
class AntiBotContext:
    """Attempt counter and last outcome of a single fetch, across its retries."""

    http: HttpConfig
    referer: str | None = None
    attempt: int = 1
    max_attempts: int = 1
    retry_delay: float = 0.0
    last_response: httpx.Response | None = None
    last_exception: Exception | None = None

    @property
    def exhausted(self) -> bool:
        return self.attempt > self.max_attempts

    def describe_failure(self) -> str:
        if self.last_exception is not None:
            return str(self.last_exception) or type(self.last_exception).__name__
        if self.last_response is not None:
            return f"status {self.last_response.status_code}"
        return "no response"


class Strategy:
    """Base strategy; hooks default to no-ops so subclasses override only what they use."""

    def before_request(self, context: AntiBotContext, directive: RequestDirective) -> None:
        return None

    def after_success(self, context: AntiBotContext, response: httpx.Response) -> None:
        return None

    def after_failure(
        self,
        context: AntiBotContext,
        response: httpx.Response | None,
        error: Exception | None,
    ) -> None:
        return None


class AntiBotChain:
    """Run strategies in registration order around every attempt."""

    def __init__(self, strategies: Iterable[Strategy] = ()) -> None:
        self.strategies: list[Strategy] = list(strategies)

    def prepare(self, context: AntiBotContext) -> RequestDirective:
        directive = RequestDirective()
        for strategy in self.strategies:
            strategy.before_request(context, directive)
        return directive

    def notify_success(self, context: AntiBotContext, response: httpx.Response) -> None:
        context.last_response, context.last_exception = response, None
        for strategy in self.strategies:
            strategy.after_success(context, response)

    def notify_failure(
        self,
        context: AntiBotContext,
        response: httpx.Response | None,
        error: Exception | None,
    ) -> None:
        context.last_response, context.last_exception = response, error
        for strategy in self.strategies:
            strategy.after_failure(context, response, error)

    def should_retry(self, context: AntiBotContext) -> bool:
        return not context.exhausted


__all__ = ["AntiBotChain", "AntiBotContext", "RequestDirective", "Strategy"]
