"""Periodic producer that re-enqueues every watched entity."""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable

import structlog

from ..config import ConfigRepository, MIN_POLL_SLEEP_SECONDS, PollingConfig
from ..infra.repositories import WatchlistRepository
from .queue import CrawlScheduler

ERROR_BACKOFF_SECONDS = 30.0


def next_delay(polling: PollingConfig, rng: random.Random | None = None) -> float:
    """``interval ± jitter`` with the configured floors applied."""

    jitter = polling.effective_jitter
    offset = (rng or random).uniform(-jitter, jitter) if jitter else 0.0
    return max(float(MIN_POLL_SLEEP_SECONDS), polling.effective_interval + offset)


class WatchlistPoller:
    def __init__(
        self,
        watchlist: WatchlistRepository,
        scheduler: CrawlScheduler,
        config_repository: ConfigRepository,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.watchlist = watchlist
        self.scheduler = scheduler
        self.config_repository = config_repository
        self._sleep = sleep
        self._rng = rng
        self.logger = logger or structlog.get_logger("ticker_news.poller").bind(component="poller")

    def poll_once(self) -> int:
        """Enqueue every watched entity; returns how many jobs were actually queued."""

        queued = 0
        entities = self.watchlist.list()
        for entity in entities:
            if self.scheduler.enqueue(entity.id):
                queued += 1
        self.logger.info("poll_cycle", watched=len(entities), queued=queued)
        return queued

    async def run(self) -> None:
        self.logger.info("poller_started")
        while True:
            try:
                self.poll_once()
                # settings are re-read each cycle so edits apply without restart
                polling = self.config_repository.load_settings().polling
                delay = next_delay(polling, self._rng)
                self.logger.debug("poller_sleeping", seconds=round(delay, 1))
                await self._sleep(delay)
            except asyncio.CancelledError:
                self.logger.info("poller_stopped")
                raise
            except Exception as exc:  # noqa: BLE001
                self.logger.error("poller_error", error=str(exc), backoff=ERROR_BACKOFF_SECONDS)
                try:
                    await self._sleep(ERROR_BACKOFF_SECONDS)
                except asyncio.CancelledError:
                    self.logger.info("poller_stopped")
                    raise


__all__ = ["ERROR_BACKOFF_SECONDS", "WatchlistPoller", "next_delay"]
