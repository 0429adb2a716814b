"""Job queue guaranteeing at most one queued-or-running crawl per watched entity."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator

import structlog


class CrawlScheduler:
    """Unbounded FIFO of entity IDs keyed on an in-flight set.

    An entity stays in the in-flight set from ``enqueue`` until the consumer
    calls ``mark_completed``; further ``enqueue`` calls in between are no-ops.
    All methods run on the event loop thread, so the set needs no lock.
    """

    def __init__(self, logger: structlog.BoundLogger | None = None) -> None:
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._in_flight: set[str] = set()
        self.logger = logger or structlog.get_logger("ticker_news.scheduler").bind(component="scheduler")

    def enqueue(self, entity_id: str) -> bool:
        if entity_id in self._in_flight:
            self.logger.debug("job_already_in_flight", entity_id=entity_id)
            return False
        self._in_flight.add(entity_id)
        try:
            self._queue.put_nowait(entity_id)
        except Exception as exc:  # noqa: BLE001
            self._in_flight.discard(entity_id)
            self.logger.error("job_enqueue_failed", entity_id=entity_id, error=str(exc))
            return False
        self.logger.debug("job_enqueued", entity_id=entity_id, pending=self._queue.qsize())
        return True

    def mark_completed(self, entity_id: str) -> None:
        self._in_flight.discard(entity_id)

    def is_in_flight(self, entity_id: str) -> bool:
        return entity_id in self._in_flight

    @property
    def pending(self) -> int:
        """Jobs waiting in the queue, not counting one being processed."""

        return self._queue.qsize()

    async def next_job(self) -> str:
        entity_id = await self._queue.get()
        self._queue.task_done()
        return entity_id

    def __aiter__(self) -> AsyncIterator[str]:
        return self._jobs()

    async def _jobs(self) -> AsyncIterator[str]:
        while True:
            yield await self.next_job()


__all__ = ["CrawlScheduler"]
