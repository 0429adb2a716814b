from __future__ import annotations

import asyncio

import pytest

from ticker_news.scheduler import CrawlScheduler


def test_enqueue_is_noop_while_in_flight() -> None:
    scheduler = CrawlScheduler()
    assert scheduler.enqueue("e1") is True
    assert scheduler.enqueue("e1") is False
    assert scheduler.enqueue("e2") is True
    assert scheduler.pending == 2
    assert scheduler.is_in_flight("e1")


def test_entity_stays_in_flight_until_completed() -> None:
    async def scenario() -> list[bool]:
        scheduler = CrawlScheduler()
        scheduler.enqueue("e1")
        job = await scheduler.next_job()
        # dequeued but still running
        results = [scheduler.enqueue(job), scheduler.is_in_flight(job)]
        scheduler.mark_completed(job)
        results += [scheduler.is_in_flight(job), scheduler.enqueue(job)]
        return results

    assert asyncio.run(scenario()) == [False, True, False, True]


def test_failed_put_rolls_back_in_flight(monkeypatch: pytest.MonkeyPatch) -> None:
    scheduler = CrawlScheduler()

    def broken_put(_item: str) -> None:
        raise asyncio.QueueFull()

    monkeypatch.setattr(scheduler._queue, "put_nowait", broken_put)
    assert scheduler.enqueue("e1") is False
    assert not scheduler.is_in_flight("e1")
    assert scheduler.pending == 0


def test_async_iteration_is_fifo() -> None:
    async def scenario() -> list[str]:
        scheduler = CrawlScheduler()
        for entity_id in ("a", "b", "c"):
            scheduler.enqueue(entity_id)
        seen: list[str] = []
        async for entity_id in scheduler:
            seen.append(entity_id)
            scheduler.mark_completed(entity_id)
            if len(seen) == 3:
                break
        return seen

    assert asyncio.run(scenario()) == ["a", "b", "c"]


def test_mark_completed_unknown_entity_is_harmless() -> None:
    scheduler = CrawlScheduler()
    scheduler.mark_completed("missing")
    assert scheduler.pending == 0
