from __future__ import annotations

import asyncio
import sqlite3
from datetime import timedelta

import httpx
import pytest

from ticker_news.crawlers import SourceCrawler
from ticker_news.engine import IngestionEngine, NotificationDispatcher, RateLimiter, RobotsCache
from ticker_news.models import RawArticle, utcnow
from ticker_news.orchestrator import CrawlOrchestrator
from ticker_news.scheduler import CrawlScheduler


class _SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleeper() -> _SleepRecorder:
    return _SleepRecorder()


@pytest.fixture
def build_orchestrator(watchlist, states, news, registry, notifier, temp_config_repository, sleeper):
    def _build(robots: RobotsCache | None = None) -> CrawlOrchestrator:
        return CrawlOrchestrator(
            scheduler=CrawlScheduler(),
            watchlist=watchlist,
            states=states,
            registry=registry,
            ingestion=IngestionEngine(news),
            dispatcher=NotificationDispatcher(news, notifier),
            config_repository=temp_config_repository,
            robots=robots,
            rate_limiter=RateLimiter(sleep=sleeper),
        )

    return _build


@pytest.fixture
def orchestrator(build_orchestrator) -> CrawlOrchestrator:
    return build_orchestrator()


@pytest.fixture
def yahoo(sources):
    return sources.get_by_name("YahooFinance")


def _articles() -> list[RawArticle]:
    now = utcnow()
    return [
        RawArticle("Microsoft beats estimates", "https://example.com/a?utm_source=yahoo", now - timedelta(minutes=5)),
        RawArticle("Azure revenue jumps", "https://example.com/b", now - timedelta(minutes=1)),
    ]


def _crawl(orchestrator: CrawlOrchestrator, entity_id: str):
    orchestrator.crawl_now(entity_id)
    [summary] = asyncio.run(orchestrator.drain())
    return summary


def test_new_articles_are_stored_and_notified(orchestrator, stub_crawler, notifier, news, msft) -> None:
    stub_crawler.articles = _articles()

    summary = _crawl(orchestrator, msft.id)

    assert summary.ticker == "NASDAQ:MSFT"
    assert summary.new_items == {"YahooFinance": 2}
    assert news.count(msft.id) == 2
    assert [item.title for item in notifier.sent] == ["Azure revenue jumps", "Microsoft beats estimates"]
    assert stub_crawler.fetched == ["https://stub.test/MSFT"]

    # same articles again: nothing new, nothing sent
    again = _crawl(orchestrator, msft.id)
    assert again.total_new == 0
    assert news.count(msft.id) == 2
    assert len(notifier.sent) == 2


def test_failure_counts_once_and_success_resets(orchestrator, stub_crawler, states, yahoo, msft) -> None:
    stub_crawler.error = RuntimeError("upstream timed out")

    summary = _crawl(orchestrator, msft.id)
    assert summary.failures == {"YahooFinance": "upstream timed out"}
    state = states.get(yahoo.id)
    assert state.consecutive_errors == 1
    assert state.last_error == "upstream timed out"
    assert state.last_crawl_utc is None

    _crawl(orchestrator, msft.id)
    assert states.get(yahoo.id).consecutive_errors == 2

    stub_crawler.error = None
    stub_crawler.articles = _articles()
    summary = _crawl(orchestrator, msft.id)
    assert summary.failures == {}
    state = states.get(yahoo.id)
    assert state.consecutive_errors == 0
    assert state.last_error is None
    assert state.last_crawl_utc is not None


def test_failing_source_does_not_stop_other_sources(build_orchestrator, watchlist, stub_crawler, registry, msft) -> None:
    class BrokenReuters(SourceCrawler):
        name = "Reuters"
        base_host = "www.reuters.com"

        def build_query_urls(self, entity, custom_query=None):
            return ["https://www.reuters.com/markets"]

        async def fetch(self, url):
            raise RuntimeError("blocked")

    registry.register(BrokenReuters())
    watchlist.set_source(msft.id, "Reuters", enabled=True)
    stub_crawler.articles = _articles()

    summary = _crawl(build_orchestrator(), msft.id)

    assert summary.failures == {"Reuters": "blocked"}
    assert summary.new_items == {"YahooFinance": 2}


def test_unmatched_and_disabled_sources_are_skipped(orchestrator, watchlist, stub_crawler, msft) -> None:
    watchlist.set_source(msft.id, "WSJ", enabled=True)

    summary = _crawl(orchestrator, msft.id)
    assert summary.skipped == ["WSJ"]
    assert stub_crawler.fetched == ["https://stub.test/MSFT"]

    watchlist.set_source(msft.id, "YahooFinance", enabled=False)
    summary = _crawl(orchestrator, msft.id)
    assert sorted(summary.skipped) == ["WSJ", "YahooFinance"]
    assert len(stub_crawler.fetched) == 1


def test_globally_disabled_source_is_skipped(orchestrator, sources, stub_crawler, msft) -> None:
    sources.set_enabled("YahooFinance", False)
    summary = _crawl(orchestrator, msft.id)
    assert summary.skipped == ["YahooFinance"]
    assert stub_crawler.fetched == []


def test_custom_query_reaches_crawler(orchestrator, watchlist, stub_crawler, msft) -> None:
    watchlist.set_source(msft.id, "YahooFinance", enabled=True, custom_query="MSFT.MX")
    _crawl(orchestrator, msft.id)
    assert stub_crawler.queries == ["MSFT.MX"]


def test_alerts_disabled_skips_notifications(orchestrator, watchlist, stub_crawler, notifier, news, msft) -> None:
    watchlist.set_alerts(msft.id, False)
    stub_crawler.articles = _articles()

    summary = _crawl(orchestrator, msft.id)

    assert summary.total_new == 2
    assert notifier.sent == []
    assert summary.notified == []
    assert len(news.list_unsent(msft.id, 10)) == 2


def test_missing_entity_completes_job(orchestrator) -> None:
    orchestrator.crawl_now("no-such-entity")
    [summary] = asyncio.run(orchestrator.drain())
    assert summary.found is False
    assert not orchestrator.scheduler.is_in_flight("no-such-entity")


def test_crawl_now_deduplicates_queued_jobs(orchestrator, msft) -> None:
    assert orchestrator.crawl_now(msft.id) is True
    assert orchestrator.crawl_now(msft.id) is False
    summaries = asyncio.run(orchestrator.drain())
    assert len(summaries) == 1
    assert orchestrator.crawl_now(msft.id) is True


def test_rate_limit_waits_between_crawls(orchestrator, sleeper, msft) -> None:
    _crawl(orchestrator, msft.id)
    assert sleeper.calls == []

    _crawl(orchestrator, msft.id)
    # defaults: 1 rps and 10 rpm, so crawls are at least 6s apart
    assert len(sleeper.calls) == 1
    assert 5.0 < sleeper.calls[0] <= 6.0


def test_robots_cached_before_crawl(build_orchestrator, make_fetcher, stub_crawler, states, yahoo, msft) -> None:
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(str(request.url))
        return httpx.Response(200, text="User-agent: *\nDisallow: /private\n")

    robots = RobotsCache(make_fetcher(handler), states)
    orchestrator = build_orchestrator(robots=robots)
    stub_crawler.articles = _articles()

    _crawl(orchestrator, msft.id)
    _crawl(orchestrator, msft.id)

    assert requested == ["https://finance.yahoo.com/robots.txt"]
    assert states.get(yahoo.id).robots_txt.startswith("User-agent: *")


def test_robots_failure_does_not_fail_crawl(build_orchestrator, make_fetcher, stub_crawler, states, yahoo, msft) -> None:
    robots = RobotsCache(make_fetcher(lambda request: httpx.Response(403)), states)
    orchestrator = build_orchestrator(robots=robots)
    stub_crawler.articles = _articles()

    summary = _crawl(orchestrator, msft.id)

    assert summary.failures == {}
    assert summary.new_items == {"YahooFinance": 2}
    assert states.get(yahoo.id).robots_txt is None


def test_run_survives_failing_job_and_stops_on_cancel(orchestrator, stub_crawler, msft) -> None:
    stub_crawler.articles = _articles()
    handled: list[str] = []
    original = orchestrator.process

    async def flaky(entity_id: str):
        handled.append(entity_id)
        if entity_id == "poison":
            orchestrator.scheduler.mark_completed(entity_id)
            raise RuntimeError("unexpected")
        return await original(entity_id)

    orchestrator.process = flaky

    async def scenario() -> None:
        orchestrator.crawl_now("poison")
        orchestrator.crawl_now(msft.id)
        task = asyncio.create_task(orchestrator.run())
        while len(handled) < 2 or orchestrator.scheduler.is_in_flight(msft.id):
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(asyncio.wait_for(scenario(), timeout=5))

    assert handled == ["poison", msft.id]
    assert stub_crawler.fetched == ["https://stub.test/MSFT"]


class _TwoPageCrawler(SourceCrawler):
    """Serves ``articles`` for the first listing page and fails on the second."""

    name = "YahooFinance"
    base_host = "finance.yahoo.com"

    def __init__(self, articles: list[RawArticle]) -> None:
        self.articles = articles
        self.fetched: list[str] = []

    def build_query_urls(self, entity, custom_query=None):
        return [f"https://stub.test/{entity.symbol}?page=1", f"https://stub.test/{entity.symbol}?page=2"]

    async def fetch(self, url):
        self.fetched.append(url)
        if url.endswith("page=2"):
            raise RuntimeError("page 2 unavailable")
        return list(self.articles)


def test_items_stored_before_a_failing_page_are_notified(
    build_orchestrator, registry, notifier, news, states, yahoo, msft
) -> None:
    crawler = _TwoPageCrawler(_articles())
    registry.register(crawler)

    summary = _crawl(build_orchestrator(), msft.id)

    assert len(crawler.fetched) == 2
    assert summary.failures == {"YahooFinance": "page 2 unavailable"}
    assert summary.new_items == {}
    assert summary.partial_new == {"YahooFinance": 2}
    assert summary.total_new == 2
    assert news.count(msft.id) == 2
    assert len(notifier.sent) == 2
    assert news.list_unsent(msft.id, 10) == []
    state = states.get(yahoo.id)
    assert state.consecutive_errors == 1
    assert state.last_crawl_utc is None


def test_state_store_failure_only_fails_that_source(
    orchestrator, watchlist, states, registry, stub_crawler, monkeypatch, yahoo, msft
) -> None:
    class Reuters(SourceCrawler):
        name = "Reuters"
        base_host = "www.reuters.com"

        def __init__(self) -> None:
            self.fetched: list[str] = []

        def build_query_urls(self, entity, custom_query=None):
            return ["https://www.reuters.com/markets"]

        async def fetch(self, url):
            self.fetched.append(url)
            return [RawArticle("Reuters story", "https://example.com/r", utcnow())]

    reuters = Reuters()
    registry.register(reuters)
    watchlist.set_source(msft.id, "Reuters", enabled=True)
    stub_crawler.articles = _articles()
    original = states.resolve

    def resolve(source_id, *args, **kwargs):
        if source_id == yahoo.id:
            raise sqlite3.OperationalError("database is locked")
        return original(source_id, *args, **kwargs)

    def record_failure(*args, **kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(states, "resolve", resolve)
    monkeypatch.setattr(states, "record_failure", record_failure)

    summary = _crawl(orchestrator, msft.id)

    assert summary.failures == {"YahooFinance": "database is locked"}
    assert summary.new_items == {"Reuters": 1}
    assert stub_crawler.fetched == []
    assert reuters.fetched == ["https://www.reuters.com/markets"]
    assert not orchestrator.scheduler.is_in_flight(msft.id)


def test_cancelled_crawl_leaves_crawl_state_untouched(orchestrator, registry, states, yahoo, msft) -> None:
    class HangingCrawler(SourceCrawler):
        name = "YahooFinance"
        base_host = "finance.yahoo.com"

        def __init__(self) -> None:
            self.started = asyncio.Event()

        def build_query_urls(self, entity, custom_query=None):
            return ["https://stub.test/hang"]

        async def fetch(self, url):
            self.started.set()
            await asyncio.Event().wait()
            return []

    crawler = HangingCrawler()
    registry.register(crawler)

    async def scenario() -> None:
        orchestrator.crawl_now(msft.id)
        task = asyncio.create_task(orchestrator.run())
        await crawler.started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(asyncio.wait_for(scenario(), timeout=5))

    state = states.get(yahoo.id)
    assert state.consecutive_errors == 0
    assert state.last_error is None
    assert state.last_crawl_utc is None
    assert not orchestrator.scheduler.is_in_flight(msft.id)
