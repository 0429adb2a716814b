from __future__ import annotations

import asyncio
from datetime import timedelta

import httpx
import pytest

from ticker_news.config import AppSettings, HttpConfig
from ticker_news.infra import SQLiteManager
from ticker_news.models import RawArticle, utcnow
from ticker_news.service import build_runtime, open_repositories, serve


def _robots_missing(request: httpx.Request) -> httpx.Response:
    return httpx.Response(404)


@pytest.fixture
def repos(temp_config_repository):
    storage = SQLiteManager()
    yield open_repositories(temp_config_repository, storage)
    storage.close_all()


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(_robots_missing))


def test_open_repositories_seeds_catalog(repos, temp_config_repository) -> None:
    assert temp_config_repository.database_path().exists()
    names = [source.name for source in repos.sources.list()]
    assert "YahooFinance" in names
    entity = repos.watchlist.add("NYSE", "IBM")
    assert [link.source.name for link in repos.watchlist.sources_for(entity.id)] == ["YahooFinance"]


def test_apply_settings_updates_fetcher(repos, temp_config_repository, registry, notifier) -> None:
    runtime = build_runtime(
        temp_config_repository,
        repos,
        notifier=notifier,
        client=_client(),
        registry=registry,
        source_logger_factory=None,
    )
    temp_config_repository.save_settings(AppSettings(http=HttpConfig(user_agents=["ReloadedAgent/1.0"], retry_attempts=0)))

    runtime.apply_settings()

    assert runtime.fetcher.http.retry_attempts == 0
    assert runtime.fetcher.ua_pool.get() == "ReloadedAgent/1.0"


def test_serve_crawls_watchlist_until_stopped(repos, temp_config_repository, registry, stub_crawler, notifier) -> None:
    entity = repos.watchlist.add("NASDAQ", "MSFT", company_name="Microsoft")
    now = utcnow()
    stub_crawler.articles = [
        RawArticle("Microsoft raises dividend", "https://example.com/dividend", now - timedelta(minutes=3)),
        RawArticle("Microsoft signs cloud deal", "https://example.com/cloud", now - timedelta(minutes=9)),
    ]

    async def scenario() -> None:
        runtime = build_runtime(
            temp_config_repository,
            repos,
            notifier=notifier,
            client=_client(),
            registry=registry,
            source_logger_factory=None,
        )
        stop = asyncio.Event()
        server = asyncio.create_task(serve(runtime, stop))
        while len(notifier.sent) < 2:
            await asyncio.sleep(0.01)
        stop.set()
        await server

    asyncio.run(asyncio.wait_for(scenario(), timeout=10))

    assert [item.title for item in notifier.sent] == ["Microsoft raises dividend", "Microsoft signs cloud deal"]
    assert repos.news.count(entity.id) == 2
    yahoo = repos.sources.get_by_name("YahooFinance")
    state = repos.states.get(yahoo.id)
    assert state.robots_txt == ""
    assert state.consecutive_errors == 0
