"""Shared fixtures: isolated home directory, database, repositories and test doubles."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Callable, Iterable

import httpx
import pytest

from ticker_news.config import ConfigLocator, ConfigRepository, HttpConfig
from ticker_news.crawlers import CrawlerRegistry, SourceCrawler
from ticker_news.engine import Fetcher
from ticker_news.infra import (
    CrawlStateRepository,
    NewsRepository,
    SQLiteManager,
    SourceRepository,
    WatchlistRepository,
)
from ticker_news.models import NewsItem, RawArticle, WatchedEntity
from ticker_news.notifiers import Notifier


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("TICKER_NEWS_HOME", str(tmp_path))
    return tmp_path


@pytest.fixture
def temp_config_repository(tmp_path: Path) -> ConfigRepository:
    return ConfigRepository(ConfigLocator(project_root=tmp_path))


@pytest.fixture
def db(tmp_path: Path) -> Iterable[sqlite3.Connection]:
    storage = SQLiteManager()
    conn = storage.connect(tmp_path / "data" / "news.db")
    yield conn
    storage.close_all()


@pytest.fixture
def sources(db: sqlite3.Connection) -> SourceRepository:
    repository = SourceRepository(db)
    repository.ensure_defaults()
    return repository


@pytest.fixture
def watchlist(db: sqlite3.Connection, sources: SourceRepository) -> WatchlistRepository:
    return WatchlistRepository(db, sources)


@pytest.fixture
def news(db: sqlite3.Connection) -> NewsRepository:
    return NewsRepository(db)


@pytest.fixture
def states(db: sqlite3.Connection) -> CrawlStateRepository:
    return CrawlStateRepository(db)


@pytest.fixture
def msft(watchlist: WatchlistRepository) -> WatchedEntity:
    return watchlist.add("NASDAQ", "MSFT", company_name="Microsoft")


class StubCrawler(SourceCrawler):
    """Crawler returning canned articles, or raising when ``error`` is set."""

    def __init__(self, name: str = "YahooFinance", articles: list[RawArticle] | None = None) -> None:
        self.name = name
        self.base_host = "finance.yahoo.com"
        self.articles = list(articles or [])
        self.error: Exception | None = None
        self.fetched: list[str] = []
        self.queries: list[str | None] = []

    def build_query_urls(self, entity: WatchedEntity, custom_query: str | None = None) -> list[str]:
        self.queries.append(custom_query)
        return [f"https://stub.test/{entity.symbol}"]

    async def fetch(self, url: str) -> list[RawArticle]:
        self.fetched.append(url)
        if self.error is not None:
            raise self.error
        return list(self.articles)


class RecordingNotifier(Notifier):
    def __init__(self, fail_titles: Iterable[str] = ()) -> None:
        self.sent: list[NewsItem] = []
        self.fail_titles = set(fail_titles)

    async def notify(self, item: NewsItem) -> None:
        if item.title in self.fail_titles:
            raise RuntimeError(f"cannot deliver {item.title}")
        self.sent.append(item)


@pytest.fixture
def stub_crawler() -> StubCrawler:
    return StubCrawler()


@pytest.fixture
def registry(stub_crawler: StubCrawler) -> CrawlerRegistry:
    return CrawlerRegistry([stub_crawler])


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def make_notifier() -> Callable[..., RecordingNotifier]:
    return RecordingNotifier


async def no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def make_fetcher() -> Callable[..., Fetcher]:
    """Build a Fetcher whose HTTP traffic is answered by ``handler``."""

    def _builder(handler: Callable[[httpx.Request], httpx.Response], **http_overrides) -> Fetcher:
        http = HttpConfig(**{"backoff_seconds": 0.0, **http_overrides})
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)
        return Fetcher(http, client=client, sleep=no_sleep)

    return _builder
