"""Runtime wiring shared by the CLI commands and the long-running service."""

from __future__ import annotations

import asyncio
import signal
import sqlite3
from dataclasses import dataclass
from typing import Callable

import httpx
import structlog

from .config import ConfigRepository
from .crawlers import CrawlerRegistry, build_registry
from .engine import Fetcher, IngestionEngine, NotificationDispatcher, RateLimiter, RobotsCache
from .infra import (
    CrawlStateRepository,
    NewsRepository,
    SQLiteManager,
    SourceRepository,
    WatchlistRepository,
)
from .logging_conf import source_logger
from .notifiers import Notifier, build_notifier
from .orchestrator import CrawlOrchestrator
from .scheduler import APSchedulerAdapter, CrawlScheduler, WatchlistPoller


@dataclass
class Repositories:
    conn: sqlite3.Connection
    sources: SourceRepository
    watchlist: WatchlistRepository
    news: NewsRepository
    states: CrawlStateRepository


def open_repositories(config_repository: ConfigRepository, storage: SQLiteManager) -> Repositories:
    """Open the configured database and seed the default source catalog."""

    conn = storage.connect(config_repository.database_path())
    sources = SourceRepository(conn)
    sources.ensure_defaults()
    return Repositories(
        conn=conn,
        sources=sources,
        watchlist=WatchlistRepository(conn, sources),
        news=NewsRepository(conn),
        states=CrawlStateRepository(conn),
    )


@dataclass
class Runtime:
    config_repository: ConfigRepository
    repos: Repositories
    fetcher: Fetcher
    scheduler: CrawlScheduler
    orchestrator: CrawlOrchestrator
    poller: WatchlistPoller

    def apply_settings(self) -> None:
        """Push reloaded settings into components that cache them."""

        self.fetcher.update_config(self.config_repository.load_settings().http)

    async def aclose(self) -> None:
        await self.fetcher.aclose()


def build_runtime(
    config_repository: ConfigRepository,
    repos: Repositories,
    *,
    notifier: Notifier | None = None,
    client: httpx.AsyncClient | None = None,
    registry: CrawlerRegistry | None = None,
    source_logger_factory: Callable[[str], structlog.BoundLogger] | None = source_logger,
) -> Runtime:
    """Assemble the crawl pipeline; must be called from inside the event loop."""

    settings = config_repository.load_settings()
    fetcher = Fetcher(settings.http, client=client)
    scheduler = CrawlScheduler()
    orchestrator = CrawlOrchestrator(
        scheduler=scheduler,
        watchlist=repos.watchlist,
        states=repos.states,
        registry=registry or build_registry(fetcher),
        ingestion=IngestionEngine(repos.news),
        dispatcher=NotificationDispatcher(repos.news, notifier or build_notifier(settings.notifier)),
        config_repository=config_repository,
        robots=RobotsCache(fetcher, repos.states),
        rate_limiter=RateLimiter(),
        source_logger_factory=source_logger_factory,
    )
    poller = WatchlistPoller(repos.watchlist, scheduler, config_repository)
    return Runtime(
        config_repository=config_repository,
        repos=repos,
        fetcher=fetcher,
        scheduler=scheduler,
        orchestrator=orchestrator,
        poller=poller,
    )


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # Windows event loops and non-main threads
            continue


async def serve(
    runtime: Runtime,
    stop: asyncio.Event | None = None,
    logger: structlog.BoundLogger | None = None,
) -> None:
    """Run poller, consumer and config reload until ``stop`` is set or a signal arrives."""

    logger = logger or structlog.get_logger("ticker_news.service").bind(component="service")
    stop = stop or asyncio.Event()
    _install_signal_handlers(stop)

    settings = runtime.config_repository.load_settings()
    housekeeping = APSchedulerAdapter()
    housekeeping.schedule_config_reload(
        runtime.config_repository,
        settings.config_reload_seconds,
        on_reload=runtime.apply_settings,
    )
    housekeeping.start()

    tasks = [
        asyncio.create_task(runtime.poller.run(), name="poller"),
        asyncio.create_task(runtime.orchestrator.run(), name="consumer"),
    ]
    stop_task = asyncio.create_task(stop.wait(), name="stop")
    logger.info("service_started", watched=len(runtime.repos.watchlist.list()))
    try:
        done, _ = await asyncio.wait([stop_task, *tasks], return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if task is not stop_task and not task.cancelled() and task.exception() is not None:
                logger.error("service_task_crashed", task=task.get_name(), error=str(task.exception()))
    finally:
        for task in (*tasks, stop_task):
            task.cancel()
        await asyncio.gather(*tasks, stop_task, return_exceptions=True)
        housekeeping.shutdown()
        await runtime.aclose()
        logger.info("service_stopped")


__all__ = ["Repositories", "Runtime", "build_runtime", "open_repositories", "serve"]
