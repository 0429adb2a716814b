"""Queue consumer running crawl jobs: per-source crawl, ingestion and notification."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Callable

import structlog

from .config import AppSettings, ConfigRepository
from .crawlers import CrawlerRegistry, SourceCrawler
from .engine import IngestionEngine, NotificationDispatcher, RateLimiter, RobotsCache, resolve_rate_limit
from .infra import CrawlStateRepository, WatchlistRepository
from .models import WatchedEntity, WatchedSource, utcnow
from .scheduler import CrawlScheduler


@dataclass
class CrawlSummary:
    """Outcome of one crawl job."""

    entity_id: str
    ticker: str | None = None
    found: bool = True
    new_items: dict[str, int] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    notified: list[str] = field(default_factory=list)
    notify_failed: list[str] = field(default_factory=list)
    partial_new: dict[str, int] = field(default_factory=dict)

    @property
    def total_new(self) -> int:
        """New items stored by this job, including those of sources that failed midway."""

        return sum(self.new_items.values()) + sum(self.partial_new.values())


class CrawlOrchestrator:
    """Single consumer draining the crawl queue in FIFO order.

    Sources of one job are crawled sequentially. A failing source is recorded on
    its crawl state and never stops the other sources of the job.
    """

    def __init__(
        self,
        scheduler: CrawlScheduler,
        watchlist: WatchlistRepository,
        states: CrawlStateRepository,
        registry: CrawlerRegistry,
        ingestion: IngestionEngine,
        dispatcher: NotificationDispatcher,
        config_repository: ConfigRepository,
        robots: RobotsCache | None = None,
        rate_limiter: RateLimiter | None = None,
        source_logger_factory: Callable[[str], structlog.BoundLogger] | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.scheduler = scheduler
        self.watchlist = watchlist
        self.states = states
        self.registry = registry
        self.ingestion = ingestion
        self.dispatcher = dispatcher
        self.config_repository = config_repository
        self.robots = robots
        self.rate_limiter = rate_limiter or RateLimiter()
        self.logger = logger or structlog.get_logger("ticker_news.orchestrator").bind(component="orchestrator")
        self._source_logger_factory = source_logger_factory

    # ------------------------------------------------------------------
    async def run(self) -> None:
        """Drain the queue forever; only cancellation ends the loop."""

        self.logger.info("consumer_started")
        try:
            async for entity_id in self.scheduler:
                try:
                    await self.process(entity_id)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:  # noqa: BLE001
                    self.logger.error("job_failed", entity_id=entity_id, error=str(exc))
        except asyncio.CancelledError:
            self.logger.info("consumer_stopped")
            raise

    def crawl_now(self, entity_id: str) -> bool:
        """User-triggered refresh; goes through the queue like any other job."""

        queued = self.scheduler.enqueue(entity_id)
        self.logger.info("manual_crawl_requested", entity_id=entity_id, queued=queued)
        return queued

    async def drain(self) -> list[CrawlSummary]:
        """Process whatever is queued right now and return."""

        summaries = []
        while self.scheduler.pending:
            entity_id = await self.scheduler.next_job()
            summaries.append(await self.process(entity_id))
        return summaries

    async def process(self, entity_id: str) -> CrawlSummary:
        summary = CrawlSummary(entity_id=entity_id)
        try:
            entity = self.watchlist.get(entity_id)
            if entity is None:
                self.logger.warning("entity_not_found", entity_id=entity_id)
                summary.found = False
                return summary
            summary.ticker = entity.ticker
            settings = self.config_repository.load_settings()
            for link in self.watchlist.sources_for(entity.id):
                source = link.source
                if not link.enabled or not source.enabled:
                    summary.skipped.append(source.name)
                    continue
                crawler = self.registry.get(source.name)
                if crawler is None:
                    self.logger.warning("crawler_not_found", entity=entity.ticker, source=source.name)
                    summary.skipped.append(source.name)
                    continue
                await self._crawl_source(entity, link, crawler, settings, summary)

            if summary.total_new and entity.alerts_enabled:
                result = await self.dispatcher.dispatch(entity, summary.total_new)
                summary.notified = result.sent
                summary.notify_failed = result.failed
            self.logger.info(
                "crawl_completed",
                entity=entity.ticker,
                new_items=summary.total_new,
                failed_sources=sorted(summary.failures),
                skipped_sources=summary.skipped,
                notified=len(summary.notified),
            )
            return summary
        finally:
            self.scheduler.mark_completed(entity_id)

    # ------------------------------------------------------------------
    async def _crawl_source(
        self,
        entity: WatchedEntity,
        link: WatchedSource,
        crawler: SourceCrawler,
        settings: AppSettings,
        summary: CrawlSummary,
    ) -> None:
        source = link.source
        host = source.host or crawler.base_host
        log = self._source_log(source.name)
        new_count = 0
        try:
            limit = resolve_rate_limit(settings.rate_limits, host)
            state = self.states.resolve(source.id, limit.requests_per_second, limit.requests_per_minute)
            if self.robots is not None:
                await self.robots.ensure(state, host, settings.robots)
            waited = await self.rate_limiter.wait(state)
            if waited:
                log.debug("rate_limit_wait", seconds=round(waited, 3))
            for url in crawler.build_query_urls(entity, link.custom_query):
                articles = await crawler.fetch(url)
                new_count += self.ingestion.ingest(entity, source.id, articles)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            message = str(exc) or type(exc).__name__
            summary.failures[source.name] = message
            # items stored before the failing url are still new
            if new_count:
                summary.partial_new[source.name] = new_count
            try:
                state = self.states.record_failure(source.id, message, utcnow())
            except Exception as state_exc:  # noqa: BLE001
                log.error("crawl_state_update_failed", entity=entity.ticker, error=str(state_exc))
                return
            log.warning(
                "source_crawl_failed",
                entity=entity.ticker,
                error=message,
                new_items=new_count,
                consecutive_errors=state.consecutive_errors,
            )
            return
        summary.new_items[source.name] = new_count
        try:
            self.states.record_success(source.id, utcnow())
        except Exception as state_exc:  # noqa: BLE001
            log.error("crawl_state_update_failed", entity=entity.ticker, error=str(state_exc))
        log.info("source_crawled", entity=entity.ticker, new_items=new_count)

    def _source_log(self, source_name: str) -> structlog.BoundLogger:
        if self._source_logger_factory is not None:
            return self._source_logger_factory(source_name)
        return self.logger.bind(source=source_name)


__all__ = ["CrawlOrchestrator", "CrawlSummary"]
