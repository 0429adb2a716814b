"""Deduplication and ingestion of fetched articles."""

from __future__ import annotations

import hashlib
import sqlite3
import uuid
from dataclasses import dataclass
from typing import Iterable

import structlog

from ..infra.repositories import NewsRepository
from ..models import NewsItem, RawArticle, WatchedEntity, to_utc, utcnow
from .canonical import canonicalize

SIMHASH_PLACEHOLDER = 0


@dataclass
class DeduplicationResult:
    url_duplicate: bool
    title_duplicate: bool

    @property
    def is_duplicate(self) -> bool:
        return self.url_duplicate or self.title_duplicate


def normalize_title(title: str) -> str:
    return title.strip().lower()


def compute_title_hash(title: str) -> str:
    return hashlib.sha256(normalize_title(title).encode("utf-8")).hexdigest()


def compute_simhash(text: str) -> int:  # noqa: ARG001
    """Near-duplicate fingerprint; not computed yet, always the placeholder."""

    return SIMHASH_PLACEHOLDER


class IngestionEngine:
    """Filter raw articles against stored news and persist the new ones."""

    def __init__(self, news: NewsRepository, logger: structlog.BoundLogger | None = None) -> None:
        self.news = news
        self.logger = logger or structlog.get_logger("ticker_news.ingest").bind(component="ingest")

    def check(self, entity_id: str, canonical_url: str, title_hash: str) -> DeduplicationResult:
        url_dup = self.news.canonical_url_exists(canonical_url)
        title_dup = False if url_dup else self.news.title_hash_exists(entity_id, title_hash)
        return DeduplicationResult(url_dup, title_dup)

    def ingest(self, entity: WatchedEntity, source_id: int, raw_items: Iterable[RawArticle]) -> int:
        fetched_utc = utcnow()
        new_count = 0
        with self.news.transaction():
            for article in raw_items:
                try:
                    if self._store(entity, source_id, article, fetched_utc):
                        new_count += 1
                except (AttributeError, TypeError, ValueError) as exc:
                    self.logger.warning(
                        "article_skipped",
                        entity=entity.ticker,
                        source_id=source_id,
                        error=str(exc),
                    )
        if new_count:
            self.logger.info(
                "articles_ingested",
                entity=entity.ticker,
                source_id=source_id,
                new_count=new_count,
            )
        return new_count

    def _store(
        self,
        entity: WatchedEntity,
        source_id: int,
        article: RawArticle,
        fetched_utc,
    ) -> bool:
        title = (article.title or "").strip()
        url = (article.url or "").strip()
        if not title or not url:
            self.logger.debug("article_malformed", entity=entity.ticker, url=url, title=title)
            return False
        canonical_url = canonicalize(url)
        title_hash = compute_title_hash(title)
        result = self.check(entity.id, canonical_url, title_hash)
        if result.is_duplicate:
            self.logger.debug(
                "article_duplicate",
                entity=entity.ticker,
                url=canonical_url,
                by_url=result.url_duplicate,
                by_title=result.title_duplicate,
            )
            return False
        item = NewsItem(
            id=uuid.uuid4().hex,
            entity_id=entity.id,
            source_id=source_id,
            title=title,
            url=url,
            canonical_url=canonical_url,
            title_hash=title_hash,
            fetched_utc=fetched_utc,
            summary=article.summary,
            simhash64=compute_simhash(title),
            published_utc=to_utc(article.published_utc),
        )
        try:
            self.news.insert(item)
        except sqlite3.IntegrityError:
            # unique constraints are the final arbiter
            self.logger.debug("article_duplicate", entity=entity.ticker, url=canonical_url, by_constraint=True)
            return False
        return True


__all__ = [
    "DeduplicationResult",
    "IngestionEngine",
    "SIMHASH_PLACEHOLDER",
    "compute_simhash",
    "compute_title_hash",
    "normalize_title",
]
