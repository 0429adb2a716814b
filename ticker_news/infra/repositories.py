"""SQLite-backed repositories for watch items, sources, news and crawl state."""

from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterator

from ..errors import EntityNotFoundError
from ..models import CrawlState, NewsItem, Source, WatchedEntity, WatchedSource, to_utc, utcnow

DEFAULT_SOURCE_NAME = "YahooFinance"


@dataclass(frozen=True, slots=True)
class SourceSeed:
    name: str
    display_name: str
    base_url: str


DEFAULT_SOURCES: tuple[SourceSeed, ...] = (
    SourceSeed("YahooFinance", "Yahoo Finance", "https://finance.yahoo.com"),
    SourceSeed("Reuters", "Reuters", "https://www.reuters.com/"),
    SourceSeed("GoogleFinance", "Google Finance", "https://www.google.com/finance/"),
    SourceSeed("Investing", "Investing.com", "https://www.investing.com/"),
    SourceSeed("WSJ", "Wall Street Journal", "https://www.wsj.com/"),
)


def _ts(value: datetime | None) -> str | None:
    value = to_utc(value)
    return value.isoformat() if value is not None else None


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    return to_utc(datetime.fromisoformat(value))


def _entity_from_row(row: sqlite3.Row) -> WatchedEntity:
    return WatchedEntity(
        id=row["id"],
        exchange=row["exchange"],
        symbol=row["symbol"],
        company_name=row["company_name"],
        icon_url=row["icon_url"],
        alerts_enabled=bool(row["alerts_enabled"]),
        created_utc=_parse_ts(row["created_utc"]) or utcnow(),
    )


def _source_from_row(row: sqlite3.Row) -> Source:
    return Source(
        id=row["id"],
        name=row["name"],
        base_url=row["base_url"],
        enabled=bool(row["enabled"]),
        display_name=row["display_name"],
    )


def _news_from_row(row: sqlite3.Row) -> NewsItem:
    return NewsItem(
        id=row["id"],
        entity_id=row["watch_item_id"],
        source_id=row["source_id"],
        title=row["title"],
        url=row["url"],
        canonical_url=row["canonical_url"],
        title_hash=row["title_hash"],
        fetched_utc=_parse_ts(row["fetched_utc"]) or utcnow(),
        summary=row["summary"],
        simhash64=row["simhash64"],
        published_utc=_parse_ts(row["published_utc"]),
        is_read=bool(row["is_read"]),
        notification_sent=bool(row["notification_sent"]),
    )


def _state_from_row(row: sqlite3.Row) -> CrawlState:
    return CrawlState(
        source_id=row["source_id"],
        last_crawl_utc=_parse_ts(row["last_crawl_utc"]),
        requests_per_second=row["requests_per_second"],
        requests_per_minute=row["requests_per_minute"],
        robots_txt=row["robots_txt"],
        robots_txt_fetched_utc=_parse_ts(row["robots_txt_fetched_utc"]),
        consecutive_errors=row["consecutive_errors"],
        last_error=row["last_error"],
        last_error_utc=_parse_ts(row["last_error_utc"]),
    )


class SourceRepository:
    """Global source catalog."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def ensure_defaults(self) -> None:
        """Seed the default catalog and attach the default source to every watch item."""

        with self.conn:
            for seed in DEFAULT_SOURCES:
                self.conn.execute(
                    """
                    INSERT INTO sources(name, display_name, base_url, enabled) VALUES (?, ?, ?, 1)
                    ON CONFLICT(name) DO UPDATE SET
                        base_url = excluded.base_url,
                        display_name = COALESCE(sources.display_name, excluded.display_name)
                    """,
                    (seed.name, seed.display_name, seed.base_url),
                )
            default = self.get_by_name(DEFAULT_SOURCE_NAME)
            if default is not None:
                self.conn.execute(
                    """
                    INSERT OR IGNORE INTO watch_item_sources(watch_item_id, source_id, enabled)
                    SELECT id, ?, 1 FROM watch_items
                    """,
                    (default.id,),
                )

    def list(self) -> list[Source]:
        rows = self.conn.execute("SELECT * FROM sources ORDER BY name").fetchall()
        return [_source_from_row(row) for row in rows]

    def get(self, source_id: int) -> Source | None:
        row = self.conn.execute("SELECT * FROM sources WHERE id = ?", (source_id,)).fetchone()
        return _source_from_row(row) if row else None

    def get_by_name(self, name: str) -> Source | None:
        row = self.conn.execute(
            "SELECT * FROM sources WHERE name = ? COLLATE NOCASE", (name,)
        ).fetchone()
        return _source_from_row(row) if row else None

    def add(self, name: str, base_url: str, display_name: str | None = None, enabled: bool = True) -> Source:
        with self.conn:
            cur = self.conn.execute(
                "INSERT INTO sources(name, display_name, base_url, enabled) VALUES (?, ?, ?, ?)",
                (name, display_name, base_url, int(enabled)),
            )
        return Source(id=cur.lastrowid, name=name, base_url=base_url, enabled=enabled, display_name=display_name)

    def set_enabled(self, name: str, enabled: bool) -> Source:
        source = self.get_by_name(name)
        if source is None:
            raise EntityNotFoundError(f"Unknown source: {name}")
        with self.conn:
            self.conn.execute("UPDATE sources SET enabled = ? WHERE id = ?", (int(enabled), source.id))
        source.enabled = enabled
        return source


class WatchlistRepository:
    """Watched entities and their source associations."""

    def __init__(self, conn: sqlite3.Connection, sources: SourceRepository | None = None) -> None:
        self.conn = conn
        self.sources = sources or SourceRepository(conn)

    def add(
        self,
        exchange: str,
        symbol: str,
        company_name: str | None = None,
        alerts_enabled: bool = True,
    ) -> WatchedEntity:
        exchange = exchange.strip().upper()
        symbol = symbol.strip().upper()
        if not exchange or not symbol:
            raise ValueError("exchange and symbol are required")
        existing = self.find(exchange, symbol)
        if existing is not None:
            return existing
        entity = WatchedEntity(
            id=uuid.uuid4().hex,
            exchange=exchange,
            symbol=symbol,
            company_name=company_name,
            alerts_enabled=alerts_enabled,
        )
        default_source = self.sources.get_by_name(DEFAULT_SOURCE_NAME)
        if default_source is None:
            seed = next(s for s in DEFAULT_SOURCES if s.name == DEFAULT_SOURCE_NAME)
            default_source = self.sources.add(seed.name, seed.base_url, seed.display_name)
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO watch_items(id, exchange, symbol, company_name, icon_url, alerts_enabled, created_utc)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entity.id,
                    entity.exchange,
                    entity.symbol,
                    entity.company_name,
                    entity.icon_url,
                    int(entity.alerts_enabled),
                    _ts(entity.created_utc),
                ),
            )
            self.conn.execute(
                "INSERT INTO watch_item_sources(watch_item_id, source_id, enabled) VALUES (?, ?, 1)",
                (entity.id, default_source.id),
            )
        return entity

    def remove(self, entity_id: str) -> bool:
        with self.conn:
            cur = self.conn.execute("DELETE FROM watch_items WHERE id = ?", (entity_id,))
        return cur.rowcount > 0

    def set_alerts(self, entity_id: str, enabled: bool) -> bool:
        with self.conn:
            cur = self.conn.execute(
                "UPDATE watch_items SET alerts_enabled = ? WHERE id = ?", (int(enabled), entity_id)
            )
        return cur.rowcount > 0

    def list(self) -> list[WatchedEntity]:
        rows = self.conn.execute("SELECT * FROM watch_items ORDER BY exchange, symbol").fetchall()
        return [_entity_from_row(row) for row in rows]

    def get(self, entity_id: str) -> WatchedEntity | None:
        row = self.conn.execute("SELECT * FROM watch_items WHERE id = ?", (entity_id,)).fetchone()
        return _entity_from_row(row) if row else None

    def find(self, exchange: str, symbol: str) -> WatchedEntity | None:
        row = self.conn.execute(
            "SELECT * FROM watch_items WHERE exchange = ? AND symbol = ?",
            (exchange.strip().upper(), symbol.strip().upper()),
        ).fetchone()
        return _entity_from_row(row) if row else None

    def sources_for(self, entity_id: str) -> list[WatchedSource]:
        rows = self.conn.execute(
            """
            SELECT s.*, ws.watch_item_id AS entity_id, ws.enabled AS link_enabled, ws.custom_query
            FROM watch_item_sources ws JOIN sources s ON s.id = ws.source_id
            WHERE ws.watch_item_id = ?
            ORDER BY s.name
            """,
            (entity_id,),
        ).fetchall()
        return [
            WatchedSource(
                entity_id=row["entity_id"],
                source=_source_from_row(row),
                enabled=bool(row["link_enabled"]),
                custom_query=row["custom_query"],
            )
            for row in rows
        ]

    def set_source(
        self,
        entity_id: str,
        source_name: str,
        enabled: bool = True,
        custom_query: str | None = None,
    ) -> WatchedSource:
        if self.get(entity_id) is None:
            raise EntityNotFoundError(f"Unknown watch item: {entity_id}")
        source = self.sources.get_by_name(source_name)
        if source is None:
            raise EntityNotFoundError(f"Unknown source: {source_name}")
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO watch_item_sources(watch_item_id, source_id, custom_query, enabled)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(watch_item_id, source_id) DO UPDATE SET
                    enabled = excluded.enabled,
                    custom_query = excluded.custom_query
                """,
                (entity_id, source.id, custom_query, int(enabled)),
            )
        return WatchedSource(entity_id=entity_id, source=source, enabled=enabled, custom_query=custom_query)


class NewsRepository:
    """Persisted news items; uniqueness of canonical URL and title hash lives in the schema."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self.conn:
            yield self.conn

    def canonical_url_exists(self, canonical_url: str) -> bool:
        cur = self.conn.execute("SELECT 1 FROM news_items WHERE canonical_url = ?", (canonical_url,))
        return cur.fetchone() is not None

    def title_hash_exists(self, entity_id: str, title_hash: str) -> bool:
        cur = self.conn.execute(
            "SELECT 1 FROM news_items WHERE title_hash = ? AND watch_item_id = ?",
            (title_hash, entity_id),
        )
        return cur.fetchone() is not None

    def insert(self, item: NewsItem) -> None:
        """Insert without committing; callers wrap batches in ``transaction()``."""

        self.conn.execute(
            """
            INSERT INTO news_items(
                id, watch_item_id, source_id, title, url, canonical_url, summary, title_hash,
                simhash64, published_utc, fetched_utc, is_read, notification_sent
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                item.id,
                item.entity_id,
                item.source_id,
                item.title,
                item.url,
                item.canonical_url,
                item.summary,
                item.title_hash,
                item.simhash64,
                _ts(item.published_utc),
                _ts(item.fetched_utc),
                int(item.is_read),
                int(item.notification_sent),
            ),
        )

    def get(self, news_id: str) -> NewsItem | None:
        row = self.conn.execute("SELECT * FROM news_items WHERE id = ?", (news_id,)).fetchone()
        return _news_from_row(row) if row else None

    def count(self, entity_id: str | None = None) -> int:
        if entity_id is None:
            row = self.conn.execute("SELECT count(*) FROM news_items").fetchone()
        else:
            row = self.conn.execute(
                "SELECT count(*) FROM news_items WHERE watch_item_id = ?", (entity_id,)
            ).fetchone()
        return int(row[0])

    def list_unsent(self, entity_id: str, limit: int) -> list[NewsItem]:
        rows = self.conn.execute(
            """
            SELECT * FROM news_items
            WHERE watch_item_id = ? AND notification_sent = 0
            ORDER BY COALESCE(published_utc, fetched_utc) DESC
            LIMIT ?
            """,
            (entity_id, limit),
        ).fetchall()
        return [_news_from_row(row) for row in rows]

    def mark_notified(self, news_ids: list[str]) -> None:
        if not news_ids:
            return
        with self.conn:
            self.conn.executemany(
                "UPDATE news_items SET notification_sent = 1 WHERE id = ?",
                [(news_id,) for news_id in news_ids],
            )

    def list_recent(self, entity_id: str, days: int = 7, unread_only: bool = False) -> list[NewsItem]:
        cutoff = _ts(utcnow() - timedelta(days=days))
        query = "SELECT * FROM news_items WHERE watch_item_id = ? AND fetched_utc >= ?"
        if unread_only:
            query += " AND is_read = 0"
        query += " ORDER BY COALESCE(published_utc, fetched_utc) DESC"
        rows = self.conn.execute(query, (entity_id, cutoff)).fetchall()
        return [_news_from_row(row) for row in rows]

    def mark_read(self, news_id: str, is_read: bool = True) -> bool:
        with self.conn:
            cur = self.conn.execute(
                "UPDATE news_items SET is_read = ? WHERE id = ?", (int(is_read), news_id)
            )
        return cur.rowcount > 0


class CrawlStateRepository:
    """Per-source crawl bookkeeping; counters are updated with single-statement writes."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def get(self, source_id: int) -> CrawlState | None:
        row = self.conn.execute("SELECT * FROM crawl_states WHERE source_id = ?", (source_id,)).fetchone()
        return _state_from_row(row) if row else None

    def _require(self, source_id: int) -> CrawlState:
        state = self.get(source_id)
        if state is None:
            raise EntityNotFoundError(f"No crawl state for source {source_id}")
        return state

    def resolve(self, source_id: int, requests_per_second: float, requests_per_minute: int) -> CrawlState:
        """Create the row on first use and refresh its rate limits."""

        with self.conn:
            self.conn.execute(
                """
                INSERT INTO crawl_states(source_id, requests_per_second, requests_per_minute)
                VALUES (?, ?, ?)
                ON CONFLICT(source_id) DO UPDATE SET
                    requests_per_second = excluded.requests_per_second,
                    requests_per_minute = excluded.requests_per_minute
                """,
                (source_id, requests_per_second, requests_per_minute),
            )
        return self._require(source_id)

    def save_robots(self, source_id: int, robots_txt: str, fetched_utc: datetime) -> None:
        with self.conn:
            self.conn.execute(
                "UPDATE crawl_states SET robots_txt = ?, robots_txt_fetched_utc = ? WHERE source_id = ?",
                (robots_txt, _ts(fetched_utc), source_id),
            )

    def record_success(self, source_id: int, crawled_utc: datetime) -> CrawlState:
        with self.conn:
            self.conn.execute(
                """
                UPDATE crawl_states
                SET last_crawl_utc = ?, consecutive_errors = 0, last_error = NULL, last_error_utc = NULL
                WHERE source_id = ?
                """,
                (_ts(crawled_utc), source_id),
            )
        return self._require(source_id)

    def record_failure(self, source_id: int, message: str, failed_utc: datetime) -> CrawlState:
        with self.conn:
            self.conn.execute(
                """
                UPDATE crawl_states
                SET consecutive_errors = consecutive_errors + 1, last_error = ?, last_error_utc = ?
                WHERE source_id = ?
                """,
                (message, _ts(failed_utc), source_id),
            )
        return self._require(source_id)

    def list_with_sources(self) -> list[tuple[Source, CrawlState | None]]:
        result: list[tuple[Source, CrawlState | None]] = []
        for source in SourceRepository(self.conn).list():
            result.append((source, self.get(source.id)))
        return result


__all__ = [
    "CrawlStateRepository",
    "DEFAULT_SOURCES",
    "DEFAULT_SOURCE_NAME",
    "NewsRepository",
    "SourceRepository",
    "SourceSeed",
    "WatchlistRepository",
]
