"""Yahoo Finance quote news listing crawler."""

from __future__ import annotations

from datetime import datetime
from urllib.parse import quote

import structlog
from selectolax.parser import HTMLParser, Node

from ..engine.fetcher import Fetcher
from ..models import RawArticle, WatchedEntity, utcnow
from .base import SourceCrawler
from .timeparse import parse_time

YAHOO_ORIGIN = "https://finance.yahoo.com"
YAHOO_REFERER = f"{YAHOO_ORIGIN}/"
_ITEM_SELECTORS = ("[data-testid='storyitem']", "li.js-stream-content")
_LINK_SELECTORS = ("a.titles", "h3 a", "a[data-ylk]", "a")


def _absolute_url(href: str) -> str:
    if href.startswith("//"):
        return f"https:{href}"
    if href.startswith("/"):
        return f"{YAHOO_ORIGIN}{href}"
    return href


def _title_link(item: Node) -> Node | None:
    for selector in _LINK_SELECTORS:
        node = item.css_first(selector)
        if node is not None:
            return node if node.tag == "a" else None
    return None


def _published(item: Node, anchor: datetime) -> datetime | None:
    node = item.css_first("div.publishing")
    if node is None:
        return None
    parts = [part.strip() for part in node.text(separator=" ").split("•") if part.strip()]
    if len(parts) < 2:
        return None
    return parse_time(parts[-1], anchor)


def parse_news_html(
    html: str,
    anchor: datetime | None = None,
    logger: structlog.BoundLogger | None = None,
) -> list[RawArticle]:
    """Extract articles from a quote news page; unparseable items are skipped."""

    if not html or not html.strip():
        return []
    logger = logger or structlog.get_logger("ticker_news.crawlers.yahoo")
    anchor = anchor or utcnow()
    tree = HTMLParser(html)
    items: list[Node] = []
    for selector in _ITEM_SELECTORS:
        items = tree.css(selector)
        if items:
            break
    logger.debug("yahoo_items_found", count=len(items))

    articles: list[RawArticle] = []
    for item in items:
        link = _title_link(item)
        if link is None:
            continue
        heading = link.css_first("h3") or link
        title = heading.text(separator=" ", strip=True)
        href = (link.attributes.get("href") or "").strip()
        if not title or not href:
            continue
        articles.append(
            RawArticle(
                title=title,
                url=_absolute_url(href),
                published_utc=_published(item, anchor),
            )
        )
    return articles


class YahooFinanceCrawler(SourceCrawler):
    name = "YahooFinance"
    base_host = "finance.yahoo.com"

    def __init__(self, fetcher: Fetcher, logger: structlog.BoundLogger | None = None) -> None:
        self.fetcher = fetcher
        self.logger = logger or structlog.get_logger("ticker_news.crawlers.yahoo")

    def build_query_urls(self, entity: WatchedEntity, custom_query: str | None = None) -> list[str]:
        # a custom query replaces the quote symbol, e.g. "BRK-B" for NYSE:BRK.B
        symbol = (custom_query or entity.symbol or "").strip().upper()
        if not symbol:
            self.logger.warning("yahoo_blank_symbol", entity_id=entity.id)
            return []
        encoded = quote(symbol, safe="")
        return [f"{YAHOO_ORIGIN}/quote/{encoded}/news?p={encoded}"]

    async def fetch(self, url: str) -> list[RawArticle]:
        html = await self.fetcher.get_text(url, referer=YAHOO_REFERER)
        articles = parse_news_html(html, utcnow(), self.logger)
        self.logger.info("yahoo_fetched", url=url, count=len(articles))
        return articles


__all__ = ["YahooFinanceCrawler", "parse_news_html"]
