"""Source crawlers and their registry."""

from ..engine.fetcher import Fetcher
from .base import CrawlerRegistry, SourceCrawler
from .yahoo import YahooFinanceCrawler


def build_registry(fetcher: Fetcher) -> CrawlerRegistry:
    """Registry with every built-in crawler."""

    return CrawlerRegistry([YahooFinanceCrawler(fetcher)])


__all__ = ["CrawlerRegistry", "SourceCrawler", "YahooFinanceCrawler", "build_registry"]
