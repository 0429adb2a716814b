"""Crawl job queue, watchlist poller and housekeeping scheduler."""

from .apsched_adapter import APSchedulerAdapter
from .poller import WatchlistPoller
from .queue import CrawlScheduler

__all__ = ["APSchedulerAdapter", "CrawlScheduler", "WatchlistPoller"]
