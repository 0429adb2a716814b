"""Notifier back-ends that deliver a single news item to the user."""

from __future__ import annotations

from abc import ABC, abstractmethod

import structlog
from rich.console import Console
from rich.markup import escape

from .config import NotifierKind
from .models import NewsItem


class Notifier(ABC):
    """Uniform notifier contract; raising marks the item as not delivered."""

    @abstractmethod
    async def notify(self, item: NewsItem) -> None:
        """Deliver one item."""


class LogNotifier(Notifier):
    """Write the notification to the service log."""

    def __init__(self, logger: structlog.BoundLogger | None = None) -> None:
        self.logger = logger or structlog.get_logger("ticker_news.notifier")

    async def notify(self, item: NewsItem) -> None:
        self.logger.info(
            "news_notification",
            news_id=item.id,
            entity_id=item.entity_id,
            title=item.title,
            url=item.url,
        )


class ConsoleNotifier(Notifier):
    """Print the headline to the terminal."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    async def notify(self, item: NewsItem) -> None:
        when = item.sort_time.strftime("%Y-%m-%d %H:%M")
        self.console.print(f"[bold cyan]{when}[/] {escape(item.title)}")
        self.console.print(f"  [dim]{escape(item.url)}[/]")


def build_notifier(kind: NotifierKind, console: Console | None = None) -> Notifier:
    if kind == NotifierKind.CONSOLE:
        return ConsoleNotifier(console)
    return LogNotifier()


__all__ = ["ConsoleNotifier", "LogNotifier", "Notifier", "build_notifier"]
