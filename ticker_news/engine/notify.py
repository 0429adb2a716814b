"""At-least-once delivery of unnotified news items."""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from ..infra.repositories import NewsRepository
from ..models import WatchedEntity
from ..notifiers import Notifier


@dataclass
class DispatchResult:
    sent: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class NotificationDispatcher:
    """Send the most recent unnotified items of an entity and flag the delivered ones.

    Items whose notifier call raises keep ``notification_sent`` unset and are
    picked up again by a later dispatch.
    """

    def __init__(
        self,
        news: NewsRepository,
        notifier: Notifier,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.news = news
        self.notifier = notifier
        self.logger = logger or structlog.get_logger("ticker_news.notify").bind(component="notify")

    async def dispatch(self, entity: WatchedEntity, limit: int) -> DispatchResult:
        result = DispatchResult()
        if limit <= 0:
            return result
        for item in self.news.list_unsent(entity.id, limit):
            try:
                await self.notifier.notify(item)
            except Exception as exc:  # noqa: BLE001
                result.failed.append(item.id)
                self.logger.warning(
                    "notification_failed",
                    entity=entity.ticker,
                    news_id=item.id,
                    error=str(exc),
                )
                continue
            self.news.mark_notified([item.id])
            result.sent.append(item.id)
        if result.sent or result.failed:
            self.logger.info(
                "notifications_dispatched",
                entity=entity.ticker,
                sent=len(result.sent),
                failed=len(result.failed),
            )
        return result


__all__ = ["DispatchResult", "NotificationDispatcher"]
