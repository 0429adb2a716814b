"""APScheduler wrapper for periodic housekeeping jobs of the service."""

from __future__ import annotations

from typing import Callable

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import ConfigRepository
from ..errors import ConfigError

CONFIG_RELOAD_JOB_ID = "housekeeping::config_reload"


class APSchedulerAdapter:
    """Manage APScheduler jobs running on the service's event loop."""

    def __init__(self, logger: structlog.BoundLogger | None = None) -> None:
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.logger = logger or structlog.get_logger("ticker_news.apscheduler").bind(component="scheduler")
        self.started = False

    def start(self) -> None:
        if not self.started:
            self.scheduler.start()
            self.started = True
            self.logger.info("apscheduler_started")

    def shutdown(self) -> None:
        if self.started:
            self.scheduler.shutdown(wait=False)
            self.started = False
            self.logger.info("apscheduler_stopped")

    def schedule_config_reload(
        self,
        config_repository: ConfigRepository,
        seconds: float,
        on_reload: Callable[[], None] | None = None,
    ) -> None:
        def _job() -> None:
            reload_config(config_repository, self.logger, on_reload)

        self.scheduler.add_job(
            _job,
            trigger=IntervalTrigger(seconds=float(seconds)),
            id=CONFIG_RELOAD_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.logger.info("job_scheduled", job=CONFIG_RELOAD_JOB_ID, seconds=seconds)

    def list_jobs(self) -> list[dict]:
        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append(
                {
                    "id": job.id,
                    "next_run_time": getattr(job, "next_run_time", None),
                    "trigger": str(job.trigger),
                }
            )
        return jobs


def reload_config(
    config_repository: ConfigRepository,
    logger: structlog.BoundLogger,
    on_reload: Callable[[], None] | None = None,
) -> bool:
    """Reload settings when the file changed; an invalid file keeps the previous settings."""

    try:
        changed = config_repository.reload_if_changed()
    except ConfigError as exc:
        logger.error("config_reload_failed", error=str(exc))
        return False
    if changed:
        logger.info("config_reloaded")
        if on_reload is not None:
            on_reload()
    return changed


__all__ = ["APSchedulerAdapter", "CONFIG_RELOAD_JOB_ID", "reload_config"]
