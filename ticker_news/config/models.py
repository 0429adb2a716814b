"""Pydantic models describing the ticker-news runtime settings."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

MIN_POLL_INTERVAL_SECONDS = 30
MIN_POLL_SLEEP_SECONDS = 10
ROBOTS_TXT_MAX_CHARS = 10_000


class NotifierKind(str, Enum):
    """Notification back-ends that can be selected from settings."""

    LOG = "log"
    CONSOLE = "console"


class PollingConfig(BaseModel):
    """Base interval and jitter for the watchlist poller."""

    interval_seconds: int = 240
    jitter_seconds: int = 30

    @property
    def effective_interval(self) -> int:
        return max(MIN_POLL_INTERVAL_SECONDS, self.interval_seconds)

    @property
    def effective_jitter(self) -> int:
        return max(0, self.jitter_seconds)


class HostRateLimit(BaseModel):
    """Per-host override; non-positive values fall back to the defaults."""

    requests_per_second: float | None = None
    requests_per_minute: int | None = None


class RateLimitConfig(BaseModel):
    """Default request budget plus per-host overrides keyed by host name."""

    requests_per_second: float = Field(default=1.0, gt=0)
    requests_per_minute: int = Field(default=10, gt=0)
    per_host: dict[str, HostRateLimit] = Field(default_factory=dict)

    @field_validator("per_host", mode="before")
    @classmethod
    def _normalise_hosts(cls, value: Any) -> dict[str, Any]:
        if value in (None, ""):
            return {}
        if not isinstance(value, dict):
            raise ValueError("per_host expects a mapping of host -> limits")
        return {str(host).strip().lower(): limits for host, limits in value.items()}


class RobotsConfig(BaseModel):
    """robots.txt cache policy."""

    cache_hours: float = Field(default=24.0, gt=0)
    max_chars: int = Field(default=ROBOTS_TXT_MAX_CHARS, gt=0)


class HttpConfig(BaseModel):
    """Outgoing HTTP behaviour shared by all crawlers."""

    timeout_seconds: float = Field(default=15.0, gt=0)
    retry_attempts: int = Field(default=3, ge=0)
    backoff_seconds: float = Field(default=2.0, ge=0)
    user_agents: list[str] = Field(default_factory=list)

    @field_validator("user_agents", mode="before")
    @classmethod
    def _coerce_user_agents(cls, value: Any) -> list[str]:
        if value in (None, ""):
            return []
        if isinstance(value, str):
            value = [value]
        return [str(ua).strip() for ua in value if str(ua).strip()]


class AppSettings(BaseModel):
    """Global settings; re-read on every job so edits apply without restart."""

    polling: PollingConfig = Field(default_factory=PollingConfig)
    rate_limits: RateLimitConfig = Field(default_factory=RateLimitConfig)
    robots: RobotsConfig = Field(default_factory=RobotsConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    notifier: NotifierKind = NotifierKind.LOG
    database_path: Path = Field(default=Path("data/news.db"))
    config_reload_seconds: int = Field(default=30, ge=1)

    @field_validator("database_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    def resolved_database_path(self, base_dir: Path) -> Path:
        """Return the database path relative to the project root."""

        if not self.database_path.is_absolute():
            return (base_dir / self.database_path).resolve()
        return self.database_path


__all__ = [
    "AppSettings",
    "HostRateLimit",
    "HttpConfig",
    "MIN_POLL_INTERVAL_SECONDS",
    "MIN_POLL_SLEEP_SECONDS",
    "NotifierKind",
    "PollingConfig",
    "ROBOTS_TXT_MAX_CHARS",
    "RateLimitConfig",
    "RobotsConfig",
]
