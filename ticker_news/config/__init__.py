"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    MIN_POLL_INTERVAL_SECONDS,
    MIN_POLL_SLEEP_SECONDS,
    AppSettings,
    HostRateLimit,
    HttpConfig,
    NotifierKind,
    PollingConfig,
    RateLimitConfig,
    RobotsConfig,
)

__all__ = [
    "AppSettings",
    "ConfigLocator",
    "ConfigRepository",
    "HostRateLimit",
    "HttpConfig",
    "MIN_POLL_INTERVAL_SECONDS",
    "MIN_POLL_SLEEP_SECONDS",
    "NotifierKind",
    "PollingConfig",
    "RateLimitConfig",
    "RobotsConfig",
]
