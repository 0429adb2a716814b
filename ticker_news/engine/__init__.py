"""Engine components: fetch, rate limiting, robots cache, dedup and notification dispatch."""

from .canonical import canonicalize
from .dedup import DeduplicationResult, IngestionEngine
from .fetcher import FetchRequest, FetchResponse, Fetcher
from .notify import DispatchResult, NotificationDispatcher
from .rate_limit import RateLimit, RateLimiter, compute_wait, resolve_rate_limit
from .robots import RobotsCache

__all__ = [
    "DeduplicationResult",
    "DispatchResult",
    "FetchRequest",
    "FetchResponse",
    "Fetcher",
    "IngestionEngine",
    "NotificationDispatcher",
    "RateLimit",
    "RateLimiter",
    "RobotsCache",
    "canonicalize",
    "compute_wait",
    "resolve_rate_limit",
]
