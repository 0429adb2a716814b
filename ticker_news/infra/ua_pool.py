"""User-Agent pool used to present browser-like requests."""

from __future__ import annotations

import random
from threading import Lock
from typing import Iterable

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class UserAgentPool:
    """Return a random configured user agent, or the built-in desktop Chrome one."""

    def __init__(self, user_agents: Iterable[str] | None = None) -> None:
        self._lock = Lock()
        self._uas: list[str] = []
        self.refresh(user_agents or [])

    def get(self) -> str:
        with self._lock:
            if not self._uas:
                return DEFAULT_USER_AGENT
            return random.choice(self._uas)

    def refresh(self, user_agents: Iterable[str]) -> None:
        cleaned = [ua.strip() for ua in user_agents if ua and ua.strip()]
        with self._lock:
            self._uas = cleaned


__all__ = ["DEFAULT_USER_AGENT", "UserAgentPool"]
