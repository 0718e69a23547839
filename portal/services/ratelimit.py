"""
Attempt counters kept in the Django cache.

Each key stores ``{"count": n, "reset": epoch}``; the entry expires with
its window so a quiet client starts fresh.  With Redis configured the
counters are shared between workers.
"""
from __future__ import annotations

import time

from django.core.cache import cache

PREFIX = 'ratelimit:'


class RateLimitManager:
    """Fixed-window counters for login attempts and request throttling."""

    @staticmethod
    def _key(key: str) -> str:
        return f"{PREFIX}{key}"

    @classmethod
    def _entry(cls, key: str) -> dict | None:
        entry = cache.get(cls._key(key))
        if entry and entry.get('reset', 0) > time.time():
            return entry
        return None

    @classmethod
    def is_rate_limited(cls, key: str, max_attempts: int, window_seconds: int) -> bool:
        entry = cls._entry(key)
        return bool(entry and entry['count'] >= max_attempts)

    @classmethod
    def add_failed_attempt(cls, key: str, window_seconds: int) -> int:
        entry = cls._entry(key) or {'count': 0, 'reset': time.time() + window_seconds}
        entry['count'] += 1
        ttl = max(1, int(entry['reset'] - time.time()))
        cache.set(cls._key(key), entry, ttl)
        return entry['count']

    @classmethod
    def reset_attempts(cls, key: str) -> None:
        cache.delete(cls._key(key))

    @classmethod
    def hit(cls, key: str, max_requests: int, window_seconds: int) -> bool:
        """Count one request; return True when it exceeds the window budget."""
        count = cls.add_failed_attempt(key, window_seconds)
        return count > max_requests

    @classmethod
    def remaining(cls, key: str, max_attempts: int) -> int:
        entry = cls._entry(key)
        return max(0, max_attempts - (entry['count'] if entry else 0))
