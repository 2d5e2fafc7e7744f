"""In-memory cache of provider responses, scoped to the current UTC day."""

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Generic, Optional, TypeVar

from ..date_key import to_utc_date_key

__all__ = ["CacheEntry", "ResultCache"]

R = TypeVar("R")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CacheEntry(Generic[R]):
    """A cached provider result and the day it belongs to."""

    calendar_day: str
    fetched_at: datetime
    result: R


class ResultCache(Generic[R]):
    """Caches provider results per key with a TTL and a day boundary.

    An entry is fresh only while it was stored today (UTC) and is younger
    than the TTL. Stale entries are kept for network-failure fallback.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """Initialize cache.

        Args:
            ttl_seconds: How long an entry is served without refetching
            clock: Returns the current aware datetime
        """
        self.ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry[R]] = {}
        self._lock = threading.Lock()

    def get_fresh(self, key: str) -> Optional[CacheEntry[R]]:
        """Get an entry only if it is from today and within the TTL."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.calendar_day != to_utc_date_key(now):
            return None
        if (now - entry.fetched_at).total_seconds() >= self.ttl:
            return None
        return entry

    def get_any(self, key: str) -> Optional[CacheEntry[R]]:
        """Get the last stored entry regardless of its age or day."""
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, result: R, fetched_at: Optional[datetime] = None) -> CacheEntry[R]:
        """Store a result for today, replacing any previous entry."""
        fetched_at = fetched_at or self._clock()
        entry = CacheEntry(
            calendar_day=to_utc_date_key(fetched_at),
            fetched_at=fetched_at,
            result=result,
        )
        with self._lock:
            self._entries[key] = entry
        return entry

    def invalidate(self, key: Optional[str] = None) -> None:
        """Invalidate cache.

        Args:
            key: Specific key to invalidate, or None for all
        """
        with self._lock:
            if key:
                self._entries.pop(key, None)
            else:
                self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
