"""In-memory cache of each user's stats for a named range (last 7 days)."""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from ..config import (
    DEFAULT_BATCH_DELAY_SECONDS,
    DEFAULT_BATCH_SIZE,
    DEFAULT_IDENTITY,
    DEFAULT_WEEKLY_RANGE,
)
from .batch import run_in_batches
from .models import StatsRangeResult, as_user_target
from .protocols import ErrorSink, LoggingErrorSink, ProviderClientProtocol, UserStoreProtocol

__all__ = ["WeeklyCacheEntry", "WeeklyStatsCache"]

logger = logging.getLogger(__name__)


@dataclass
class WeeklyCacheEntry:
    """Latest range stats for one user."""

    user_id: Any
    range_key: str
    result: StatsRangeResult


class WeeklyStatsCache:
    """Keeps the latest range stats per user, refreshed by full passes."""

    def __init__(
        self,
        store: UserStoreProtocol,
        client: ProviderClientProtocol,
        identity: str = DEFAULT_IDENTITY,
        range_key: str = DEFAULT_WEEKLY_RANGE,
        error_sink: Optional[ErrorSink] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay_seconds: float = DEFAULT_BATCH_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.client = client
        self.identity = identity
        self.range_key = range_key
        self.error_sink = error_sink or LoggingErrorSink()
        self.batch_size = batch_size
        self.batch_delay_seconds = batch_delay_seconds
        self._sleep = sleep
        self._entries: dict[tuple[Any, str], WeeklyCacheEntry] = {}
        self._entries_lock = threading.Lock()
        self._guard = threading.Lock()

    def run_once(self) -> None:
        """Refresh every user with an API key; skipped if already running."""
        if not self._guard.acquire(blocking=False):
            return
        try:
            try:
                users = [as_user_target(user) for user in self.store.list_users()]
            except Exception as e:
                self.error_sink.report(e, "list users (weekly)")
                return

            targets = [
                (user.id, user.api_key.strip())
                for user in users
                if user.api_key and user.api_key.strip()
            ]
            run_in_batches(
                targets,
                lambda target: self._refresh(*target),
                batch_size=self.batch_size,
                delay_seconds=self.batch_delay_seconds,
                on_error=lambda e: self.error_sink.report(e, "weekly stats"),
                sleep=self._sleep,
            )
            logger.debug(f"Weekly stats refreshed for {len(targets)} users")
        finally:
            self._guard.release()

    def sync_user(self, user_id: Any, api_key: str) -> Optional[StatsRangeResult]:
        """Refresh one user's range stats; failures are reported."""
        trimmed = (api_key or "").strip()
        if not trimmed:
            return None
        try:
            return self._refresh(user_id, trimmed)
        except Exception as e:
            self.error_sink.report(e, f"weekly stats for user {user_id}")
            return None

    def get_stat(self, user_id: Any, range_key: Optional[str] = None) -> Optional[WeeklyCacheEntry]:
        with self._entries_lock:
            return self._entries.get((user_id, range_key or self.range_key))

    def get_stats(
        self, user_ids: Iterable[Any], range_key: Optional[str] = None
    ) -> list[WeeklyCacheEntry]:
        key = range_key or self.range_key
        with self._entries_lock:
            return [
                self._entries[(user_id, key)]
                for user_id in user_ids
                if (user_id, key) in self._entries
            ]

    def _refresh(self, user_id: Any, api_key: str) -> StatsRangeResult:
        result = self.client.fetch_stats_range(self.identity, self.range_key, api_key)
        with self._entries_lock:
            self._entries[(user_id, self.range_key)] = WeeklyCacheEntry(
                user_id=user_id, range_key=self.range_key, result=result
            )
        return result
