"""Protocol types for the sync coordinator's collaborators.

Defines the interfaces the coordinator requires from storage, the
achievement awarder, the provider client and the error sink, enabling
easier testing and looser coupling.
"""

import logging
from datetime import datetime
from typing import Any, Optional, Protocol, runtime_checkable

from .models import (
    DailyStatRecord,
    ProviderLogEntry,
    ProviderResult,
    StatsRangeResult,
    UserTarget,
)

__all__ = [
    "UserStoreProtocol",
    "AchievementAwarderProtocol",
    "ProviderClientProtocol",
    "ErrorSink",
    "LoggingErrorSink",
    "NullAwarder",
]

logger = logging.getLogger(__name__)


@runtime_checkable
class UserStoreProtocol(Protocol):
    """Interface for reading users and persisting sync output."""

    def list_users(self) -> list[UserTarget]: ...

    def set_timezone(self, user_id: int, timezone: str) -> None: ...

    def upsert_daily_stat(self, record: DailyStatRecord) -> None: ...

    def create_provider_log(self, entry: ProviderLogEntry) -> None: ...


@runtime_checkable
class AchievementAwarderProtocol(Protocol):
    """Interface for granting achievements from a daily result.

    Must be idempotent per (user_id, date_key).
    """

    def award(
        self,
        store: UserStoreProtocol,
        user_id: int,
        date_key: str,
        status: str,
        total_seconds: float,
        payload: Any,
        fetched_at: datetime,
    ) -> Any: ...


@runtime_checkable
class ProviderClientProtocol(Protocol):
    """Interface for fetching stats from WakaTime."""

    def fetch_daily_status(
        self, identity: str, api_key: str, bypass_cache: bool = False
    ) -> ProviderResult: ...

    def fetch_stats_range(
        self, identity: str, range_key: str, api_key: str, bypass_cache: bool = False
    ) -> StatsRangeResult: ...


@runtime_checkable
class ErrorSink(Protocol):
    """Receives failures that were isolated instead of raised."""

    def report(self, error: BaseException, context: Optional[str] = None) -> None: ...


class LoggingErrorSink:
    """Default error sink: logs the failure with its traceback."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logger

    def report(self, error: BaseException, context: Optional[str] = None) -> None:
        message = f"WakaTime sync failed ({context})" if context else "WakaTime sync failed"
        self._log.error(f"{message}: {error}", exc_info=error)


class NullAwarder:
    """Awarder that grants nothing."""

    def award(self, store, user_id, date_key, status, total_seconds, payload, fetched_at) -> None:
        return None
