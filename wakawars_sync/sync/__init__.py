"""Sync module - polls WakaTime and records daily stats."""

from .batch import BatchStats, run_in_batches
from .coordinator import SyncCoordinator
from .models import ProviderResult, StatsRangeResult, SyncStats, UserTarget
from .protocols import (
    AchievementAwarderProtocol,
    ErrorSink,
    LoggingErrorSink,
    ProviderClientProtocol,
    UserStoreProtocol,
)
from .scheduler import SyncScheduler, resolve_next_daily_run_at
from .wakatime_client import WakaTimeClient
from .weekly_cache import WeeklyStatsCache

__all__ = [
    "BatchStats",
    "run_in_batches",
    "SyncCoordinator",
    "ProviderResult",
    "StatsRangeResult",
    "SyncStats",
    "UserTarget",
    "AchievementAwarderProtocol",
    "ErrorSink",
    "LoggingErrorSink",
    "ProviderClientProtocol",
    "UserStoreProtocol",
    "SyncScheduler",
    "resolve_next_daily_run_at",
    "WakaTimeClient",
    "WeeklyStatsCache",
]
