"""Sync scheduler - interval passes plus a once-a-day pinned pass."""

import logging
import threading
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ..config import DEFAULT_SYNC_INTERVAL, DailySyncSettings
from ..date_key import resolve_zone
from .coordinator import SyncCoordinator

__all__ = [
    "SchedulerState",
    "SyncScheduler",
    "resolve_next_daily_run_at",
    "MAX_LOOKAHEAD_MINUTES",
]

logger = logging.getLogger(__name__)

MAX_LOOKAHEAD_MINUTES = 48 * 60

INTERVAL_JOB_ID = "sync_job"
DAILY_JOB_ID = "daily_sync_job"
IMMEDIATE_JOB_ID = "immediate_sync"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_next_daily_run_at(
    now: datetime, tz_name: str, hour: int, minute: int
) -> datetime:
    """Find the next instant whose wall clock in ``tz_name`` is hour:minute.

    Walks forward minute by minute from the current minute boundary (up to
    48 hours) and converts each candidate to local time, so offset changes
    and DST gaps need no special handling. The current minute itself never
    matches. Falls back to ``now + 24h`` if the zone is unknown.

    Returns:
        Aware UTC datetime
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)

    zone = resolve_zone(tz_name)
    if zone is None:
        logger.warning(f"Unknown timezone {tz_name!r}, daily sync in 24h")
        return now + timedelta(hours=24)

    start = now.replace(second=0, microsecond=0)
    for offset in range(1, MAX_LOOKAHEAD_MINUTES + 1):
        candidate = start + timedelta(minutes=offset)
        local = candidate.astimezone(zone)
        if local.hour == hour and local.minute == minute:
            return candidate

    # Wall-clock time skipped for two days straight; not expected in practice
    return now + timedelta(hours=24)


class SchedulerState(Enum):
    """Scheduler states."""

    STOPPED = "stopped"
    RUNNING = "running"


class SyncScheduler:
    """Drives SyncCoordinator passes on two cadences.

    - an interval job (first run immediately on start)
    - a one-shot daily job pinned to a local wall-clock time, re-armed
      after each firing, that bypasses every cache

    Both jobs call the same coordinator, whose guard prevents overlapping
    passes. ``stop()`` cancels future firings; an in-flight pass finishes.
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        interval_seconds: int = DEFAULT_SYNC_INTERVAL,
        daily: Optional[DailySyncSettings] = None,
        scheduler: Optional[BackgroundScheduler] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.coordinator = coordinator
        self.interval_seconds = interval_seconds
        self.daily = daily or DailySyncSettings()
        self.scheduler = scheduler or BackgroundScheduler(timezone=timezone.utc)
        self._owns_scheduler = scheduler is None
        self._clock = clock
        self._state = SchedulerState.STOPPED
        self._lock = threading.Lock()
        self._next_daily_run_at: Optional[datetime] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SchedulerState.RUNNING

    @property
    def next_daily_run_at(self) -> Optional[datetime]:
        return self._next_daily_run_at

    def start(self) -> None:
        """Run a pass now, then every interval, and arm the daily pass."""
        with self._lock:
            if self._state is SchedulerState.RUNNING:
                return
            self._state = SchedulerState.RUNNING

        self.scheduler.add_job(
            self._run_interval_pass,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=INTERVAL_JOB_ID,
            replace_existing=True,
            next_run_time=self._clock(),
            max_instances=1,
            coalesce=True,
        )
        if self.daily.enabled:
            self._arm_daily()
        if not self.scheduler.running:
            self.scheduler.start()
        logger.info(f"Sync scheduler started (interval: {self.interval_seconds}s)")

    def stop(self) -> None:
        """Cancel both jobs; later firings become no-ops."""
        with self._lock:
            if self._state is SchedulerState.STOPPED:
                return
            self._state = SchedulerState.STOPPED

        for job_id in (INTERVAL_JOB_ID, DAILY_JOB_ID, IMMEDIATE_JOB_ID):
            self._remove_job(job_id)
        self._next_daily_run_at = None
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        if self._owns_scheduler:
            # A shut down APScheduler instance cannot be started again
            self.scheduler = BackgroundScheduler(timezone=timezone.utc)
        logger.info("Sync scheduler stopped")

    def trigger_now(self, bypass_cache: bool = False) -> None:
        """Schedule a one-off pass (e.g. after wake or network change)."""
        if not self.is_running:
            return
        self.scheduler.add_job(
            self._run_pass,
            args=(bypass_cache, "on-demand"),
            id=IMMEDIATE_JOB_ID,
            replace_existing=True,
        )

    def _arm_daily(self) -> None:
        run_at = resolve_next_daily_run_at(
            self._clock(), self.daily.timezone, self.daily.hour, self.daily.minute
        )
        self._next_daily_run_at = run_at
        self.scheduler.add_job(
            self._run_daily_pass,
            trigger=DateTrigger(run_date=run_at),
            id=DAILY_JOB_ID,
            replace_existing=True,
            misfire_grace_time=None,
        )
        logger.info(
            f"Daily sync armed for {run_at.isoformat()} "
            f"({self.daily.hour:02d}:{self.daily.minute:02d} {self.daily.timezone})"
        )

    def _run_interval_pass(self) -> None:
        self._run_pass(False, "interval")

    def _run_daily_pass(self) -> None:
        if not self.is_running:
            return
        try:
            self._run_pass(True, "daily")
        finally:
            if self.is_running:
                self._arm_daily()

    def _run_pass(self, bypass_cache: bool, trigger: str) -> None:
        if not self.is_running:
            return
        logger.debug(f"Starting {trigger} sync pass")
        try:
            self.coordinator.run_once(bypass_cache=bypass_cache)
        except Exception:
            logger.exception(f"Unexpected error in {trigger} sync pass")

    def _remove_job(self, job_id: str) -> None:
        if self.scheduler.get_job(job_id) is not None:
            self.scheduler.remove_job(job_id)
