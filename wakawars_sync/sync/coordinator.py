"""Sync coordinator - one pass of WakaTime -> daily stats for every user."""

import dataclasses
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from functools import partial
from typing import Any, Callable, Optional

from ..config import DEFAULT_BATCH_DELAY_SECONDS, DEFAULT_BATCH_SIZE, DEFAULT_IDENTITY
from ..date_key import to_date_key
from .batch import run_in_batches
from .models import (
    DailyStatRecord,
    ProviderLogEntry,
    ProviderResult,
    SyncStats,
    UserTarget,
    as_user_target,
)
from .protocols import (
    AchievementAwarderProtocol,
    ErrorSink,
    LoggingErrorSink,
    NullAwarder,
    ProviderClientProtocol,
    UserStoreProtocol,
)
from .wakatime_client import DAILY_ENDPOINT_SCOPE

__all__ = ["SyncCoordinator", "UserSyncError", "PROVIDER_NAME"]

logger = logging.getLogger(__name__)

PROVIDER_NAME = "wakatime"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UserSyncError(Exception):
    """A single user's sync failed; wraps the underlying error."""

    def __init__(self, user_id: Any, cause: BaseException):
        self.user_id = user_id
        self.cause = cause
        super().__init__(f"User {user_id}: {cause}")


class SyncCoordinator:
    """Runs sync passes across all users and processes each result.

    Only one pass runs at a time per instance; a pass requested while
    another is in flight is skipped. Failures are isolated per user and
    reported to the error sink.
    """

    def __init__(
        self,
        store: UserStoreProtocol,
        client: ProviderClientProtocol,
        awarder: Optional[AchievementAwarderProtocol] = None,
        error_sink: Optional[ErrorSink] = None,
        identity: str = DEFAULT_IDENTITY,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay_seconds: float = DEFAULT_BATCH_DELAY_SECONDS,
        clock: Callable[[], datetime] = _utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.client = client
        self.awarder = awarder or NullAwarder()
        self.error_sink = error_sink or LoggingErrorSink()
        self.identity = identity
        self.batch_size = batch_size
        self.batch_delay_seconds = batch_delay_seconds
        self._clock = clock
        self._sleep = sleep
        self._guard = threading.Lock()
        self._stats_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        """True while a pass is in flight."""
        return self._guard.locked()

    def run_once(self, bypass_cache: bool = False) -> Optional[SyncStats]:
        """Perform a sync pass over every user with an API key.

        1. List users and drop those without a key
        2. Fetch each user's status through the batch runner
        3. Persist, log and award per user

        Returns:
            SyncStats, or None if a pass was already running or the user
            list could not be read
        """
        if not self._guard.acquire(blocking=False):
            logger.debug("Sync pass already running, skipping")
            return None

        try:
            try:
                users = [as_user_target(user) for user in self.store.list_users()]
            except Exception as e:
                self._report(e, "list users")
                return None
            return self._run_pass(users, bypass_cache)
        finally:
            self._guard.release()

    def sync_one_user(
        self,
        user_id: Any,
        api_key: str,
        timezone: Optional[str] = None,
        bypass_cache: bool = False,
    ) -> Optional[ProviderResult]:
        """Refresh a single user on demand (e.g. after they saved their key).

        Runs outside the pass guard and the batch runner. Failures are
        reported, not raised.
        """
        trimmed = (api_key or "").strip()
        if not trimmed:
            return None

        user = UserTarget(id=user_id, api_key=trimmed, timezone=timezone)
        try:
            return self._sync_user(user, bypass_cache)
        except Exception as e:
            self._report(e, f"user {user_id}")
            return None

    def _run_pass(self, users: list[UserTarget], bypass_cache: bool) -> SyncStats:
        stats = SyncStats(users_total=len(users))
        targets = []
        for user in users:
            api_key = (user.api_key or "").strip()
            if not api_key:
                stats.users_skipped += 1
                continue
            targets.append(dataclasses.replace(user, api_key=api_key))

        def handle(user: UserTarget) -> None:
            try:
                result = self._sync_user(user, bypass_cache)
            except Exception as e:
                raise UserSyncError(user.id, e) from e
            if result.from_cache:
                with self._stats_lock:
                    stats.cache_hits += 1

        def on_error(error: Exception) -> None:
            stats.errors.append(str(error))
            if isinstance(error, UserSyncError):
                self._report(error.cause, f"user {error.user_id}")
            else:
                self._report(error, "sync user")

        batch = run_in_batches(
            targets,
            handle,
            batch_size=self.batch_size,
            delay_seconds=self.batch_delay_seconds,
            on_error=on_error,
            sleep=self._sleep,
        )
        stats.users_synced = batch.succeeded
        stats.users_failed = batch.failed

        logger.info(
            f"Sync pass complete: {stats.users_synced} synced, "
            f"{stats.users_failed} failed, {stats.users_skipped} skipped, "
            f"{stats.cache_hits} from cache"
        )
        return stats

    def _sync_user(self, user: UserTarget, bypass_cache: bool) -> ProviderResult:
        result = self.client.fetch_daily_status(
            self.identity, user.api_key, bypass_cache=bypass_cache
        )
        self._process_result(user, result)
        return result

    def _process_result(self, user: UserTarget, result: ProviderResult) -> None:
        """Persist one user's result.

        The provider's timezone and date win over stored values. Cache hits
        are not re-persisted or re-logged, but the awarder always runs.
        """
        provider_tz = result.timezone
        effective_tz = provider_tz or user.timezone
        date_key = result.date_key or to_date_key(self._clock(), effective_tz)

        log_entry = ProviderLogEntry(
            provider=PROVIDER_NAME,
            user_id=user.id,
            endpoint=DAILY_ENDPOINT_SCOPE,
            range_key=None,
            status_code=result.response_status,
            ok=bool(result.response_ok),
            payload=result.payload,
            error=result.error or result.network_error,
            fetched_at=result.fetched_at,
        )

        side_effects = []
        if provider_tz and provider_tz != user.timezone:
            side_effects.append(
                ("update timezone", partial(self.store.set_timezone, user.id, provider_tz))
            )
        if not result.from_cache or result.network_error:
            side_effects.append(
                ("provider log", partial(self.store.create_provider_log, log_entry))
            )

        logger.debug(
            f"User {user.id}: {result.status} {result.total_seconds:.0f}s "
            f"for {date_key} (cache={result.from_cache})"
        )

        with ThreadPoolExecutor(
            max_workers=2, thread_name_prefix="wakawars-side-effect"
        ) as pool:
            pending = [(label, pool.submit(effect)) for label, effect in side_effects]
            try:
                # A network fallback to a stale entry is flagged from_cache
                # too, so it is not persisted here.
                if not result.from_cache:
                    self.store.upsert_daily_stat(
                        DailyStatRecord(
                            user_id=user.id,
                            date_key=date_key,
                            total_seconds=result.total_seconds,
                            status=result.status,
                            error=result.error,
                            fetched_at=result.fetched_at,
                        )
                    )

                self.awarder.award(
                    store=self.store,
                    user_id=user.id,
                    date_key=date_key,
                    status=result.status,
                    total_seconds=result.total_seconds,
                    payload=result.payload,
                    fetched_at=result.fetched_at,
                )
            finally:
                for label, future in pending:
                    error = future.exception()
                    if error is not None:
                        self._report(error, f"{label} for user {user.id}")

    def _report(self, error: BaseException, context: str) -> None:
        self.error_sink.report(error, context)
