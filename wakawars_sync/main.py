"""WakaWars Sync - Main entry point."""

import argparse
import logging
import signal
import sys
import threading
from datetime import datetime, timezone
from typing import Optional

from apscheduler.triggers.interval import IntervalTrigger

from . import __version__
from .achievements import DailyAchievementAwarder
from .config import Config, setup_logging
from .store import SqliteUserStore
from .sync import SyncCoordinator, SyncScheduler, WakaTimeClient, WeeklyStatsCache

logger = logging.getLogger(__name__)

WEEKLY_JOB_ID = "weekly_stats_job"


class WakaWarsSyncApp:
    """Main application class."""

    def __init__(self, config: Optional[Config] = None):
        """Initialize the application."""
        self.config = config or Config.load()

        logger.info(f"WakaWars Sync {__version__} starting...")

        self.store = SqliteUserStore(self.config.db_path)
        self.client = WakaTimeClient(
            api_url=self.config.provider.api_url,
            timeout=self.config.provider.timeout,
            cache_ttl_seconds=self.config.provider.cache_ttl_seconds,
            user_agent=self.config.provider.user_agent,
        )
        self.coordinator = SyncCoordinator(
            store=self.store,
            client=self.client,
            awarder=DailyAchievementAwarder(),
            identity=self.config.provider.identity,
            batch_size=self.config.sync.batch_size,
            batch_delay_seconds=self.config.sync.batch_delay_seconds,
        )
        self.weekly_cache = WeeklyStatsCache(
            store=self.store,
            client=self.client,
            identity=self.config.provider.identity,
            range_key=self.config.sync.weekly_range,
            batch_size=self.config.sync.batch_size,
            batch_delay_seconds=self.config.sync.batch_delay_seconds,
        )
        self.scheduler = SyncScheduler(
            coordinator=self.coordinator,
            interval_seconds=self.config.sync.interval_seconds,
            daily=self.config.daily,
        )

        # State
        self._shutdown_done = False
        self._shutdown_event = threading.Event()

    def run(self) -> None:
        """Run the sync service until interrupted."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        self.scheduler.start()
        self._schedule_weekly()
        logger.info("WakaWars Sync running")

        self._shutdown_event.wait()

    def _schedule_weekly(self) -> None:
        """Refresh weekly stats now, then every weekly interval."""
        self.scheduler.scheduler.add_job(
            self.weekly_cache.run_once,
            trigger=IntervalTrigger(seconds=self.config.sync.weekly_interval_seconds),
            id=WEEKLY_JOB_ID,
            replace_existing=True,
            next_run_time=datetime.now(timezone.utc),
            max_instances=1,
            coalesce=True,
        )

    def run_once(self) -> bool:
        """Run a single pass that ignores cached results.

        Returns:
            True if the pass ran without per-user errors
        """
        stats = self.coordinator.run_once(bypass_cache=True)
        return stats is not None and stats.success

    def _signal_handler(self, signum, frame) -> None:
        """Handle shutdown signals."""
        logger.info(f"Received signal {signum}")
        self._shutdown_event.set()

    def _shutdown(self) -> None:
        """Shutdown the application. Safe to call multiple times."""
        if self._shutdown_done:
            return
        self._shutdown_done = True
        logger.info("Shutting down...")

        self.scheduler.stop()
        self.client.close()
        self.store.close()

        logger.info("Shutdown complete")

    def __enter__(self) -> "WakaWarsSyncApp":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self._shutdown()


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="wakawars-sync",
        description="Poll WakaTime for daily coding stats and award achievements.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    parser.add_argument(
        "--once", action="store_true", help="Run a single pass (no cache) and exit"
    )
    parser.add_argument(
        "--add-user",
        nargs=2,
        metavar=("USERNAME", "API_KEY"),
        help="Register or update a user, then exit",
    )
    parser.add_argument("--timezone", help="IANA timezone for --add-user")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point."""
    args = _parse_args(argv)
    config = Config.load()
    if args.debug:
        config.debug_mode = True
    setup_logging(config.debug_mode)

    if args.add_user:
        username, api_key = args.add_user
        store = SqliteUserStore(config.db_path)
        try:
            user_id = store.add_user(username, api_key.strip(), args.timezone)
        finally:
            store.close()
        print(f"User {username} saved (id {user_id})")
        return

    with WakaWarsSyncApp(config) as app:
        if args.once:
            sys.exit(0 if app.run_once() else 1)
        app.run()


if __name__ == "__main__":
    main()
