"""Tests for the weekly stats cache."""

import threading
from datetime import datetime, timezone
from unittest.mock import Mock

from wakawars_sync.sync.models import STATUS_OK, STATUS_PRIVATE, StatsRangeResult, UserTarget
from wakawars_sync.sync.weekly_cache import WeeklyStatsCache

NOW = datetime(2026, 2, 22, 12, 0, tzinfo=timezone.utc)


def range_result(total=7 * 3600.0, status=STATUS_OK) -> StatsRangeResult:
    return StatsRangeResult(
        status=status,
        total_seconds=total,
        fetched_at=NOW,
        range_key="last_7_days",
        daily_average_seconds=total / 7,
    )


class TestWeeklyStatsCache:
    """Tests for WeeklyStatsCache."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = Mock()
        self.store.list_users.return_value = [
            UserTarget(id=1, api_key=" key-1 "),
            UserTarget(id=2, api_key=""),
            UserTarget(id=3, api_key="key-3"),
        ]
        self.client = Mock()
        self.client.fetch_stats_range.return_value = range_result()
        self.error_sink = Mock()
        self.sleeps = []
        self.cache = WeeklyStatsCache(
            store=self.store,
            client=self.client,
            error_sink=self.error_sink,
            batch_size=1,
            batch_delay_seconds=1.0,
            sleep=self.sleeps.append,
        )

    def test_run_once_fills_cache(self):
        self.cache.run_once()

        assert self.client.fetch_stats_range.call_count == 2
        self.client.fetch_stats_range.assert_any_call("current", "last_7_days", "key-1")
        assert self.cache.get_stat(1).result.total_seconds == 7 * 3600.0
        assert self.cache.get_stat(2) is None
        assert self.sleeps == [1.0]

    def test_get_stats_returns_known_users(self):
        self.cache.run_once()

        entries = self.cache.get_stats([1, 2, 3, 4])

        assert [e.user_id for e in entries] == [1, 3]
        assert self.cache.get_stats([1], range_key="last_30_days") == []

    def test_non_ok_result_is_cached(self):
        self.client.fetch_stats_range.return_value = range_result(status=STATUS_PRIVATE)

        self.cache.run_once()

        result = self.cache.get_stat(3).result
        assert result.status == STATUS_PRIVATE
        assert result.daily_average_seconds == 0

    def test_failure_reported_and_others_refresh(self):
        def fetch(identity, range_key, api_key):
            if api_key == "key-1":
                raise RuntimeError("boom")
            return range_result()

        self.client.fetch_stats_range.side_effect = fetch

        self.cache.run_once()

        assert self.cache.get_stat(1) is None
        assert self.cache.get_stat(3) is not None
        self.error_sink.report.assert_called_once()

    def test_list_users_failure_reported(self):
        self.store.list_users.side_effect = RuntimeError("db down")

        self.cache.run_once()

        assert self.error_sink.report.call_args[0][1] == "list users (weekly)"
        self.client.fetch_stats_range.assert_not_called()

    def test_sync_user(self):
        result = self.cache.sync_user(9, " key-9 ")

        assert result.ok
        self.client.fetch_stats_range.assert_called_once_with("current", "last_7_days", "key-9")
        assert self.cache.get_stat(9).range_key == "last_7_days"

    def test_sync_user_without_key(self):
        assert self.cache.sync_user(9, "  ") is None
        self.client.fetch_stats_range.assert_not_called()

    def test_sync_user_failure_reported(self):
        self.client.fetch_stats_range.side_effect = RuntimeError("boom")

        assert self.cache.sync_user(9, "key-9") is None
        assert self.error_sink.report.call_args[0][1] == "weekly stats for user 9"

    def test_overlapping_run_is_skipped(self):
        entered = threading.Event()
        release = threading.Event()

        def slow_fetch(identity, range_key, api_key):
            entered.set()
            release.wait(5)
            return range_result()

        self.client.fetch_stats_range.side_effect = slow_fetch
        worker = threading.Thread(target=self.cache.run_once)
        worker.start()
        try:
            assert entered.wait(5)
            self.cache.run_once()
        finally:
            release.set()
            worker.join(5)

        assert self.client.fetch_stats_range.call_count == 2

    def test_accepts_user_dicts(self):
        self.store.list_users.return_value = [
            {"id": 5, "api_key": " key-5 "},
            {"id": 6, "apiKey": "key-6"},
            {"id": 7, "api_key": None},
        ]

        self.cache.run_once()

        assert [e.user_id for e in self.cache.get_stats([5, 6, 7])] == [5, 6]
        self.client.fetch_stats_range.assert_any_call("current", "last_7_days", "key-5")
        self.error_sink.report.assert_not_called()

    def test_malformed_user_row_reported(self):
        self.store.list_users.return_value = [{"api_key": "key-without-id"}]

        self.cache.run_once()

        error, context = self.error_sink.report.call_args[0]
        assert isinstance(error, KeyError)
        assert context == "list users (weekly)"
        self.client.fetch_stats_range.assert_not_called()
