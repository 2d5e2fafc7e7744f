"""Tests for the daily achievement awarder."""

import tempfile
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import Mock

import pytest

from wakawars_sync.achievements import (
    DAILY_TIME_ACHIEVEMENTS,
    DailyAchievementAwarder,
    extract_active_names,
    is_weekend_date_key,
)
from wakawars_sync.store import SqliteUserStore
from wakawars_sync.sync.models import STATUS_ERROR, STATUS_OK, STATUS_PRIVATE
from wakawars_sync.sync.protocols import AchievementAwarderProtocol

HOUR = 3600
FETCHED_AT = datetime(2026, 2, 22, 20, 29, tzinfo=timezone.utc)


class TestIsWeekendDateKey:
    @pytest.mark.parametrize(
        "date_key,expected",
        [
            ("2026-02-21", True),  # Saturday
            ("2026-02-22", True),  # Sunday
            ("2026-02-23", False),
            ("not-a-date", False),
        ],
    )
    def test_is_weekend(self, date_key, expected):
        assert is_weekend_date_key(date_key) is expected


class TestDailyAchievementAwarder:
    """Tests for DailyAchievementAwarder."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.store = SqliteUserStore(db_path=Path(self.temp_dir) / "test.db")
        self.user_id = self.store.add_user("alice", "key")
        self.awarder = DailyAchievementAwarder()

    def teardown_method(self):
        """Clean up."""
        self.store.close()

    def award(self, date_key, total_seconds, status=STATUS_OK):
        return self.awarder.award(
            store=self.store,
            user_id=self.user_id,
            date_key=date_key,
            status=status,
            total_seconds=total_seconds,
            payload=None,
            fetched_at=FETCHED_AT,
        )

    def test_satisfies_protocol(self):
        assert isinstance(self.awarder, AchievementAwarderProtocol)

    def test_thresholds_are_ascending(self):
        weekday = [a.threshold_seconds for a in DAILY_TIME_ACHIEVEMENTS if not a.weekend_only]
        assert weekday == sorted(weekday)

    def test_weekday_grants(self):
        granted = self.award("2026-02-23", 8.5 * HOUR)

        assert granted == ["quick-boot-4h", "focus-reactor-6h", "streak-forge-8h"]

    def test_weekend_grants_weekend_only(self):
        granted = self.award("2026-02-22", 12 * HOUR)

        assert "weekend-warrior-8h" in granted
        assert "weekend-overdrive-12h" in granted
        assert "night-shift-14h" not in granted

    def test_below_first_threshold(self):
        assert self.award("2026-02-23", 3 * HOUR) == []

    def test_idempotent_per_day(self):
        """Repeated awards for the same day grant nothing new."""
        first = self.award("2026-02-23", 5 * HOUR)
        second = self.award("2026-02-23", 5 * HOUR)
        later = self.award("2026-02-23", 7 * HOUR)

        assert first == ["quick-boot-4h"]
        assert second == []
        assert later == ["focus-reactor-6h"]
        assert len(self.store.list_achievements(self.user_id)) == 2

    def test_metadata_recorded(self):
        self.award("2026-02-23", 4 * HOUR)

        achievement = self.store.list_achievements(self.user_id)[0]
        assert achievement.context_kind == "daily"
        assert achievement.context_key == "2026-02-23"
        assert achievement.metadata["threshold_seconds"] == 4 * HOUR

    @pytest.mark.parametrize("status", [STATUS_PRIVATE, STATUS_ERROR])
    def test_non_ok_status_grants_nothing(self, status):
        store = Mock()

        granted = self.awarder.award(
            store=store,
            user_id=1,
            date_key="2026-02-23",
            status=status,
            total_seconds=20 * HOUR,
            payload=None,
            fetched_at=FETCHED_AT,
        )

        assert granted == []
        store.grant_achievement.assert_not_called()

    def test_top_thresholds(self):
        granted = self.award("2026-02-23", 21 * HOUR)

        assert granted[-2:] == ["legendary-commit-16h", "boss-raid-20h"]
        assert [a.id for a in DAILY_TIME_ACHIEVEMENTS if a.threshold_seconds == 16 * HOUR] == [
            "legendary-commit-16h"
        ]


def day_payload(editors=(), languages=(), projects=()):
    return {
        "data": {
            "grand_total": {"total_seconds": 9 * HOUR},
            "editors": [{"name": name, "total_seconds": 600} for name in editors],
            "languages": [{"name": name, "total_seconds": 600} for name in languages],
            "projects": [{"name": name, "total_seconds": 600} for name in projects],
        }
    }


class TestPayloadAchievements:
    """Awards that depend on the editors, languages and projects of the day."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = Mock()
        self.store.grant_achievement.return_value = True
        self.awarder = DailyAchievementAwarder()

    def award(self, payload, total_seconds=9 * HOUR):
        return self.awarder.award(
            store=self.store,
            user_id=1,
            date_key="2026-02-23",
            status=STATUS_OK,
            total_seconds=total_seconds,
            payload=payload,
            fetched_at=FETCHED_AT,
        )

    def metadata_for(self, achievement_id):
        for call in self.store.grant_achievement.call_args_list:
            if call.kwargs["achievement_id"] == achievement_id:
                return call.kwargs["metadata"]
        return None

    def test_single_editor_language_project(self):
        granted = self.award(day_payload(["VS Code"], ["Python"], ["wakawars"]))

        assert "solo-day-8h" in granted
        assert "mono-language-day-8h" in granted
        assert "deep-focus-day-8h" in granted
        assert "switchblade-day-8h" not in granted
        assert "language-juggler-day-8h" not in granted
        assert self.metadata_for("solo-day-8h")["editor"] == "VS Code"
        assert self.metadata_for("mono-language-day-8h")["language"] == "Python"
        assert self.metadata_for("deep-focus-day-8h") == {
            "total_seconds": 9 * HOUR,
            "threshold_seconds": 8 * HOUR,
            "date_key": "2026-02-23",
            "project": "wakawars",
        }

    def test_many_editors_and_languages(self):
        granted = self.award(
            day_payload(
                ["VS Code", "Vim", "PyCharm"],
                ["Python", "SQL", "YAML", "Markdown"],
                ["a", "b"],
            )
        )

        assert "switchblade-day-8h" in granted
        assert "language-juggler-day-8h" in granted
        assert "solo-day-8h" not in granted
        assert "mono-language-day-8h" not in granted
        assert "deep-focus-day-8h" not in granted
        assert self.metadata_for("switchblade-day-8h")["editors"] == ["VS Code", "Vim", "PyCharm"]
        assert len(self.metadata_for("language-juggler-day-8h")["languages"]) == 4

    def test_two_editors_three_languages_grant_nothing_extra(self):
        granted = self.award(day_payload(["VS Code", "Vim"], ["Python", "SQL", "YAML"]))

        assert not {
            "solo-day-8h",
            "switchblade-day-8h",
            "mono-language-day-8h",
            "language-juggler-day-8h",
        } & set(granted)

    def test_requires_eight_hours(self):
        granted = self.award(day_payload(["VS Code"], ["Python"], ["wakawars"]), 7 * HOUR)

        assert granted == ["quick-boot-4h", "focus-reactor-6h"]

    def test_idle_entries_are_ignored(self):
        payload = day_payload(["VS Code"])
        payload["data"]["editors"].append({"name": "Vim", "total_seconds": 0})

        assert "solo-day-8h" in self.award(payload)

    def test_duplicate_names_are_merged(self):
        payload = day_payload(["Vim", "Vim", " Vim "])

        assert "solo-day-8h" in self.award(payload)
        assert self.metadata_for("solo-day-8h")["editor"] == "Vim"

    def test_alternative_seconds_fields(self):
        payload = {
            "data": {
                "languages": [
                    {"name": "Go", "seconds": "120"},
                    {"name": "Rust", "total": 60},
                    {"total_seconds": 30},
                    {"name": "C", "total_seconds": True},
                ]
            }
        }

        assert extract_active_names(payload, "languages") == ["Go", "Rust", "unknown"]

    @pytest.mark.parametrize(
        "payload",
        [
            None,
            "not json",
            [],
            {"data": None},
            {"data": {"editors": "VS Code"}},
            {"data": {"editors": [None, "VS Code", 3]}},
        ],
    )
    def test_missing_or_malformed_payload(self, payload):
        granted = self.award(payload)

        assert granted == [
            "quick-boot-4h",
            "focus-reactor-6h",
            "streak-forge-8h",
        ]
