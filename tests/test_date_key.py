"""Tests for calendar day keys."""

from datetime import datetime, timedelta, timezone

import pytest

from wakawars_sync.date_key import resolve_zone, shift_date_key, to_date_key, to_utc_date_key


class TestDateKeys:
    def test_utc_date_key(self):
        assert to_utc_date_key(datetime(2026, 2, 22, 23, 59, tzinfo=timezone.utc)) == "2026-02-22"

    def test_utc_date_key_converts_offsets(self):
        instant = datetime(2026, 2, 23, 1, 0, tzinfo=timezone(timedelta(hours=3)))

        assert to_utc_date_key(instant) == "2026-02-22"

    def test_utc_date_key_defaults_to_now(self):
        assert to_utc_date_key() == datetime.now(timezone.utc).date().isoformat()

    @pytest.mark.parametrize(
        "tz_name,expected",
        [
            ("Asia/Tehran", "2026-02-23"),
            ("Europe/London", "2026-02-22"),
            ("America/Los_Angeles", "2026-02-22"),
            ("Pacific/Kiritimati", "2026-02-23"),
        ],
    )
    def test_date_key_in_zone(self, tz_name, expected):
        instant = datetime(2026, 2, 22, 21, 0, tzinfo=timezone.utc)

        assert to_date_key(instant, tz_name) == expected

    @pytest.mark.parametrize("tz_name", [None, "", "Mars/Olympus_Mons"])
    def test_date_key_falls_back_to_utc(self, tz_name):
        instant = datetime(2026, 2, 22, 23, 30, tzinfo=timezone.utc)

        assert to_date_key(instant, tz_name) == "2026-02-22"

    def test_naive_instant_is_utc(self):
        assert to_date_key(datetime(2026, 2, 22, 21, 0), "Asia/Tehran") == "2026-02-23"

    def test_resolve_zone(self):
        assert resolve_zone("Asia/Tehran") is not None
        assert resolve_zone("Nowhere/Special") is None
        assert resolve_zone(None) is None


class TestShiftDateKey:
    @pytest.mark.parametrize(
        "date_key,days,expected",
        [
            ("2026-02-28", 1, "2026-03-01"),
            ("2026-03-01", -1, "2026-02-28"),
            ("2024-02-28", 1, "2024-02-29"),
            ("2026-12-31", 1, "2027-01-01"),
            ("2026-02-22", 0, "2026-02-22"),
        ],
    )
    def test_shift(self, date_key, days, expected):
        assert shift_date_key(date_key, days) == expected

    def test_empty_key_is_today(self):
        assert shift_date_key("", 5) == to_utc_date_key()

    def test_invalid_key_unchanged(self):
        assert shift_date_key("yesterday", 1) == "yesterday"
