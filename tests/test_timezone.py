"""
Tests for revive/utils/timezone.py - clock parsing and local time resolution.
"""
import pytest
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from revive.utils.timezone import (
    UnparseableTimestamp,
    get_timezone_for_state,
    get_zoneinfo,
    local_date,
    local_hhmm,
    parse_hhmm,
    to_minutes,
    within_window,
)


class TestParseHhmm:
    def test_valid(self):
        assert parse_hhmm("08:00") == (8, 0)
        assert parse_hhmm("9:05") == (9, 5)
        assert parse_hhmm(" 23:59 ") == (23, 59)

    @pytest.mark.parametrize("value", ["24:00", "12:60", "noon", "", None, "12:5", "1200"])
    def test_invalid(self, value):
        with pytest.raises(UnparseableTimestamp):
            parse_hhmm(value)

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            parse_hhmm("bad")

    def test_to_minutes(self):
        assert to_minutes("21:00") == 1260


class TestWithinWindow:
    def test_inclusive_bounds(self):
        assert within_window(480, 480, 1260) is True
        assert within_window(1260, 480, 1260) is True
        assert within_window(479, 480, 1260) is False

    def test_wraps_midnight(self):
        assert within_window(1380, 1320, 360) is True
        assert within_window(60, 1320, 360) is True
        assert within_window(720, 1320, 360) is False


class TestStateTimezones:
    def test_known_state(self):
        assert get_timezone_for_state("TX") == "America/Chicago"
        assert get_timezone_for_state("ca") == "America/Los_Angeles"

    def test_unknown_state(self):
        assert get_timezone_for_state("ZZ") is None
        assert get_timezone_for_state(None) is None

    def test_zoneinfo_default_eastern(self):
        assert get_zoneinfo() == ZoneInfo("America/New_York")

    def test_zoneinfo_explicit_tz_wins(self):
        assert get_zoneinfo("TX", "America/Denver") == ZoneInfo("America/Denver")


class TestLocalHhmm:
    def test_converts_to_state_zone(self):
        # 2026-07-01 18:30 UTC is 13:30 CDT
        now = datetime(2026, 7, 1, 18, 30, tzinfo=timezone.utc)
        assert local_hhmm(now, "TX") == "13:30"

    def test_unknown_state_uses_eastern(self):
        now = datetime(2026, 1, 15, 18, 30, tzinfo=timezone.utc)
        assert local_hhmm(now, None) == "13:30"

    def test_naive_is_utc(self):
        assert local_hhmm(datetime(2026, 1, 15, 18, 30), "AZ") == "11:30"

    def test_defaults_to_clock(self):
        parse_hhmm(local_hhmm())


class TestLocalDate:
    def test_previous_day_behind_utc(self):
        # 2026-03-16 01:30 UTC is still the 15th in Texas
        now = datetime(2026, 3, 16, 1, 30, tzinfo=timezone.utc)
        assert local_date(now, "TX") == date(2026, 3, 15)

    def test_same_day(self):
        now = datetime(2026, 3, 15, 16, 0, tzinfo=timezone.utc)
        assert local_date(now, "NY") == date(2026, 3, 15)

    def test_naive_is_utc(self):
        assert local_date(datetime(2026, 1, 1, 3, 0), "CA") == date(2025, 12, 31)
