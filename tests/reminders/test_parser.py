"""Tests for reminder time resolution."""

import pytest
from datetime import datetime, timedelta, timezone

from domains.reminders.errors import TimeSpecError
from domains.reminders.parser import (
    ABSOLUTE_TIME_FIELDS,
    parse_absolute_time,
    parse_relative_time,
    resolve_time,
    uses_relative_time,
)

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

ABSOLUTE_VALUES = {
    "year": 2027,
    "month": 5,
    "day": 10,
    "hour": 8,
    "minute": 30,
    "second": 15,
    "zone": "Europe/London",
}


class TestModeSelection:
    """Relative and absolute arguments are mutually exclusive."""

    @pytest.mark.parametrize("field", ABSOLUTE_TIME_FIELDS)
    def test_duration_with_any_absolute_field_rejected(self, field):
        with pytest.raises(TimeSpecError) as exc:
            uses_relative_time(timedelta(minutes=5), **{field: ABSOLUTE_VALUES[field]})
        assert str(exc.value) == f'Exclusive fields "time" and "{field}" cannot be used together.'

    def test_first_conflicting_field_is_named(self):
        with pytest.raises(TimeSpecError, match='"time" and "month"'):
            uses_relative_time(timedelta(minutes=5), month=5, zone="UTC")

    def test_nothing_given_rejected(self):
        with pytest.raises(TimeSpecError, match="No relative or absolute time given."):
            uses_relative_time(None)

    def test_duration_only_is_relative(self):
        assert uses_relative_time(timedelta(seconds=90)) is True

    def test_zone_only_is_absolute(self):
        assert uses_relative_time(None, zone="UTC") is False


class TestRelativeTime:
    """Relative durations."""

    def test_adds_duration_to_now(self):
        resolved = parse_relative_time(timedelta(seconds=90), now=NOW)
        assert resolved.when == NOW + timedelta(seconds=90)
        assert resolved.timestamp == int(NOW.timestamp()) + 90
        assert resolved.from_now == "1 minute and 30 seconds"

    @pytest.mark.parametrize("seconds", [1, 59, 3600, 86400 * 45, 86400 * 3000])
    def test_trigger_is_now_plus_duration(self, seconds):
        resolved = parse_relative_time(timedelta(seconds=seconds), now=NOW)
        assert abs(resolved.when.timestamp() - (NOW.timestamp() + seconds)) < 1

    def test_defaults_to_current_time(self):
        before = datetime.now(timezone.utc)
        resolved = parse_relative_time(timedelta(hours=1))
        after = datetime.now(timezone.utc)
        assert before + timedelta(hours=1) <= resolved.when <= after + timedelta(hours=1)

    def test_just_over_ten_years_passes_resolver(self):
        """The 10 year cap is the caller's job."""
        resolved = parse_relative_time(timedelta(days=3650, seconds=1), now=NOW)
        assert resolved.when == NOW + timedelta(days=3650, seconds=1)

    def test_non_positive_duration_rejected(self):
        with pytest.raises(TimeSpecError):
            parse_relative_time(timedelta(0), now=NOW)

    def test_overflowing_duration_rejected(self):
        with pytest.raises(TimeSpecError, match="too long"):
            parse_relative_time(timedelta(days=999_999_999), now=NOW)


class TestAbsoluteTime:
    """Absolute calendar fields."""

    def test_missing_zone_uses_gmt(self):
        resolved = parse_absolute_time(hour=15, now=NOW)
        assert resolved.when.tzinfo.key == "GMT"
        assert resolved.when == datetime(2026, 3, 1, 15, 0, 0, tzinfo=timezone.utc)
        assert resolved.from_now == "3 hours"

    def test_unset_fields_default_to_now_and_zero(self):
        resolved = parse_absolute_time(day=20, now=NOW)
        assert resolved.when == datetime(2026, 3, 20, 12, 0, 0, tzinfo=timezone.utc)

    def test_defaults_are_taken_in_target_zone(self):
        # 12:00 UTC is 07:00 in New York (EST, before DST starts on March 8)
        resolved = parse_absolute_time(hour=20, zone="America/New_York", now=NOW)
        assert resolved.when.astimezone(timezone.utc) == datetime(2026, 3, 2, 1, 0, tzinfo=timezone.utc)

    def test_full_date(self):
        resolved = parse_absolute_time(2027, 5, 10, 8, 30, 15, "Europe/London", now=NOW)
        # BST is UTC+1
        assert resolved.when.astimezone(timezone.utc) == datetime(2027, 5, 10, 7, 30, 15, tzinfo=timezone.utc)

    def test_unknown_zone(self):
        with pytest.raises(TimeSpecError, match="Invalid timezone: Mars/Olympus_Mons"):
            parse_absolute_time(hour=15, zone="Mars/Olympus_Mons", now=NOW)

    def test_zone_checked_before_year(self):
        with pytest.raises(TimeSpecError, match="Invalid timezone"):
            parse_absolute_time(year=2000, zone="Nowhere/Special", now=NOW)

    def test_past_year(self):
        with pytest.raises(TimeSpecError, match="Year 2025 is in the past"):
            parse_absolute_time(year=2025, now=NOW)

    @pytest.mark.parametrize("field,value", [
        ("month", 0),
        ("month", 13),
        ("day", 0),
        ("day", 32),
        ("hour", -1),
        ("hour", 24),
        ("minute", 60),
        ("second", 60),
    ])
    def test_out_of_range_fields(self, field, value):
        with pytest.raises(TimeSpecError, match=f"Invalid {field}: {value}"):
            parse_absolute_time(year=2027, **{field: value}, now=NOW)

    def test_fails_on_first_invalid_field(self):
        with pytest.raises(TimeSpecError, match="Invalid month: 13"):
            parse_absolute_time(month=13, day=40, hour=99, now=NOW)

    def test_day_past_month_end_rolls_over(self):
        # 2026 is not a leap year: February 31 lands on March 3
        resolved = parse_absolute_time(month=2, day=31, hour=10, now=NOW)
        assert resolved.when == datetime(2026, 3, 3, 10, 0, tzinfo=timezone.utc)

    def test_earlier_today_is_in_the_past(self):
        with pytest.raises(TimeSpecError, match="is in the past"):
            parse_absolute_time(hour=11, now=NOW)

    def test_exactly_now_is_in_the_past(self):
        with pytest.raises(TimeSpecError, match="is in the past"):
            parse_absolute_time(hour=12, minute=0, second=0, now=NOW)

    def test_year_beyond_calendar(self):
        with pytest.raises(TimeSpecError, match="Invalid year"):
            parse_absolute_time(year=10000, now=NOW)


class TestResolveTime:
    """Dispatch between modes."""

    def test_relative(self):
        resolved = resolve_time(duration=timedelta(minutes=10), now=NOW)
        assert resolved.when == NOW + timedelta(minutes=10)

    def test_absolute(self):
        resolved = resolve_time(hour=18, zone="UTC", now=NOW)
        assert resolved.when == datetime(2026, 3, 1, 18, 0, tzinfo=timezone.utc)

    def test_conflict(self):
        with pytest.raises(TimeSpecError, match="Exclusive fields"):
            resolve_time(duration=timedelta(minutes=10), hour=18, now=NOW)

    def test_nothing(self):
        with pytest.raises(TimeSpecError, match="No relative or absolute time given."):
            resolve_time(now=NOW)
