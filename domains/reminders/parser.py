"""Resolve reminder time arguments into a single trigger instant.

Two mutually exclusive modes are supported:
- relative: a duration from now ("90s", "1h30m" after argument parsing)
- absolute: calendar fields (year, month, day, hour, minute, second) plus an
  optional IANA zone name

The 10 year horizon is not checked here; the caller applies it once for both
modes.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, MAXYEAR
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from . import config
from .errors import TimeSpecError
from .formatting import Precision, humanize_between, humanize_duration

ABSOLUTE_TIME_FIELDS = ("year", "month", "day", "hour", "minute", "second", "zone")


@dataclass
class ResolvedTime:
    """A resolved trigger instant."""
    when: datetime
    from_now: str  # Humanized distance, e.g. "1 minute and 30 seconds"

    @property
    def timestamp(self) -> int:
        return int(self.when.timestamp())


def uses_relative_time(
    duration: Optional[timedelta],
    year: Optional[int] = None,
    month: Optional[int] = None,
    day: Optional[int] = None,
    hour: Optional[int] = None,
    minute: Optional[int] = None,
    second: Optional[int] = None,
    zone: Optional[str] = None
) -> bool:
    """Decide between relative and absolute mode.

    Returns:
        True for relative mode, False for absolute mode

    Raises:
        TimeSpecError: If both modes or neither are requested
    """
    fields = {
        "year": year, "month": month, "day": day,
        "hour": hour, "minute": minute, "second": second, "zone": zone,
    }
    relative = duration is not None
    absolute = False
    for field in ABSOLUTE_TIME_FIELDS:
        used = fields[field] is not None
        if relative and used:
            raise TimeSpecError(f'Exclusive fields "time" and "{field}" cannot be used together.')
        absolute = absolute or used

    if not relative and not absolute:
        raise TimeSpecError("No relative or absolute time given.")
    return relative


def parse_relative_time(duration: timedelta, now: datetime = None) -> ResolvedTime:
    """Resolve `duration` from now."""
    now = now or datetime.now(timezone.utc)

    if duration <= timedelta(0):
        raise TimeSpecError("Reminder time must be in the future.")

    try:
        when = now + duration
    except OverflowError:
        raise TimeSpecError("Duration is too long.") from None

    return ResolvedTime(when=when, from_now=humanize_duration(duration, Precision.SECONDS, now))


def _check_range(name: str, value: int, low: int, high: int) -> None:
    if value < low or value > high:
        raise TimeSpecError(f"Invalid {name}: {value}")


def parse_absolute_time(
    year: Optional[int] = None,
    month: Optional[int] = None,
    day: Optional[int] = None,
    hour: Optional[int] = None,
    minute: Optional[int] = None,
    second: Optional[int] = None,
    zone: Optional[str] = None,
    now: datetime = None
) -> ResolvedTime:
    """Resolve calendar fields in a timezone.

    Unset year/month/day/hour take the current value in the zone, unset
    minute/second are 0 and an unset zone is DEFAULT_TIMEZONE. Fields are
    validated in order and the first violation is reported.

    A day past the end of the month (e.g. February 31) rolls over into the
    following month instead of being rejected.

    Raises:
        TimeSpecError: On an unknown zone, an out-of-range field, or a
            resulting time that is not in the future
    """
    tz_name = zone if zone is not None else config.DEFAULT_TIMEZONE
    try:
        location = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        raise TimeSpecError(f"Invalid timezone: {tz_name}") from None

    now = (now or datetime.now(timezone.utc)).astimezone(location)

    if year is not None:
        if year < now.year:
            raise TimeSpecError(f"Year {year} is in the past")
        if year > MAXYEAR:
            raise TimeSpecError(f"Invalid year: {year}")
    else:
        year = now.year

    if month is not None:
        _check_range("month", month, 1, 12)
    else:
        month = now.month

    if day is not None:
        _check_range("day", day, 1, 31)
    else:
        day = now.day

    if hour is not None:
        _check_range("hour", hour, 0, 23)
    else:
        hour = now.hour

    if minute is not None:
        _check_range("minute", minute, 0, 59)
    else:
        minute = 0

    if second is not None:
        _check_range("second", second, 0, 59)
    else:
        second = 0

    try:
        when = datetime(year, month, 1, hour, minute, second, tzinfo=location) + timedelta(days=day - 1)
        in_past = when <= now
    except OverflowError:
        raise TimeSpecError(f"Invalid year: {year}") from None

    if in_past:
        raise TimeSpecError(f"{when.strftime('%Y-%m-%d %H:%M:%S %Z')} is in the past")

    return ResolvedTime(when=when, from_now=humanize_between(now, when, Precision.SECONDS))


def resolve_time(
    duration: Optional[timedelta] = None,
    year: Optional[int] = None,
    month: Optional[int] = None,
    day: Optional[int] = None,
    hour: Optional[int] = None,
    minute: Optional[int] = None,
    second: Optional[int] = None,
    zone: Optional[str] = None,
    now: datetime = None
) -> ResolvedTime:
    """Resolve either a relative duration or absolute calendar fields."""
    if uses_relative_time(duration, year, month, day, hour, minute, second, zone):
        return parse_relative_time(duration, now)
    return parse_absolute_time(year, month, day, hour, minute, second, zone, now)
