"""
Time helpers for the studio.

All timestamps are stored and compared in UTC. Studio-local time only
matters for the free-cancellation deadline, which is defined on the
studio's wall clock.
"""

import calendar
from datetime import date, datetime, time, timedelta
from typing import Optional

import pytz

from .config import settings


def utc_now() -> datetime:
    """Current time as an aware UTC datetime. Tests patch this to freeze time."""
    return datetime.now(pytz.UTC)


def get_studio_timezone(tz_name: Optional[str] = None) -> pytz.BaseTzInfo:
    return pytz.timezone(tz_name or settings.studio_timezone)


def ensure_utc(dt: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    Naive values are treated as UTC; sqlite hands back naive datetimes for
    columns we always write in UTC.
    """
    if dt.tzinfo is None:
        return pytz.UTC.localize(dt)
    return dt.astimezone(pytz.UTC)


def to_studio_time(dt: datetime, tz_name: Optional[str] = None) -> datetime:
    return ensure_utc(dt).astimezone(get_studio_timezone(tz_name))


def studio_datetime(day: date, wall_time: time, tz_name: Optional[str] = None) -> datetime:
    """A wall-clock time at the studio on ``day``, as aware UTC."""
    tz = get_studio_timezone(tz_name)
    return tz.localize(datetime.combine(day, wall_time)).astimezone(pytz.UTC)


def booking_closes_at(lesson_start: datetime, cutoff_minutes: Optional[int] = None) -> datetime:
    """Last instant at which a lesson can still be booked."""
    minutes = settings.booking_cutoff_minutes if cutoff_minutes is None else cutoff_minutes
    return ensure_utc(lesson_start) - timedelta(minutes=minutes)


def cancellation_deadline(
    lesson_start: datetime,
    *,
    hour: Optional[int] = None,
    tz_name: Optional[str] = None,
) -> datetime:
    """
    Free-cancellation deadline: the day before the lesson at ``hour`` studio time.

    Returned in UTC.
    """
    local_start = to_studio_time(lesson_start, tz_name)
    previous_day = local_start.date() - timedelta(days=1)
    deadline_hour = settings.free_cancellation_hour if hour is None else hour
    return studio_datetime(previous_day, time(deadline_hour, 0), tz_name)


def add_months(dt: datetime, months: int) -> datetime:
    """Shift ``dt`` by calendar months, clamping the day to the target month's length."""
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)
