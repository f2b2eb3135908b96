"""
Timezone utilities for the tutordesk platform.

All lesson timestamps are stored in UTC. Wall-clock comparisons, month
windows and recurrence steps happen in the business timezone.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple

import pytz

from .config import settings


def get_business_timezone(tz_name: Optional[str] = None) -> pytz.BaseTzInfo:
    """
    Get the business timezone.

    Args:
        tz_name: Optional override (mostly for tests)

    Returns:
        pytz timezone object
    """
    return pytz.timezone(tz_name or settings.business_timezone)


def ensure_utc(dt: datetime) -> datetime:
    """Return an aware UTC datetime. Naive values are assumed to be UTC."""
    if dt.tzinfo is None:
        return pytz.UTC.localize(dt)
    return dt.astimezone(pytz.UTC)


def to_business_time(dt: datetime, tz_name: Optional[str] = None) -> datetime:
    """
    Convert a datetime to the business timezone.

    Args:
        dt: Datetime to convert (naive values are treated as UTC)
        tz_name: Optional timezone override

    Returns:
        Aware datetime in the business timezone
    """
    return ensure_utc(dt).astimezone(get_business_timezone(tz_name))


def localize_business_time(
    day: date, wall_time: time, tz_name: Optional[str] = None
) -> datetime:
    """Attach the business timezone to a local wall-clock date and time."""
    tz = get_business_timezone(tz_name)
    return tz.localize(datetime.combine(day, wall_time.replace(tzinfo=None)))


def from_business_input(dt: datetime, tz_name: Optional[str] = None) -> datetime:
    """
    Normalize a datetime received from a client to UTC.

    Naive values are business-local wall-clock times; aware values are
    converted as given.
    """
    if dt.tzinfo is None:
        return get_business_timezone(tz_name).localize(dt).astimezone(pytz.UTC)
    return dt.astimezone(pytz.UTC)


def business_today(tz_name: Optional[str] = None) -> date:
    """Get 'today' in the business timezone."""
    return datetime.now(get_business_timezone(tz_name)).date()


def business_day_bounds_utc(
    day: date, tz_name: Optional[str] = None
) -> Tuple[datetime, datetime]:
    """
    Get the UTC instants bounding a local business day.

    Returns:
        (start, end) with end exclusive
    """
    start = localize_business_time(day, time(0, 0), tz_name)
    end = localize_business_time(day + timedelta(days=1), time(0, 0), tz_name)
    return start.astimezone(pytz.UTC), end.astimezone(pytz.UTC)


def month_start(value: date) -> date:
    """First day of the month containing ``value``."""
    return value.replace(day=1)


def next_month_start(value: date) -> date:
    first = month_start(value)
    if first.month == 12:
        return first.replace(year=first.year + 1, month=1)
    return first.replace(month=first.month + 1)


def business_month_bounds_utc(
    month: date, tz_name: Optional[str] = None
) -> Tuple[datetime, datetime]:
    """
    Get the UTC instants bounding a business-calendar month.

    Args:
        month: Any date within the month

    Returns:
        (start, end) with end exclusive
    """
    start = localize_business_time(month_start(month), time(0, 0), tz_name)
    end = localize_business_time(next_month_start(month), time(0, 0), tz_name)
    return start.astimezone(pytz.UTC), end.astimezone(pytz.UTC)

