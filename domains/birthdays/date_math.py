"""Calendar arithmetic for yearly events.

All functions are pure. "Today" is always the local calendar date of the
reference instant in the configured timezone; time of day never matters.

Leap-day policy: a Feb 29 birthday falls on March 1 in non-leap years.
"""

import calendar
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import ConfigurationError, InvalidMonthDay
from .models import MonthDay

LEAP_DAY = MonthDay(2, 29)
LEAP_DAY_FALLBACK = MonthDay(3, 1)


def resolve_timezone(name: str) -> ZoneInfo:
    """Load an IANA timezone, failing loudly on unknown names.

    Raises:
        ConfigurationError: If the timezone cannot be loaded
    """
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f"Unknown timezone {name!r}: {e}") from e


def _coerce(month_day) -> MonthDay:
    """Accept a MonthDay or a (month, day) pair; anything else is rejected."""
    if isinstance(month_day, MonthDay):
        return month_day
    if isinstance(month_day, tuple) and len(month_day) == 2:
        return MonthDay(*month_day)
    raise InvalidMonthDay(f"Expected a month/day, got {month_day!r}")


def local_now(reference: datetime, tz: ZoneInfo) -> datetime:
    """An instant in local time. Naive instants are treated as UTC."""
    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=timezone.utc)
    return reference.astimezone(tz)


def local_today(reference: datetime, tz: ZoneInfo) -> date:
    """Local calendar date of an instant."""
    return local_now(reference, tz).date()


def occurrence_in_year(month_day: MonthDay, year: int) -> date:
    """The date a month/day falls on in a given year (Feb 29 -> Mar 1 in non-leap years)."""
    month_day = _coerce(month_day)
    if month_day.is_leap_day and not calendar.isleap(year):
        return date(year, LEAP_DAY_FALLBACK.month, LEAP_DAY_FALLBACK.day)
    return date(year, month_day.month, month_day.day)


def next_occurrence(month_day: MonthDay, reference: datetime, tz: ZoneInfo) -> date:
    """Soonest date on or after the reference's local date matching month_day.

    Args:
        month_day: The yearly date
        reference: Current instant
        tz: Timezone defining "today"

    Returns:
        This year's occurrence, or next year's if this year's has passed
    """
    today = local_today(reference, tz)
    candidate = occurrence_in_year(month_day, today.year)
    if candidate < today:
        candidate = occurrence_in_year(month_day, today.year + 1)
    return candidate


def days_until(target_date: date, reference: datetime, tz: ZoneInfo) -> int:
    """Whole local calendar days from today until target_date."""
    return (target_date - local_today(reference, tz)).days


def month_days_on(target_date: date) -> list[MonthDay]:
    """Every month/day whose occurrence lands on target_date.

    Normally one entry; March 1 of a non-leap year also carries Feb 29.
    """
    month_days = [MonthDay(target_date.month, target_date.day)]
    if (target_date.month, target_date.day) == (LEAP_DAY_FALLBACK.month, LEAP_DAY_FALLBACK.day) \
            and not calendar.isleap(target_date.year):
        month_days.append(LEAP_DAY)
    return month_days


def shift_days(day: date, days: int) -> date:
    return day + timedelta(days=days)
