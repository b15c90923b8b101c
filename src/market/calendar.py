"""
Exchange business-day arithmetic.

All dates are plain calendar dates in the exchange's local timezone.
They are never converted through UTC.
"""

from datetime import date, datetime, timedelta
from typing import AbstractSet, List, Union

from src.errors import InvalidInputError

DateLike = Union[date, str]

# Longest run of consecutive non-trading days we are willing to step over
_MAX_CLOSED_RUN = 15


def parse_iso_date(value: DateLike) -> date:
    """
    Parse a YYYY-MM-DD string, or pass a date through.

    Raises:
        InvalidInputError: If the value is not a date or a date-only ISO string
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if len(text) == 10:
            try:
                return date.fromisoformat(text)
            except ValueError:
                pass
    raise InvalidInputError(
        f"Invalid date '{value}', expected YYYY-MM-DD", raw_input=value
    )


def to_iso(d: date) -> str:
    return d.isoformat()


def is_business_day(d: date, holidays: AbstractSet[str] = frozenset()) -> bool:
    """True if weekday and not an exchange holiday."""
    if d.weekday() >= 5:
        return False
    return d.isoformat() not in holidays


def previous_business_day(d: date, holidays: AbstractSet[str] = frozenset()) -> date:
    """Closest business day strictly before d."""
    cur = d
    for _ in range(_MAX_CLOSED_RUN):
        cur -= timedelta(days=1)
        if is_business_day(cur, holidays):
            return cur
    raise ValueError(f"No business day found in the {_MAX_CLOSED_RUN} days before {d}")


def next_business_day(d: date, holidays: AbstractSet[str] = frozenset()) -> date:
    """Closest business day strictly after d."""
    cur = d
    for _ in range(_MAX_CLOSED_RUN):
        cur += timedelta(days=1)
        if is_business_day(cur, holidays):
            return cur
    raise ValueError(f"No business day found in the {_MAX_CLOSED_RUN} days after {d}")


def business_days_between(
    start: date, end: date, holidays: AbstractSet[str] = frozenset()
) -> List[date]:
    """Business days in [start, end], oldest first."""
    days = []
    cur = start
    while cur <= end:
        if is_business_day(cur, holidays):
            days.append(cur)
        cur += timedelta(days=1)
    return days
