"""Exchange calendar, session hours and clock."""

from .calendar import (
    parse_iso_date,
    to_iso,
    is_business_day,
    previous_business_day,
    next_business_day,
    business_days_between,
)
from .clock import Clock
from .hours import MarketHours

__all__ = [
    "parse_iso_date",
    "to_iso",
    "is_business_day",
    "previous_business_day",
    "next_business_day",
    "business_days_between",
    "Clock",
    "MarketHours",
]
