from datetime import date, datetime

import pytest

from src.errors import InvalidInputError
from src.market.calendar import (
    parse_iso_date,
    to_iso,
    is_business_day,
    previous_business_day,
    next_business_day,
    business_days_between,
)

CARNIVAL = {"2024-02-12", "2024-02-13"}


def test_parse_iso_date_accepts_string_and_date():
    assert parse_iso_date("2024-03-15") == date(2024, 3, 15)
    assert parse_iso_date(date(2024, 3, 15)) == date(2024, 3, 15)
    assert parse_iso_date(datetime(2024, 3, 15, 23, 59)) == date(2024, 3, 15)


@pytest.mark.parametrize("raw", ["2024-13-01", "15/03/2024", "2024-03-15T10:00:00", "", None, 20240315])
def test_parse_iso_date_rejects_garbage(raw):
    with pytest.raises(InvalidInputError) as exc:
        parse_iso_date(raw)
    assert exc.value.raw_input == raw


def test_to_iso_does_not_shift_dates():
    assert to_iso(date(2024, 12, 31)) == "2024-12-31"


def test_weekends_and_holidays_are_not_business_days():
    assert is_business_day(date(2024, 3, 8))  # Friday
    assert not is_business_day(date(2024, 3, 9))  # Saturday
    assert not is_business_day(date(2024, 3, 10))  # Sunday
    assert not is_business_day(date(2024, 2, 12), CARNIVAL)


def test_previous_business_day_skips_weekend_and_holidays():
    assert previous_business_day(date(2024, 3, 11)) == date(2024, 3, 8)
    # Wednesday after carnival -> Friday before
    assert previous_business_day(date(2024, 2, 14), CARNIVAL) == date(2024, 2, 9)


def test_next_business_day():
    assert next_business_day(date(2024, 3, 8)) == date(2024, 3, 11)
    assert next_business_day(date(2024, 2, 9), CARNIVAL) == date(2024, 2, 14)


def test_business_days_between_is_inclusive():
    days = business_days_between(date(2024, 3, 8), date(2024, 3, 12))
    assert days == [date(2024, 3, 8), date(2024, 3, 11), date(2024, 3, 12)]
    assert business_days_between(date(2024, 3, 9), date(2024, 3, 10)) == []
