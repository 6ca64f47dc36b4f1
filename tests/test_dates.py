# tests/test_dates.py
import pytest
from datetime import date, datetime

from dates import (
    add_days,
    date_in_month,
    enumerate_local_days,
    month_days,
    parse_date_key,
    parse_month_key,
    rolling_year_window,
    to_date_key,
    to_month_key,
)


class TestDateKeys:
    """Local calendar keys."""

    def test_same_local_day_shares_key(self):
        assert to_date_key(datetime(2024, 3, 9, 0, 1)) == "2024-03-09"
        assert to_date_key(datetime(2024, 3, 9, 23, 59)) == "2024-03-09"
        assert to_date_key(date(2024, 3, 9)) == "2024-03-09"

    def test_aware_datetime_uses_local_wall_clock(self):
        late = datetime(2024, 1, 1, 23, 59).astimezone()
        assert to_date_key(late) == "2024-01-01"

    def test_zero_padding(self):
        assert to_date_key(date(999, 1, 2)) == "0999-01-02"
        assert to_month_key(date(2024, 7, 31)) == "2024-07"

    def test_parse_date_key_accepts_timestamps(self):
        assert parse_date_key("2024-05-01T12:00:00") == date(2024, 5, 1)

    @pytest.mark.parametrize("bad", ["2024-5-1", "yesterday", ""])
    def test_parse_date_key_rejects_garbage(self, bad):
        with pytest.raises(ValueError):
            parse_date_key(bad)

    def test_month_keys(self):
        assert parse_month_key("2024-02") == (2024, 2)
        with pytest.raises(ValueError):
            parse_month_key("2024-13")
        with pytest.raises(ValueError):
            parse_month_key("2024-02-01")
        assert date_in_month("2024-02-29", "2024-02")
        assert not date_in_month("2024-12-01", "2024-1")


class TestIntervals:
    """Day enumeration and the rolling year."""

    def test_enumeration_is_inclusive_and_ordered(self):
        days = enumerate_local_days(date(2024, 2, 27), date(2024, 3, 1))
        assert days == [date(2024, 2, 27), date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1)]
        # a list, so it can be walked twice
        assert list(days) == list(days)

    def test_add_days_crosses_months(self):
        assert add_days(date(2024, 3, 1), -1) == date(2024, 2, 29)
        assert add_days(date(2024, 12, 31), 1) == date(2025, 1, 1)

    def test_enumeration_empty_when_reversed(self):
        assert enumerate_local_days(date(2024, 3, 2), date(2024, 3, 1)) == []

    def test_rolling_year_window(self):
        assert rolling_year_window(date(2024, 10, 18)) == (date(2023, 10, 18), date(2024, 10, 18))

    def test_rolling_year_window_leap_day(self):
        assert rolling_year_window(date(2024, 2, 29)) == (date(2023, 3, 1), date(2024, 2, 29))

    def test_month_days(self):
        days = month_days("2024-02")
        assert len(days) == 29
        assert days[0] == date(2024, 2, 1)
        assert days[-1] == date(2024, 2, 29)
