from __future__ import annotations
import calendar
import re
from datetime import date, datetime, timedelta
from typing import List, Tuple

_DATE_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_MONTH_KEY_RE = re.compile(r"^(\d{4})-(\d{2})$")


def _local_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            # wall clock of this machine, never UTC
            value = value.astimezone()
        return value.date()
    return value


def to_date_key(value: date | datetime) -> str:
    """
    Canonical YYYY-MM-DD key built from local calendar components.
    Two datetimes on the same local day always share a key.
    """
    d = _local_date(value)
    return f"{d.year:04d}-{d.month:02d}-{d.day:02d}"


def parse_date_key(key: str) -> date:
    # tolerate full ISO timestamps by keeping the day part only
    day_part = key.split("T", 1)[0]
    if not _DATE_KEY_RE.match(day_part):
        raise ValueError(f"Invalid date key: {key!r}")
    return date.fromisoformat(day_part)


def to_month_key(value: date | datetime) -> str:
    d = _local_date(value)
    return f"{d.year:04d}-{d.month:02d}"


def parse_month_key(key: str) -> Tuple[int, int]:
    match = _MONTH_KEY_RE.match(key or "")
    if not match:
        raise ValueError(f"Invalid month key: {key!r}")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month key: {key!r}")
    return year, month


def add_days(d: date, amount: int) -> date:
    return d + timedelta(days=amount)


def enumerate_local_days(start: date | datetime, end: date | datetime) -> List[date]:
    """
    Inclusive, chronological list of days from start to end.
    Empty when end is before start.
    """
    first = _local_date(start)
    last = _local_date(end)
    span = (last - first).days
    return [first + timedelta(days=i) for i in range(span + 1)]


def rolling_year_window(reference: date | datetime | None = None) -> Tuple[date, date]:
    end = _local_date(reference) if reference is not None else date.today()
    try:
        start = end.replace(year=end.year - 1)
    except ValueError:
        # Feb 29 rolls over to Mar 1 of the previous year
        start = date(end.year - 1, 3, 1)
    return start, end


def month_days(month_key: str) -> List[date]:
    year, month = parse_month_key(month_key)
    last_day = calendar.monthrange(year, month)[1]
    return enumerate_local_days(date(year, month, 1), date(year, month, last_day))


def date_in_month(date_key: str, month_key: str) -> bool:
    return date_key.startswith(month_key + "-")
