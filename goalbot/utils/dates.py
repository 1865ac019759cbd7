# goalbot/utils/dates.py
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone


def utc_now() -> datetime:
    """Naive UTC timestamp (storage convention: naive means UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def to_utc_naive(dt: datetime) -> datetime:
    # Aware values are converted, naive values are assumed to already be UTC.
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def week_start_monday(d: date) -> date:
    # Monday = 0 ... Sunday = 6
    return d - timedelta(days=d.weekday())


def month_start(d: date) -> date:
    return d.replace(day=1)


def next_month_start(d: date) -> date:
    if d.month == 12:
        return date(d.year + 1, 1, 1)
    return date(d.year, d.month + 1, 1)
