# goalbot/utils/periods.py
from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, time, timedelta

from goalbot.utils.dates import month_start, next_month_start, to_utc_naive, week_start_monday


class PeriodType(str, enum.Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True, slots=True)
class PeriodBounds:
    """Half-open UTC interval [start, end)."""

    start: datetime
    end: datetime

    def contains(self, instant: datetime) -> bool:
        instant = to_utc_naive(instant)
        return self.start <= instant < self.end

    @property
    def days(self) -> int:
        return (self.end - self.start).days


def parse_period_type(raw: str | PeriodType) -> PeriodType:
    if isinstance(raw, PeriodType):
        return raw
    try:
        return PeriodType(str(raw).strip().lower())
    except ValueError as e:
        raise ValueError(f"Unknown period type: {raw!r} (expected weekly or monthly)") from e


def _midnight(d) -> datetime:
    return datetime.combine(d, time.min)


def bounds_for(period_type: PeriodType | str, reference: datetime) -> PeriodBounds:
    """
    Aligned period containing `reference`.

    weekly:  Monday 00:00 UTC -> next Monday 00:00 UTC
    monthly: 1st of month 00:00 UTC -> 1st of next month 00:00 UTC
    """
    pt = parse_period_type(period_type)
    day = to_utc_naive(reference).date()

    if pt is PeriodType.WEEKLY:
        start = _midnight(week_start_monday(day))
        return PeriodBounds(start=start, end=start + timedelta(days=7))

    start_day = month_start(day)
    return PeriodBounds(start=_midnight(start_day), end=_midnight(next_month_start(start_day)))


def next_bounds(period_type: PeriodType | str, previous_end: datetime) -> PeriodBounds:
    """
    Successor of a period ending at `previous_end`. Always starts exactly at
    `previous_end`; an unaligned predecessor gets a shortened successor that
    ends on the next aligned boundary.
    """
    previous_end = to_utc_naive(previous_end)
    aligned = bounds_for(period_type, previous_end)
    return PeriodBounds(start=previous_end, end=aligned.end)


def current_and_next(period_type: PeriodType | str, reference: datetime) -> tuple[PeriodBounds, PeriodBounds]:
    current = bounds_for(period_type, reference)
    return current, next_bounds(period_type, current.end)
