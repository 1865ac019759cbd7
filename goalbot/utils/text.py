# goalbot/utils/text.py
from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

from aiogram.utils.text_decorations import html_decoration as hd

from goalbot.database.models import GroupGoal, GroupGoalPeriod


def fmt_amount(value: Decimal | int | float) -> str:
    # 12.50 -> "12.5", 10.00 -> "10"
    text = f"{Decimal(value):.2f}"
    return text.rstrip("0").rstrip(".") if "." in text else text


def fmt_period(period: GroupGoalPeriod) -> str:
    # end is exclusive, show the last day
    last_day = (period.end_at - timedelta(microseconds=1)).date()
    return f"{period.start_at.date().isoformat()} → {last_day.isoformat()}"


def fmt_goal(goal: GroupGoal) -> str:
    return (
        f"<b>#{goal.id} {hd.quote(goal.name)}</b> · {goal.period_type.value} · "
        f"{fmt_amount(goal.base_target)} {hd.quote(goal.unit)}"
    )


def fmt_utc(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%d %H:%M UTC")


def progress_bar(percentage: Decimal, width: int = 10) -> str:
    filled = int(min(Decimal(100), max(Decimal(0), Decimal(percentage))) * width / 100)
    return "▰" * filled + "▱" * (width - filled)
