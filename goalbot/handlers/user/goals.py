# goalbot/handlers/user/goals.py
from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message
from sqlalchemy.ext.asyncio import AsyncSession

from goalbot.database.models import Group
from goalbot.services.goals import GoalService
from goalbot.utils.guards import require_group
from goalbot.utils.reply import reply_safe
from goalbot.utils.text import fmt_goal, fmt_period

router = Router()


@router.message(Command("goals"))
async def goals_cmd(
    message: Message,
    session: AsyncSession,
    goal_service: GoalService,
    db_group: Group | None = None,
) -> None:
    group = await require_group(message, db_group)
    if group is None:
        return

    items = await goal_service.list_goals(session, group.id)
    if not items:
        await reply_safe(message, "ℹ️ No goals yet. Admins can create one with /newgoal.")
        return

    lines = ["🎯 <b>Group goals</b>", ""]
    for item in items:
        status = "" if item.goal.is_active else " ⏸"
        lines.append(fmt_goal(item.goal) + status)
        if item.period is not None:
            lines.append(f"    📅 {fmt_period(item.period)}")

    await reply_safe(message, "\n".join(lines))
