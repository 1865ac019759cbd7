# goalbot/handlers/user/period.py
from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import Message
from aiogram.utils.text_decorations import html_decoration as hd
from sqlalchemy.ext.asyncio import AsyncSession

from goalbot.database.models import Group
from goalbot.services.errors import GoalEngineError
from goalbot.services.goals import GoalService
from goalbot.utils.commands import parse_goal_ref
from goalbot.utils.guards import require_group
from goalbot.utils.reply import engine_error_text, reply_safe
from goalbot.utils.text import fmt_amount, fmt_period, fmt_utc

router = Router()


@router.message(Command("period"))
async def period_cmd(
    message: Message,
    command: CommandObject,
    session: AsyncSession,
    goal_service: GoalService,
    db_group: Group | None = None,
) -> None:
    group = await require_group(message, db_group)
    if group is None:
        return

    try:
        goal = await goal_service.resolve_goal(session, group.id, parse_goal_ref(command.args))
        view = await goal_service.get_current_period(session, goal.id, group_id=group.id)
    except GoalEngineError as e:
        await reply_safe(message, engine_error_text(e))
        return

    s = view.summary
    lines = [
        f"🗓 <b>{hd.quote(goal.name)}</b> ({goal.period_type.value})",
        f"📅 <b>Period (UTC):</b> {fmt_period(view.period)}",
        f"⏳ Ends {fmt_utc(view.period.end_at)} · {view.days_remaining} day(s) left",
        f"🎯 Base target: {fmt_amount(goal.base_target)} {hd.quote(goal.unit)}",
        "",
        f"👥 Participants: {s.participants}",
        f"✅ Completed: {s.completed} ({s.completion_rate}%)",
        f"📊 Average completion: {s.average_completion}%",
        f"Σ Total: {fmt_amount(s.total_progress)} {hd.quote(goal.unit)}",
    ]
    if not goal.is_active:
        lines.append("")
        lines.append("⏸ This goal is paused: no new period after this one.")

    await reply_safe(message, "\n".join(lines))
