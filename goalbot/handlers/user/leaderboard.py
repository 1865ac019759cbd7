# goalbot/handlers/user/leaderboard.py
from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import Message
from aiogram.utils.text_decorations import html_decoration as hd
from sqlalchemy.ext.asyncio import AsyncSession

from goalbot.config import Settings
from goalbot.database.models import Group, User
from goalbot.services.errors import GoalEngineError
from goalbot.services.goals import GoalService
from goalbot.utils.commands import parse_goal_ref
from goalbot.utils.guards import require_group
from goalbot.utils.reply import engine_error_text, reply_safe
from goalbot.utils.text import fmt_amount, fmt_period

router = Router()

MEDALS = {1: "🥇", 2: "🥈", 3: "🥉"}


@router.message(Command("leaderboard"))
async def leaderboard_cmd(
    message: Message,
    command: CommandObject,
    settings: Settings,
    session: AsyncSession,
    goal_service: GoalService,
    db_user: User | None = None,
    db_group: Group | None = None,
) -> None:
    group = await require_group(message, db_group)
    if group is None:
        return

    try:
        goal = await goal_service.resolve_goal(session, group.id, parse_goal_ref(command.args))
        board = await goal_service.get_leaderboard(session, goal.id, group_id=group.id)
    except GoalEngineError as e:
        await reply_safe(message, engine_error_text(e))
        return

    lines = [
        f"🏆 <b>{hd.quote(goal.name)} Leaderboard</b>",
        f"📅 <b>Period (UTC):</b> {fmt_period(board.period)}"
        + ("" if board.period.is_active else " (closed)"),
        "",
    ]

    if not board.entries:
        lines.append("ℹ️ Nobody is enrolled in this period yet.")
        await reply_safe(message, "\n".join(lines))
        return

    unit = hd.quote(goal.unit)
    me = None
    for entry in board.entries:
        if db_user is not None and entry.user_id == db_user.id:
            me = entry

    for entry in board.entries[: settings.leaderboard_limit]:
        medal = MEDALS.get(entry.rank, f"{entry.rank}.")
        done = " ✅" if entry.is_completed else ""
        you = " <b>(you)</b>" if me is not None and entry.user_id == me.user_id else ""
        lines.append(
            f"{medal} {hd.quote(entry.display_name or 'User')} · "
            f"{fmt_amount(entry.current_amount)}/{fmt_amount(entry.target_amount)} {unit} "
            f"({entry.progress_percentage}%) · <b>{entry.points}</b> pts{done}{you}"
        )

    lines.append("")
    if me is None:
        lines.append("📍 <b>Your rank:</b> not enrolled in this period")
    else:
        lines.append(f"📍 <b>Your rank:</b> {me.rank} / {len(board.entries)} · <b>{me.points}</b> pts")

    await reply_safe(message, "\n".join(lines))
