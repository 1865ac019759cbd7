# goalbot/handlers/user/progress.py
from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import Message
from aiogram.utils.text_decorations import html_decoration as hd
from sqlalchemy.ext.asyncio import AsyncSession

from goalbot.database.models import Group, User
from goalbot.services.entitlements import EntitlementGate
from goalbot.services.errors import GoalEngineError
from goalbot.services.goals import GoalService
from goalbot.utils.commands import CommandUsageError, parse_goal_ref, parse_log
from goalbot.utils.guards import require_entitled, require_group
from goalbot.utils.reply import engine_error_text, reply_safe
from goalbot.utils.text import fmt_amount, fmt_period, progress_bar

router = Router()

MAX_ENTRIES_SHOWN = 7


@router.message(Command("log"))
async def log_cmd(
    message: Message,
    command: CommandObject,
    session: AsyncSession,
    goal_service: GoalService,
    entitlements: EntitlementGate,
    db_user: User | None = None,
    db_group: Group | None = None,
) -> None:
    group = await require_group(message, db_group)
    if group is None or db_user is None:
        return
    if not await require_entitled(message, entitlements):
        return

    try:
        cmd = parse_log(command.args)
    except CommandUsageError as e:
        await reply_safe(message, "⚠️ " + hd.quote(str(e)))
        return

    try:
        goal = await goal_service.resolve_goal(session, group.id, cmd.goal_id)
        # end the read; the progress write opens its own transaction
        await session.commit()

        snap = await goal_service.record_progress(
            session,
            group_id=group.id,
            goal_id=goal.id,
            user_id=db_user.id,
            amount=cmd.amount,
            note=cmd.note,
            entry_date=cmd.entry_date,
        )
    except GoalEngineError as e:
        await reply_safe(message, engine_error_text(e))
        return

    unit = hd.quote(goal.unit)
    lines = [
        f"✅ <b>{hd.quote(db_user.display_name)}</b> +{fmt_amount(cmd.amount)} {unit} · {hd.quote(goal.name)}",
        f"{progress_bar(snap.progress_percentage)} {fmt_amount(snap.current_amount)} / "
        f"{fmt_amount(snap.target_amount)} {unit} ({snap.progress_percentage}%)",
    ]
    if snap.is_completed:
        lines.append("🎯 Target reached for this period!")
    else:
        lines.append(f"Remaining: <b>{fmt_amount(snap.remaining_amount)}</b> {unit}")

    await reply_safe(message, "\n".join(lines))


@router.message(Command("progress"))
async def progress_cmd(
    message: Message,
    command: CommandObject,
    session: AsyncSession,
    goal_service: GoalService,
    db_user: User | None = None,
    db_group: Group | None = None,
) -> None:
    group = await require_group(message, db_group)
    if group is None or db_user is None:
        return

    try:
        goal = await goal_service.resolve_goal(session, group.id, parse_goal_ref(command.args))
        view = await goal_service.get_member_progress(session, goal.id, db_user.id, group_id=group.id)
    except GoalEngineError as e:
        await reply_safe(message, engine_error_text(e))
        return

    snap = view.snapshot
    unit = hd.quote(goal.unit)
    lines = [
        f"📈 <b>{hd.quote(db_user.display_name)}</b> · {hd.quote(goal.name)}",
        f"📅 <b>Period (UTC):</b> {fmt_period(view.period)}",
        "",
        f"{progress_bar(snap.progress_percentage)} {fmt_amount(snap.current_amount)} / "
        f"{fmt_amount(snap.target_amount)} {unit} ({snap.progress_percentage}%)",
    ]
    if snap.penalty_carry_over > 0:
        lines.append(
            f"Target = {fmt_amount(snap.base_target)} base + "
            f"{fmt_amount(snap.penalty_carry_over)} carried over"
        )
    lines.append(f"🔥 Streak: <b>{view.streak}</b> day(s)")

    if view.entries:
        lines.append("")
        lines.append("<b>Entries</b>")
        for entry in view.entries[-MAX_ENTRIES_SHOWN:]:
            note = f" · {hd.quote(entry.note)}" if entry.note else ""
            lines.append(f"• {entry.entry_date.isoformat()}: {fmt_amount(entry.amount)} {unit}{note}")

    await reply_safe(message, "\n".join(lines))
