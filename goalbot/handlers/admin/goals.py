# goalbot/handlers/admin/goals.py
from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import Message
from aiogram.utils.text_decorations import html_decoration as hd
from sqlalchemy.ext.asyncio import AsyncSession

from goalbot.config import Settings
from goalbot.database.models import Group, User
from goalbot.services.entitlements import EntitlementGate
from goalbot.services.errors import GoalEngineError
from goalbot.services.goals import GoalService
from goalbot.utils.commands import CommandUsageError, parse_goal_ref, parse_newgoal, parse_settarget
from goalbot.utils.guards import require_admin_or_reply, require_entitled, require_group
from goalbot.utils.reply import engine_error_text, reply_safe
from goalbot.utils.text import fmt_amount, fmt_goal, fmt_period

router = Router()


@router.message(Command("newgoal"))
async def newgoal_cmd(
    message: Message,
    command: CommandObject,
    settings: Settings,
    session: AsyncSession,
    goal_service: GoalService,
    entitlements: EntitlementGate,
    db_user: User | None = None,
    db_group: Group | None = None,
) -> None:
    group = await require_group(message, db_group)
    if group is None:
        return
    if not await require_admin_or_reply(message, settings):
        return
    if not await require_entitled(message, entitlements):
        return

    try:
        cmd = parse_newgoal(command.args)
        created = await goal_service.create_goal(
            session,
            group_id=group.id,
            name=cmd.name,
            unit=cmd.unit,
            period_type=cmd.period_type,
            base_target=cmd.target,
            created_by=db_user.id if db_user else None,
        )
    except (CommandUsageError, ValueError, GoalEngineError) as e:
        text = engine_error_text(e) if isinstance(e, GoalEngineError) else "⚠️ " + hd.quote(str(e))
        await reply_safe(message, text)
        return

    await reply_safe(
        message,
        "✅ <b>Goal created</b>\n"
        f"{fmt_goal(created.goal)}\n"
        f"📅 First period (UTC): {fmt_period(created.period)}\n"
        f"👥 Members enrolled: {created.seeded}\n\n"
        f"Log progress with <code>/log #{created.goal.id} amount</code>",
    )


@router.message(Command("settarget"))
async def settarget_cmd(
    message: Message,
    command: CommandObject,
    settings: Settings,
    session: AsyncSession,
    goal_service: GoalService,
    db_group: Group | None = None,
) -> None:
    group = await require_group(message, db_group)
    if group is None:
        return
    if not await require_admin_or_reply(message, settings):
        return

    try:
        cmd = parse_settarget(command.args)
        goal = await goal_service.resolve_goal(session, group.id, cmd.goal_id)
        await session.commit()
        goal = await goal_service.set_base_target(session, goal.id, cmd.amount, group_id=group.id)
    except CommandUsageError as e:
        await reply_safe(message, "⚠️ " + hd.quote(str(e)))
        return
    except GoalEngineError as e:
        await reply_safe(message, engine_error_text(e))
        return

    await reply_safe(
        message,
        f"✅ Base target of <b>#{goal.id} {hd.quote(goal.name)}</b> is now "
        f"{fmt_amount(goal.base_target)} {hd.quote(goal.unit)}.\n"
        "It applies from the next period.",
    )


@router.message(Command("endgoal"))
async def endgoal_cmd(
    message: Message,
    command: CommandObject,
    settings: Settings,
    session: AsyncSession,
    goal_service: GoalService,
    db_group: Group | None = None,
) -> None:
    group = await require_group(message, db_group)
    if group is None:
        return
    if not await require_admin_or_reply(message, settings):
        return

    try:
        goal = await goal_service.resolve_goal(session, group.id, parse_goal_ref(command.args))
        await session.commit()
        goal = await goal_service.deactivate_goal(session, goal.id, group_id=group.id)
    except GoalEngineError as e:
        await reply_safe(message, engine_error_text(e))
        return

    await reply_safe(
        message,
        f"⏸ <b>#{goal.id} {hd.quote(goal.name)}</b> paused.\n"
        "The current period runs to its end; no new period will start.",
    )


@router.message(Command("resumegoal"))
async def resumegoal_cmd(
    message: Message,
    command: CommandObject,
    settings: Settings,
    session: AsyncSession,
    goal_service: GoalService,
    db_group: Group | None = None,
) -> None:
    group = await require_group(message, db_group)
    if group is None:
        return
    if not await require_admin_or_reply(message, settings):
        return

    goal_id = parse_goal_ref(command.args)
    if goal_id is None:
        await reply_safe(message, "⚠️ Usage: /resumegoal #goal")
        return

    try:
        item = await goal_service.reactivate_goal(session, goal_id, group_id=group.id)
    except GoalEngineError as e:
        await reply_safe(message, engine_error_text(e))
        return

    await reply_safe(
        message,
        f"▶️ <b>#{item.goal.id} {hd.quote(item.goal.name)}</b> is active again.\n"
        f"📅 Period (UTC): {fmt_period(item.period)}",
    )
