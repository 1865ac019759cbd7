# goalbot/utils/reply.py
from __future__ import annotations

from aiogram.types import Message
from aiogram.utils.text_decorations import html_decoration as hd

from goalbot.services.errors import (
    AmbiguousGoalError,
    GoalEngineError,
    GoalNotFoundError,
    NoActivePeriodError,
    NotEnrolledError,
    NotEntitledError,
    PeriodClosedError,
)


async def reply_safe(message: Message, text: str, **kwargs) -> None:
    """
    Group-chat reply: HTML, never a reply keyboard.
    """
    kwargs.setdefault("parse_mode", "HTML")
    kwargs.setdefault("reply_markup", None)
    await message.answer(text, **kwargs)


def engine_error_text(e: GoalEngineError) -> str:
    """User-facing text for an engine rejection."""
    if isinstance(e, PeriodClosedError):
        return "⛔ This period is already closed."
    if isinstance(e, NotEnrolledError):
        return "ℹ️ You joined after this period started. You will be included from the next period."
    if isinstance(e, NoActivePeriodError):
        return "ℹ️ This goal has no open period right now."
    if isinstance(e, GoalNotFoundError):
        return "⚠️ Goal not found in this group. See /goals."
    if isinstance(e, AmbiguousGoalError):
        refs = ", ".join(f"#{gid}" for gid in e.goal_ids)
        return f"⚠️ This group has several goals ({refs}). Pick one, e.g. <code>#{e.goal_ids[0]}</code>."
    if isinstance(e, NotEntitledError):
        return "⛔ Group goals are not available for your account."
    return "❌ " + hd.quote(str(e))
