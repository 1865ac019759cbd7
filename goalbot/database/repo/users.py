# goalbot/database/repo/users.py
from __future__ import annotations

from typing import Optional

from aiogram.types import TelegramObject
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from goalbot.database.models import Group, User
from goalbot.database.repo.members_repo import ensure_member, get_or_create_group

GROUP_CHAT_TYPES = {"group", "supergroup"}


def _extract_from_user(event: TelegramObject):
    """
    Best-effort extract aiogram `from_user` from different update types.
    Works for Message, CallbackQuery, InlineQuery, etc.
    """
    u = getattr(event, "from_user", None)
    if u:
        return u

    msg = getattr(event, "message", None)
    if msg and getattr(msg, "from_user", None):
        return msg.from_user

    return None


def _extract_chat(event: TelegramObject):
    chat = getattr(event, "chat", None)
    if chat:
        return chat
    msg = getattr(event, "message", None)
    return getattr(msg, "chat", None) if msg else None


async def upsert_user_from_event(session: AsyncSession, event: TelegramObject) -> Optional[User]:
    tg = _extract_from_user(event)
    if tg is None or getattr(tg, "is_bot", False):
        return None

    q = select(User).where(User.telegram_id == tg.id)
    res = await session.execute(q)
    user = res.scalar_one_or_none()

    if user is None:
        user = User(
            telegram_id=tg.id,
            username=tg.username,
            first_name=tg.first_name,
            last_name=tg.last_name,
        )
        session.add(user)
        await session.flush()  # ensures `user.id` exists before handlers use it
        return user

    # Update fields if changed (keeps DB fresh)
    if (user.username, user.first_name, user.last_name) != (tg.username, tg.first_name, tg.last_name):
        user.username = tg.username
        user.first_name = tg.first_name
        user.last_name = tg.last_name
    return user


async def upsert_membership_from_event(
    session: AsyncSession,
    event: TelegramObject,
    user: User,
) -> Optional[Group]:
    """
    Group chats only: record the chat as a group and the sender as a member of it.
    Returns the group.
    """
    chat = _extract_chat(event)
    if chat is None or getattr(chat, "type", None) not in GROUP_CHAT_TYPES:
        return None

    group = await get_or_create_group(session, chat_id=chat.id, title=getattr(chat, "title", None))
    await ensure_member(session, group_id=group.id, user_id=user.id)
    return group
