# goalbot/database/repo/members_repo.py
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from goalbot.database.models import Group, GroupMember


async def get_group_by_chat(session: AsyncSession, chat_id: int) -> Group | None:
    res = await session.execute(select(Group).where(Group.chat_id == chat_id))
    return res.scalar_one_or_none()


async def get_or_create_group(session: AsyncSession, *, chat_id: int, title: str | None = None) -> Group:
    group = await get_group_by_chat(session, chat_id)
    if group:
        if title is not None and group.title != title:
            group.title = title
        return group

    group = Group(chat_id=chat_id, title=title)
    session.add(group)
    await session.flush()  # group.id available
    return group


async def ensure_member(session: AsyncSession, *, group_id: int, user_id: int) -> GroupMember:
    """
    Records that a user is present in a group chat. Leaving is not tracked here;
    inactive rows stay inactive.
    """
    res = await session.execute(
        select(GroupMember).where(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id,
        )
    )
    member = res.scalar_one_or_none()
    if member:
        return member

    member = GroupMember(group_id=group_id, user_id=user_id, is_active=True)
    session.add(member)
    await session.flush()
    return member


async def list_active_member_ids(session: AsyncSession, group_id: int) -> list[int]:
    res = await session.execute(
        select(GroupMember.user_id)
        .where(
            GroupMember.group_id == group_id,
            GroupMember.is_active.is_(True),
        )
        .order_by(GroupMember.user_id.asc())
    )
    return [int(r) for r in res.scalars().all()]
