# goalbot/database/repo/periods_repo.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from goalbot.database.models import GroupGoalPeriod
from goalbot.utils.periods import PeriodBounds


async def get_period(session: AsyncSession, period_id: int) -> GroupGoalPeriod | None:
    res = await session.execute(
        select(GroupGoalPeriod)
        .where(GroupGoalPeriod.id == period_id)
        .execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def get_active_period(session: AsyncSession, goal_id: int) -> GroupGoalPeriod | None:
    res = await session.execute(
        select(GroupGoalPeriod)
        .where(
            GroupGoalPeriod.group_goal_id == goal_id,
            GroupGoalPeriod.is_active.is_(True),
        )
        .execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def get_latest_period(session: AsyncSession, goal_id: int) -> GroupGoalPeriod | None:
    res = await session.execute(
        select(GroupGoalPeriod)
        .where(GroupGoalPeriod.group_goal_id == goal_id)
        .order_by(GroupGoalPeriod.start_at.desc())
        .limit(1)
    )
    return res.scalar_one_or_none()


async def list_periods(session: AsyncSession, goal_id: int) -> list[GroupGoalPeriod]:
    res = await session.execute(
        select(GroupGoalPeriod)
        .where(GroupGoalPeriod.group_goal_id == goal_id)
        .order_by(GroupGoalPeriod.start_at.asc())
        .execution_options(populate_existing=True)
    )
    return list(res.scalars().all())


async def create_period(session: AsyncSession, *, goal_id: int, bounds: PeriodBounds) -> GroupGoalPeriod:
    period = GroupGoalPeriod(
        group_goal_id=goal_id,
        start_at=bounds.start,
        end_at=bounds.end,
        is_active=True,
    )
    session.add(period)
    await session.flush()  # enforces one-active-period + (goal, start) uniqueness
    return period


async def close_period(session: AsyncSession, period_id: int, now: datetime) -> bool:
    """
    Flips is_active true -> false exactly once.
    Returns False if the period was already closed (or does not exist).
    """
    res = await session.execute(
        update(GroupGoalPeriod)
        .where(
            GroupGoalPeriod.id == period_id,
            GroupGoalPeriod.is_active.is_(True),
        )
        .values(is_active=False, finalized_at=now)
        .execution_options(synchronize_session=False)
    )
    return (res.rowcount or 0) > 0


async def lock_period_shared(
    session: AsyncSession,
    *,
    period_id: int | None = None,
    goal_id: int | None = None,
) -> None:
    """
    SELECT ... FOR SHARE on the period row: blocks while a finalize holds it,
    then sees the committed is_active. Only meaningful on databases with row locks.
    """
    q = select(GroupGoalPeriod.id)
    if period_id is not None:
        q = q.where(GroupGoalPeriod.id == period_id)
    else:
        q = q.where(GroupGoalPeriod.group_goal_id == goal_id, GroupGoalPeriod.is_active.is_(True))
    await session.execute(q.with_for_update(read=True))
