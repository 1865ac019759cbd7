# goalbot/database/repo/goals_repo.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from goalbot.database.models import GroupGoal, GroupGoalPeriod
from goalbot.utils.periods import PeriodType


async def create_goal(
    session: AsyncSession,
    *,
    group_id: int,
    name: str,
    unit: str,
    period_type: PeriodType,
    base_target: Decimal,
    created_by: int | None = None,
    description: str | None = None,
) -> GroupGoal:
    goal = GroupGoal(
        group_id=group_id,
        name=name,
        unit=unit,
        period_type=period_type,
        base_target=base_target,
        created_by=created_by,
        description=description,
        is_active=True,
    )
    session.add(goal)
    await session.flush()  # goal.id available
    return goal


async def get_goal(session: AsyncSession, goal_id: int) -> GroupGoal | None:
    res = await session.execute(
        select(GroupGoal).where(GroupGoal.id == goal_id).execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def list_goals_for_group(
    session: AsyncSession,
    group_id: int,
    *,
    active_only: bool = True,
) -> list[GroupGoal]:
    q = select(GroupGoal).where(GroupGoal.group_id == group_id)
    if active_only:
        q = q.where(GroupGoal.is_active.is_(True))
    res = await session.execute(q.order_by(GroupGoal.id.asc()))
    return list(res.scalars().all())


async def set_base_target(session: AsyncSession, goal_id: int, amount: Decimal) -> bool:
    res = await session.execute(
        update(GroupGoal).where(GroupGoal.id == goal_id).values(base_target=amount)
    )
    return (res.rowcount or 0) > 0


async def set_active(session: AsyncSession, goal_id: int, is_active: bool) -> bool:
    res = await session.execute(
        update(GroupGoal).where(GroupGoal.id == goal_id).values(is_active=is_active)
    )
    return (res.rowcount or 0) > 0


async def claim_for_sweep(session: AsyncSession, goal_id: int, now: datetime) -> bool:
    """
    First write of a transition unit of work. Takes the goal row lock (or the
    SQLite write lock) so two sweeps never transition the same goal at once.
    """
    res = await session.execute(
        update(GroupGoal).where(GroupGoal.id == goal_id).values(last_swept_at=now)
    )
    return (res.rowcount or 0) > 0


async def list_goal_ids_for_sweep(session: AsyncSession) -> list[int]:
    """
    Active goals, plus deactivated goals whose last period is still open
    (it still has to be finalized).
    """
    has_open_period = (
        select(GroupGoalPeriod.id)
        .where(
            GroupGoalPeriod.group_goal_id == GroupGoal.id,
            GroupGoalPeriod.is_active.is_(True),
        )
        .exists()
    )
    res = await session.execute(
        select(GroupGoal.id)
        .where(or_(GroupGoal.is_active.is_(True), has_open_period))
        .order_by(GroupGoal.id.asc())
    )
    return [int(r) for r in res.scalars().all()]
