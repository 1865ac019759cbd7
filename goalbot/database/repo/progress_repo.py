# goalbot/database/repo/progress_repo.py
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from goalbot.database.models import GroupGoalPeriod, GroupGoalProgress, ProgressEntry, User
from goalbot.database.tx import insert_for


async def existing_user_ids(session: AsyncSession, period_id: int, user_ids: Iterable[int]) -> set[int]:
    ids = list(user_ids)
    if not ids:
        return set()
    res = await session.execute(
        select(GroupGoalProgress.user_id).where(
            GroupGoalProgress.period_id == period_id,
            GroupGoalProgress.user_id.in_(ids),
        )
    )
    return {int(r) for r in res.scalars().all()}


async def insert_rows(
    session: AsyncSession,
    *,
    period_id: int,
    rows: list[tuple[int, Decimal, Decimal, Decimal]],  # [(user_id, base_target, penalty, target), ...]
) -> None:
    """
    Batch insert of progress rows. Conflicting (period, user) pairs are skipped,
    callers decide beforehand whether a duplicate is an error.
    """
    if not rows:
        return

    values = [
        {
            "period_id": period_id,
            "user_id": user_id,
            "base_target": base_target,
            "penalty_carry_over": penalty,
            "target_amount": target,
            "current_amount": Decimal("0"),
        }
        for user_id, base_target, penalty, target in rows
    ]
    stmt = insert_for(session, GroupGoalProgress).values(values).on_conflict_do_nothing(
        index_elements=["period_id", "user_id"],
    )
    await session.execute(stmt)


async def increment_if_open(
    session: AsyncSession,
    *,
    user_id: int,
    amount: Decimal,
    period_id: int | None = None,
    goal_id: int | None = None,
) -> tuple[int, int] | None:
    """
    Atomic current_amount += amount, applied only while the period is active.

    Targets either an explicit period or the goal's active period; resolving the
    period inside the UPDATE keeps this the first write of the transaction.
    Returns (progress_id, period_id), or None when nothing was updated.
    """
    if (period_id is None) == (goal_id is None):
        raise ValueError("pass exactly one of period_id / goal_id")

    open_periods = select(GroupGoalPeriod.id).where(GroupGoalPeriod.is_active.is_(True))
    if period_id is not None:
        open_periods = open_periods.where(GroupGoalPeriod.id == period_id)
    else:
        open_periods = open_periods.where(GroupGoalPeriod.group_goal_id == goal_id)

    res = await session.execute(
        update(GroupGoalProgress)
        .where(
            GroupGoalProgress.user_id == user_id,
            GroupGoalProgress.period_id.in_(open_periods),
        )
        .values(current_amount=GroupGoalProgress.current_amount + amount)
        .returning(GroupGoalProgress.id, GroupGoalProgress.period_id)
        .execution_options(synchronize_session=False)
    )
    row = res.first()
    if row is None:
        return None
    return int(row[0]), int(row[1])


async def merge_entry(
    session: AsyncSession,
    *,
    progress_id: int,
    entry_date: date,
    amount: Decimal,
    note: str | None,
) -> None:
    """
    Same-day entries are summed; notes are appended in arrival order.
    """
    ins = insert_for(session, ProgressEntry).values(
        progress_id=progress_id,
        entry_date=entry_date,
        amount=amount,
        note=note,
    )
    stmt = ins.on_conflict_do_update(
        index_elements=["progress_id", "entry_date"],
        set_={
            "amount": ProgressEntry.amount + ins.excluded.amount,
            "note": case(
                (ins.excluded.note.is_(None), ProgressEntry.note),
                (ProgressEntry.note.is_(None), ins.excluded.note),
                else_=ProgressEntry.note + "; " + ins.excluded.note,
            ),
            "updated_at": func.now(),
        },
    )
    await session.execute(stmt)


async def get_row(session: AsyncSession, period_id: int, user_id: int) -> GroupGoalProgress | None:
    res = await session.execute(
        select(GroupGoalProgress)
        .where(
            GroupGoalProgress.period_id == period_id,
            GroupGoalProgress.user_id == user_id,
        )
        .execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def get_row_by_id(session: AsyncSession, progress_id: int) -> GroupGoalProgress | None:
    res = await session.execute(
        select(GroupGoalProgress)
        .where(GroupGoalProgress.id == progress_id)
        .execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def list_rows(
    session: AsyncSession,
    period_id: int,
    *,
    for_update: bool = False,
) -> list[GroupGoalProgress]:
    q = (
        select(GroupGoalProgress)
        .where(GroupGoalProgress.period_id == period_id)
        .order_by(GroupGoalProgress.user_id.asc())
        .execution_options(populate_existing=True)
    )
    if for_update:
        # waits for in-flight increments on these rows (no-op on SQLite)
        q = q.with_for_update()
    res = await session.execute(q)
    return list(res.scalars().all())


async def list_rows_with_users(
    session: AsyncSession,
    period_id: int,
) -> list[tuple[GroupGoalProgress, User]]:
    res = await session.execute(
        select(GroupGoalProgress, User)
        .join(User, User.id == GroupGoalProgress.user_id)
        .where(GroupGoalProgress.period_id == period_id)
        .order_by(GroupGoalProgress.user_id.asc())
        .execution_options(populate_existing=True)
    )
    return [(p, u) for p, u in res.all()]


async def list_entries(session: AsyncSession, progress_id: int) -> list[ProgressEntry]:
    res = await session.execute(
        select(ProgressEntry)
        .where(ProgressEntry.progress_id == progress_id)
        .order_by(ProgressEntry.entry_date.asc())
        .execution_options(populate_existing=True)
    )
    return list(res.scalars().all())
