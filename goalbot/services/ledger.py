# goalbot/services/ledger.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable, Mapping, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from goalbot.database.models import GroupGoalPeriod, GroupGoalProgress, ProgressEntry
from goalbot.database.repo import goals_repo, periods_repo, progress_repo
from goalbot.database.tx import supports_row_locks, transactional
from goalbot.services.errors import (
    DuplicateRowError,
    GoalNotFoundError,
    InvalidAmountError,
    InvalidEntryDateError,
    NoActivePeriodError,
    NotEnrolledError,
    PeriodClosedError,
    PeriodNotFoundError,
    parse_amount,
)
from goalbot.services.leaderboard import display_percentage
from goalbot.services.penalty import ZERO, carry_over, next_target
from goalbot.utils.dates import utc_now, utc_today


@dataclass(frozen=True, slots=True)
class ProgressSnapshot:
    progress_id: int
    period_id: int
    user_id: int
    base_target: Decimal
    penalty_carry_over: Decimal
    target_amount: Decimal
    current_amount: Decimal
    display_name: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.current_amount >= self.target_amount

    @property
    def remaining_amount(self) -> Decimal:
        return carry_over(self.target_amount, self.current_amount)

    @property
    def progress_percentage(self) -> Decimal:
        return display_percentage(self.current_amount, self.target_amount)

    @classmethod
    def from_row(cls, row: GroupGoalProgress, display_name: str | None = None) -> "ProgressSnapshot":
        return cls(
            progress_id=int(row.id),
            period_id=int(row.period_id),
            user_id=int(row.user_id),
            base_target=Decimal(row.base_target),
            penalty_carry_over=Decimal(row.penalty_carry_over or 0),
            target_amount=Decimal(row.target_amount),
            current_amount=Decimal(row.current_amount or 0),
            display_name=display_name,
        )


def period_last_day(period: GroupGoalPeriod) -> date:
    # end_at is exclusive
    return (period.end_at - timedelta(microseconds=1)).date()


def progress_streak(entries: Sequence[ProgressEntry], today: date) -> int:
    """
    Consecutive days with positive progress, ending today or yesterday.
    """
    days = {e.entry_date for e in entries if Decimal(e.amount) > ZERO}
    cursor = today if today in days else today - timedelta(days=1)
    streak = 0
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


class ProgressLedger:
    """
    Per-member progress rows of a single period.

    The underscored variants run inside the caller's unit of work; the public
    ones open their own transaction (or a SAVEPOINT when one is already active).
    """

    @staticmethod
    async def open(
        session: AsyncSession,
        period: GroupGoalPeriod,
        members: Iterable[int],
        base_target: Decimal,
        penalty_by_member: Mapping[int, Decimal] | None = None,
        *,
        ignore_existing: bool = False,
    ) -> int:
        async with transactional(session):
            return await ProgressLedger._open(
                session,
                period,
                members,
                base_target,
                penalty_by_member,
                ignore_existing=ignore_existing,
            )

    @staticmethod
    async def _open(
        session: AsyncSession,
        period: GroupGoalPeriod,
        members: Iterable[int],
        base_target: Decimal,
        penalty_by_member: Mapping[int, Decimal] | None = None,
        *,
        ignore_existing: bool = False,
    ) -> int:
        if not period.is_active:
            raise PeriodClosedError(period.id)

        base_target = Decimal(base_target)
        if not base_target.is_finite() or base_target <= ZERO:
            raise InvalidAmountError(base_target, "base target must be > 0")

        penalties = penalty_by_member or {}
        member_ids = list(dict.fromkeys(int(m) for m in members))

        existing = await progress_repo.existing_user_ids(session, period.id, member_ids)
        if existing and not ignore_existing:
            raise DuplicateRowError(period.id, list(existing))

        rows = []
        for user_id in member_ids:
            if user_id in existing:
                continue
            penalty = Decimal(penalties.get(user_id, ZERO))
            if penalty < ZERO:
                raise InvalidAmountError(penalty, "penalty carry-over cannot be negative")
            rows.append((user_id, base_target, penalty, next_target(base_target, penalty)))

        await progress_repo.insert_rows(session, period_id=period.id, rows=rows)
        return len(rows)

    @staticmethod
    async def record_progress(
        session: AsyncSession,
        *,
        user_id: int,
        amount: Decimal | int | str,
        period_id: int | None = None,
        goal_id: int | None = None,
        entry_date: date | None = None,
        note: str | None = None,
        today: date | None = None,
    ) -> ProgressSnapshot:
        """
        Adds `amount` to the member's row and merges it into that day's entry.

        Addressed either by `period_id`, or by `goal_id` (the goal's active period).
        The guarded increment is the first write of the transaction (preceded by a
        shared lock on the period where row locks exist), so a concurrent finalize
        either sees this write or makes it fail with PeriodClosedError.
        """
        if (period_id is None) == (goal_id is None):
            raise ValueError("exactly one of period_id / goal_id is required")

        value = parse_amount(amount)
        note = (note or "").strip() or None

        async with transactional(session):
            if supports_row_locks(session):
                await periods_repo.lock_period_shared(session, period_id=period_id, goal_id=goal_id)

            hit = await progress_repo.increment_if_open(
                session,
                user_id=user_id,
                amount=value,
                period_id=period_id,
                goal_id=goal_id,
            )
            if hit is None:
                await ProgressLedger._explain_miss(session, user_id=user_id, period_id=period_id, goal_id=goal_id)

            row_id, period_id = hit
            period = await periods_repo.get_period(session, period_id)

            today = today or utc_today()
            last_day = period_last_day(period)
            if entry_date is None:
                # expired but not yet swept: late entries count for the last day
                entry_date = min(today, last_day)

            if entry_date > today:
                raise InvalidEntryDateError(f"Entry date {entry_date.isoformat()} is in the future")
            if not (period.start_at.date() <= entry_date <= last_day):
                raise InvalidEntryDateError(
                    f"Entry date {entry_date.isoformat()} is outside the period "
                    f"{period.start_at.date().isoformat()} - {last_day.isoformat()}"
                )

            await progress_repo.merge_entry(
                session,
                progress_id=row_id,
                entry_date=entry_date,
                amount=value,
                note=note,
            )

            row = await progress_repo.get_row_by_id(session, row_id)
            return ProgressSnapshot.from_row(row)

    @staticmethod
    async def _explain_miss(
        session: AsyncSession,
        *,
        user_id: int,
        period_id: int | None,
        goal_id: int | None,
    ) -> None:
        if goal_id is not None:
            if await goals_repo.get_goal(session, goal_id) is None:
                raise GoalNotFoundError(goal_id)
            period = await periods_repo.get_active_period(session, goal_id)
            if period is None:
                raise NoActivePeriodError(goal_id)
            raise NotEnrolledError(period.id, user_id)

        period = await periods_repo.get_period(session, period_id)
        if period is None:
            raise PeriodNotFoundError(period_id)
        if not period.is_active:
            raise PeriodClosedError(period_id)
        raise NotEnrolledError(period_id, user_id)

    @staticmethod
    async def finalize(session: AsyncSession, period_id: int, now: datetime | None = None) -> list[ProgressSnapshot]:
        async with transactional(session):
            return await ProgressLedger._finalize(session, period_id, now)

    @staticmethod
    async def _finalize(session: AsyncSession, period_id: int, now: datetime | None = None) -> list[ProgressSnapshot]:
        """
        Closes the period (terminal) and returns the snapshot the carry-over is computed from.
        """
        closed = await periods_repo.close_period(session, period_id, now or utc_now())
        if not closed:
            if await periods_repo.get_period(session, period_id) is None:
                raise PeriodNotFoundError(period_id)
            raise PeriodClosedError(period_id)

        rows = await progress_repo.list_rows(session, period_id, for_update=True)
        return [ProgressSnapshot.from_row(r) for r in rows]

    @staticmethod
    async def get_snapshot(session: AsyncSession, period_id: int, user_id: int) -> ProgressSnapshot | None:
        row = await progress_repo.get_row(session, period_id, user_id)
        return ProgressSnapshot.from_row(row) if row else None

    @staticmethod
    async def list_snapshots(session: AsyncSession, period_id: int) -> list[ProgressSnapshot]:
        pairs = await progress_repo.list_rows_with_users(session, period_id)
        return [ProgressSnapshot.from_row(p, display_name=u.display_name) for p, u in pairs]

    @staticmethod
    async def list_entries(session: AsyncSession, progress_id: int) -> list[ProgressEntry]:
        return await progress_repo.list_entries(session, progress_id)
