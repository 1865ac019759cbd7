# goalbot/services/goals.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from goalbot.database.models import GroupGoal, GroupGoalPeriod, ProgressEntry
from goalbot.database.repo import goals_repo, periods_repo, progress_repo
from goalbot.database.tx import transactional
from goalbot.services.errors import (
    AmbiguousGoalError,
    GoalNotFoundError,
    InvalidAmountError,
    NoActivePeriodError,
    NotEnrolledError,
    parse_amount,
)
from goalbot.services.leaderboard import LeaderboardEntry, PointsScheme, ProgressSummary, rank, summarize
from goalbot.services.ledger import ProgressLedger, ProgressSnapshot, progress_streak
from goalbot.services.penalty import ZERO
from goalbot.services.transitions import open_period
from goalbot.utils.dates import to_utc_naive, utc_now, utc_today
from goalbot.utils.periods import bounds_for, parse_period_type

log = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


@dataclass(frozen=True, slots=True)
class GoalCreated:
    goal: GroupGoal
    period: GroupGoalPeriod
    seeded: int


@dataclass(frozen=True, slots=True)
class GoalListItem:
    goal: GroupGoal
    period: GroupGoalPeriod | None


@dataclass(frozen=True, slots=True)
class CurrentPeriodView:
    goal: GroupGoal
    period: GroupGoalPeriod
    days_remaining: int
    summary: ProgressSummary


@dataclass(frozen=True, slots=True)
class LeaderboardView:
    goal: GroupGoal
    period: GroupGoalPeriod
    entries: list[LeaderboardEntry]
    summary: ProgressSummary


@dataclass(frozen=True, slots=True)
class MemberProgressView:
    goal: GroupGoal
    period: GroupGoalPeriod
    snapshot: ProgressSnapshot
    entries: list[ProgressEntry]
    streak: int


def days_remaining(period: GroupGoalPeriod, now: datetime) -> int:
    left = (period.end_at - to_utc_naive(now)).total_seconds()
    return max(0, math.ceil(left / SECONDS_PER_DAY))


class GoalService:
    """
    Inbound goal operations for one group. Callers pass the session; writes run
    in `transactional` so they compose with an outer unit of work.
    """

    def __init__(self, points_scheme: PointsScheme | None = None) -> None:
        self.points_scheme = points_scheme

    # -------------------------------------------------
    # Lookups
    # -------------------------------------------------

    @staticmethod
    async def get_goal(session: AsyncSession, goal_id: int, *, group_id: int | None = None) -> GroupGoal:
        goal = await goals_repo.get_goal(session, goal_id)
        if goal is None or (group_id is not None and goal.group_id != group_id):
            raise GoalNotFoundError(goal_id)
        return goal

    @staticmethod
    async def resolve_goal(session: AsyncSession, group_id: int, goal_id: int | None = None) -> GroupGoal:
        """
        Explicit id wins; otherwise the group's only active goal.
        """
        if goal_id is not None:
            return await GoalService.get_goal(session, goal_id, group_id=group_id)

        goals = await goals_repo.list_goals_for_group(session, group_id, active_only=True)
        if not goals:
            raise GoalNotFoundError(0)
        if len(goals) > 1:
            raise AmbiguousGoalError(group_id, [g.id for g in goals])
        return goals[0]

    @staticmethod
    async def list_goals(session: AsyncSession, group_id: int, *, active_only: bool = False) -> list[GoalListItem]:
        goals = await goals_repo.list_goals_for_group(session, group_id, active_only=active_only)
        items = []
        for goal in goals:
            items.append(GoalListItem(goal=goal, period=await periods_repo.get_active_period(session, goal.id)))
        return items

    # -------------------------------------------------
    # Admin operations
    # -------------------------------------------------

    @staticmethod
    async def create_goal(
        session: AsyncSession,
        *,
        group_id: int,
        name: str,
        unit: str,
        period_type: str,
        base_target: Decimal | int | str,
        created_by: int | None = None,
        description: str | None = None,
        now: datetime | None = None,
    ) -> GoalCreated:
        """
        Creates the goal and opens its first period right away (aligned on now,
        no penalties), seeded with the group's current members.
        """
        name = (name or "").strip()
        unit = (unit or "").strip()
        if not name:
            raise ValueError("Goal name is required")
        if not unit:
            raise ValueError("Goal unit is required")

        pt = parse_period_type(period_type)
        target = parse_amount(base_target)
        if target <= ZERO:
            raise InvalidAmountError(base_target, "base target must be > 0")

        now = to_utc_naive(now) if now else utc_now()

        async with transactional(session):
            goal = await goals_repo.create_goal(
                session,
                group_id=group_id,
                name=name,
                unit=unit,
                period_type=pt,
                base_target=target,
                created_by=created_by,
                description=(description or "").strip() or None,
            )
            period = await open_period(session, goal, bounds_for(pt, now))
            seeded = len(await progress_repo.list_rows(session, period.id))

        log.info(
            "Created goal id=%s (%s, %s %s %s) in group id=%s, first period id=%s with %s members",
            goal.id, goal.name, pt.value, target, unit, group_id, period.id, seeded,
        )
        return GoalCreated(goal=goal, period=period, seeded=seeded)

    @staticmethod
    async def set_base_target(
        session: AsyncSession,
        goal_id: int,
        amount: Decimal | int | str,
        *,
        group_id: int | None = None,
    ) -> GroupGoal:
        """
        New base target for periods opened from now on. Open periods keep theirs.
        """
        target = parse_amount(amount)
        if target <= ZERO:
            raise InvalidAmountError(amount, "base target must be > 0")

        async with transactional(session):
            if not await goals_repo.set_base_target(session, goal_id, target):
                raise GoalNotFoundError(goal_id)
            goal = await GoalService.get_goal(session, goal_id, group_id=group_id)

        log.info("Goal id=%s base target set to %s %s", goal.id, target, goal.unit)
        return goal

    @staticmethod
    async def deactivate_goal(session: AsyncSession, goal_id: int, *, group_id: int | None = None) -> GroupGoal:
        """
        Stops new periods. The open one (if any) is finalized by the sweep at its
        end and gets no successor. History is kept.
        """
        async with transactional(session):
            if not await goals_repo.set_active(session, goal_id, False):
                raise GoalNotFoundError(goal_id)
            goal = await GoalService.get_goal(session, goal_id, group_id=group_id)

        log.info("Goal id=%s deactivated", goal.id)
        return goal

    @staticmethod
    async def reactivate_goal(
        session: AsyncSession,
        goal_id: int,
        *,
        group_id: int | None = None,
        now: datetime | None = None,
    ) -> GoalListItem:
        """
        Turns the goal back on. With no open period left, a fresh one aligned on
        now is opened immediately, without penalties.
        """
        now = to_utc_naive(now) if now else utc_now()

        async with transactional(session):
            if not await goals_repo.set_active(session, goal_id, True):
                raise GoalNotFoundError(goal_id)
            goal = await GoalService.get_goal(session, goal_id, group_id=group_id)

            period = await periods_repo.get_active_period(session, goal_id)
            if period is None:
                period = await open_period(session, goal, bounds_for(goal.period_type, now))
                log.info("Goal id=%s reactivated, opened period id=%s", goal.id, period.id)
            else:
                log.info("Goal id=%s reactivated, period id=%s still open", goal.id, period.id)

        return GoalListItem(goal=goal, period=period)

    # -------------------------------------------------
    # Member operations
    # -------------------------------------------------

    @staticmethod
    async def record_progress(
        session: AsyncSession,
        *,
        group_id: int,
        goal_id: int,
        user_id: int,
        amount: Decimal | int | str,
        note: str | None = None,
        entry_date: date | None = None,
        today: date | None = None,
    ) -> ProgressSnapshot:
        """
        Progress against the goal's active period. The increment is the first
        write; the group check runs after it and rolls the write back on mismatch.
        """
        async with transactional(session):
            try:
                snapshot = await ProgressLedger.record_progress(
                    session,
                    goal_id=goal_id,
                    user_id=user_id,
                    amount=amount,
                    entry_date=entry_date,
                    note=note,
                    today=today,
                )
            except (NoActivePeriodError, NotEnrolledError):
                await GoalService.get_goal(session, goal_id, group_id=group_id)
                raise

            await GoalService.get_goal(session, goal_id, group_id=group_id)

        log.debug(
            "Goal id=%s user id=%s logged %s (now %s / %s)",
            goal_id, user_id, amount, snapshot.current_amount, snapshot.target_amount,
        )
        return snapshot

    @staticmethod
    async def get_current_period(
        session: AsyncSession,
        goal_id: int,
        *,
        group_id: int | None = None,
        now: datetime | None = None,
    ) -> CurrentPeriodView:
        goal = await GoalService.get_goal(session, goal_id, group_id=group_id)
        period = await periods_repo.get_active_period(session, goal_id)
        if period is None:
            raise NoActivePeriodError(goal_id)

        rows = await progress_repo.list_rows(session, period.id)
        return CurrentPeriodView(
            goal=goal,
            period=period,
            days_remaining=days_remaining(period, now or utc_now()),
            summary=summarize(rows),
        )

    async def get_leaderboard(
        self,
        session: AsyncSession,
        goal_id: int,
        *,
        group_id: int | None = None,
        limit: int | None = None,
    ) -> LeaderboardView:
        """
        Ranking of the open period; for a goal without one, of its last period.
        """
        goal = await GoalService.get_goal(session, goal_id, group_id=group_id)
        period = await periods_repo.get_active_period(session, goal_id)
        if period is None:
            period = await periods_repo.get_latest_period(session, goal_id)
        if period is None:
            raise NoActivePeriodError(goal_id)

        snapshots = await ProgressLedger.list_snapshots(session, period.id)
        entries = rank(snapshots, self.points_scheme)
        if limit is not None:
            entries = entries[: max(0, limit)]

        return LeaderboardView(goal=goal, period=period, entries=entries, summary=summarize(snapshots))

    @staticmethod
    async def get_member_progress(
        session: AsyncSession,
        goal_id: int,
        user_id: int,
        *,
        group_id: int | None = None,
        today: date | None = None,
    ) -> MemberProgressView:
        goal = await GoalService.get_goal(session, goal_id, group_id=group_id)
        period = await periods_repo.get_active_period(session, goal_id)
        if period is None:
            raise NoActivePeriodError(goal_id)

        snapshot = await ProgressLedger.get_snapshot(session, period.id, user_id)
        if snapshot is None:
            raise NotEnrolledError(period.id, user_id)

        entries = await ProgressLedger.list_entries(session, snapshot.progress_id)
        return MemberProgressView(
            goal=goal,
            period=period,
            snapshot=snapshot,
            entries=entries,
            streak=progress_streak(entries, today or utc_today()),
        )
