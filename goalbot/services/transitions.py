# goalbot/services/transitions.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from goalbot.database.models import GroupGoal, GroupGoalPeriod
from goalbot.database.repo import goals_repo, members_repo, periods_repo
from goalbot.database.session import Database
from goalbot.database.tx import transactional
from goalbot.services.errors import GoalNotFoundError, GoalTransitionError
from goalbot.services.leaderboard import summarize
from goalbot.services.ledger import ProgressLedger
from goalbot.services.penalty import ZERO, carry_over_map
from goalbot.utils.dates import to_utc_naive, utc_now
from goalbot.utils.periods import PeriodBounds, PeriodType, bounds_for, next_bounds

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TransitionPlan:
    to_finalize: list[PeriodBounds]
    to_open: list[PeriodBounds]

    @property
    def is_noop(self) -> bool:
        return not self.to_finalize and not self.to_open


@dataclass(slots=True)
class TransitionResult:
    goal_id: int
    finalized_period_ids: list[int] = field(default_factory=list)
    opened_period_ids: list[int] = field(default_factory=list)
    active_period_id: int | None = None
    # carry-over computed from the last finalized period
    penalties: dict[int, Decimal] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return bool(self.finalized_period_ids or self.opened_period_ids)


@dataclass(slots=True)
class SweepReport:
    now: datetime
    results: list[TransitionResult] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)
    skipped: list[int] = field(default_factory=list)

    @property
    def finalized_count(self) -> int:
        return sum(len(r.finalized_period_ids) for r in self.results)

    @property
    def opened_count(self) -> int:
        return sum(len(r.opened_period_ids) for r in self.results)


def plan_transitions(
    period_type: PeriodType | str,
    active: PeriodBounds | None,
    now: datetime,
    *,
    goal_active: bool = True,
) -> TransitionPlan:
    """
    Periods a sweep at `now` would finalize and open, without touching storage.
    Mirrors PeriodTransitionOrchestrator.transition_goal.
    """
    now = to_utc_naive(now)

    if active is None:
        return TransitionPlan(to_finalize=[], to_open=[bounds_for(period_type, now)] if goal_active else [])

    to_finalize: list[PeriodBounds] = []
    to_open: list[PeriodBounds] = []
    current = active
    while current.end <= now:
        to_finalize.append(current)
        if not goal_active:
            break
        current = next_bounds(period_type, current.end)
        to_open.append(current)

    return TransitionPlan(to_finalize=to_finalize, to_open=to_open)


async def open_period(
    session: AsyncSession,
    goal: GroupGoal,
    bounds: PeriodBounds,
    penalties: dict[int, Decimal] | None = None,
) -> GroupGoalPeriod:
    """
    Creates the period and seeds one row per current active member, in the
    caller's unit of work.
    """
    period = await periods_repo.create_period(session, goal_id=goal.id, bounds=bounds)
    members = await members_repo.list_active_member_ids(session, goal.group_id)
    # a re-run never duplicates rows: existing (period, member) pairs are skipped
    await ProgressLedger._open(
        session,
        period,
        members,
        goal.base_target,
        penalties or {},
        ignore_existing=True,
    )
    return period


class PeriodTransitionOrchestrator:
    """
    Drives each goal through NoPeriod -> Open -> Finalizing -> Open(next).

    Every goal is one unit of work in its own session; distinct goals run
    concurrently (bounded), one goal's periods are handled in chronological order.
    """

    def __init__(self, db: Database, *, concurrency: int = 4) -> None:
        self.db = db
        self.concurrency = max(1, int(concurrency))
        self._stop = asyncio.Event()

    # -------------------------------------------------
    # Stop signal
    # -------------------------------------------------

    def request_stop(self) -> None:
        """No new goal is started after this; in-flight goals run to completion."""
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    # -------------------------------------------------
    # Single goal
    # -------------------------------------------------

    async def transition_goal(self, goal_id: int, now: datetime | None = None) -> TransitionResult:
        now = to_utc_naive(now) if now else utc_now()
        try:
            async with self.db.session() as session:
                async with transactional(session):
                    return await self._transition(session, goal_id, now)
        except Exception as e:
            raise GoalTransitionError(goal_id, e) from e

    async def _transition(self, session: AsyncSession, goal_id: int, now: datetime) -> TransitionResult:
        if not await goals_repo.claim_for_sweep(session, goal_id, now):
            raise GoalNotFoundError(goal_id)

        goal = await goals_repo.get_goal(session, goal_id)
        if goal is None:
            raise GoalNotFoundError(goal_id)

        result = TransitionResult(goal_id=goal_id)
        active = await periods_repo.get_active_period(session, goal_id)

        if active is None:
            if not goal.is_active:
                return result
            # first period, or first one after a reactivation: aligned on now, no penalties
            active = await open_period(session, goal, bounds_for(goal.period_type, now), {})
            result.opened_period_ids.append(active.id)
            log.info(
                "Opened period id=%s for goal id=%s: %s -> %s",
                active.id, goal.id, active.start_at.isoformat(), active.end_at.isoformat(),
            )

        while active is not None and active.has_ended(now):
            snapshots = await ProgressLedger._finalize(session, active.id, now)
            penalties = carry_over_map(snapshots)
            result.finalized_period_ids.append(active.id)
            result.penalties = penalties
            self._log_finalized(goal, active, snapshots, penalties)

            if not goal.is_active:
                active = None
                break

            successor = await open_period(
                session,
                goal,
                next_bounds(goal.period_type, active.end_at),
                penalties,
            )
            result.opened_period_ids.append(successor.id)
            log.info(
                "Opened period id=%s for goal id=%s: %s -> %s",
                successor.id, goal.id, successor.start_at.isoformat(), successor.end_at.isoformat(),
            )
            active = successor

        result.active_period_id = active.id if active is not None else None
        return result

    @staticmethod
    def _log_finalized(goal: GroupGoal, period: GroupGoalPeriod, snapshots, penalties: dict[int, Decimal]) -> None:
        stats = summarize(snapshots)
        total_penalty = sum(penalties.values(), ZERO)
        log.info(
            "Closed period id=%s for goal id=%s (%s): %s -> %s, %s/%s completed (%s%%), total carry-over %s %s",
            period.id,
            goal.id,
            goal.name,
            period.start_at.isoformat(),
            period.end_at.isoformat(),
            stats.completed,
            stats.participants,
            stats.completion_rate,
            total_penalty,
            goal.unit,
        )
        for user_id, penalty in sorted(penalties.items()):
            if penalty > ZERO:
                log.debug("Goal id=%s user id=%s missed target by %s %s", goal.id, user_id, penalty, goal.unit)

    # -------------------------------------------------
    # Dry run
    # -------------------------------------------------

    async def plan_goal(self, goal_id: int, now: datetime | None = None) -> tuple[GroupGoal, TransitionPlan]:
        now = to_utc_naive(now) if now else utc_now()
        async with self.db.session() as session:
            goal = await goals_repo.get_goal(session, goal_id)
            if goal is None:
                raise GoalNotFoundError(goal_id)
            active = await periods_repo.get_active_period(session, goal_id)
            plan = plan_transitions(
                goal.period_type,
                active.bounds if active else None,
                now,
                goal_active=goal.is_active,
            )
            return goal, plan

    async def list_due_goal_ids(self) -> list[int]:
        async with self.db.session() as session:
            return await goals_repo.list_goal_ids_for_sweep(session)

    # -------------------------------------------------
    # Sweep
    # -------------------------------------------------

    async def sweep(self, now: datetime | None = None, *, timeout: float | None = None) -> SweepReport:
        """
        One pass over every goal that may need a transition.

        A failing goal is logged and left for the next tick. After `timeout`
        seconds, or once a stop is requested, no further goals are started.
        """
        now = to_utc_naive(now) if now else utc_now()
        report = SweepReport(now=now)

        goal_ids = await self.list_due_goal_ids()
        if not goal_ids:
            log.debug("Sweep: no goals to process")
            return report

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout else None
        sem = asyncio.Semaphore(self.concurrency)

        async def _one(goal_id: int) -> None:
            async with sem:
                if self._stop.is_set() or (deadline is not None and loop.time() >= deadline):
                    report.skipped.append(goal_id)
                    return
                try:
                    result = await self.transition_goal(goal_id, now)
                except GoalTransitionError as e:
                    log.error("Transition failed for goal id=%s: %r", goal_id, e.cause, exc_info=e.cause)
                    report.failed[goal_id] = repr(e.cause)
                    return
                report.results.append(result)

        await asyncio.gather(*(_one(goal_id) for goal_id in goal_ids))

        log.info(
            "Sweep done: goals=%s finalized=%s opened=%s failed=%s skipped=%s",
            len(goal_ids),
            report.finalized_count,
            report.opened_count,
            len(report.failed),
            len(report.skipped),
        )
        return report
