import asyncio
from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from goalbot.database.models import GroupGoalPeriod
from goalbot.database.repo import periods_repo, progress_repo
from goalbot.services.errors import GoalTransitionError
from goalbot.services.goals import GoalService
from goalbot.services.ledger import ProgressLedger
from goalbot.services.transitions import PeriodTransitionOrchestrator, plan_transitions
from goalbot.utils.periods import PeriodBounds, bounds_for

D = Decimal
NEXT_MONDAY = datetime(2024, 1, 8)


async def _log(db, goal_id, user_id, amount, day):
    async with db.session() as session:
        return await ProgressLedger.record_progress(
            session, goal_id=goal_id, user_id=user_id, amount=amount, entry_date=day, today=day
        )


async def _periods(db, goal_id) -> list[GroupGoalPeriod]:
    async with db.session() as session:
        return await periods_repo.list_periods(session, goal_id)


async def _target(db, period_id, user_id) -> Decimal:
    async with db.session() as session:
        row = await progress_repo.get_row(session, period_id, user_id)
        return row.target_amount


def _assert_contiguous(periods):
    for prev, nxt in zip(periods, periods[1:]):
        assert nxt.start_at == prev.end_at


@pytest.mark.asyncio
async def test_missed_target_is_carried_into_next_period(db, factory):
    x, y = await factory.user(), await factory.user()
    group = await factory.group(x, y)
    created = await factory.goal(group, base_target="10")
    goal_id = created.goal.id

    await _log(db, goal_id, x.id, "4", date(2024, 1, 2))
    await _log(db, goal_id, x.id, "4", date(2024, 1, 5))
    await _log(db, goal_id, y.id, "12", date(2024, 1, 6))

    orchestrator = PeriodTransitionOrchestrator(db)
    result = await orchestrator.transition_goal(goal_id, NEXT_MONDAY)

    assert result.finalized_period_ids == [created.period.id]
    assert len(result.opened_period_ids) == 1
    assert result.penalties == {x.id: D("2"), y.id: D("0")}

    new_period = result.active_period_id
    assert await _target(db, new_period, x.id) == D("12")
    assert await _target(db, new_period, y.id) == D("10")

    periods = await _periods(db, goal_id)
    assert [p.is_active for p in periods] == [False, True]
    assert periods[0].finalized_at == NEXT_MONDAY
    assert periods[1].start_at == NEXT_MONDAY and periods[1].end_at == datetime(2024, 1, 15)


@pytest.mark.asyncio
async def test_four_expired_weeks_are_backfilled_in_one_sweep(db, factory):
    x = await factory.user()
    group = await factory.group(x)
    created = await factory.goal(group, base_target="10")
    goal_id = created.goal.id

    now = datetime(2024, 1, 29, 12, 0)
    report = await PeriodTransitionOrchestrator(db).sweep(now)

    assert report.failed == {}
    assert report.finalized_count == 4
    assert report.opened_count == 4

    periods = await _periods(db, goal_id)
    assert len(periods) == 5
    assert [p.is_active for p in periods] == [False, False, False, False, True]
    assert periods[0].start_at == datetime(2024, 1, 1)
    assert periods[-1].bounds == bounds_for("weekly", now)
    _assert_contiguous(periods)

    # zero progress each time: the whole target rolls forward
    targets = [await _target(db, p.id, x.id) for p in periods]
    assert targets == [D("10"), D("20"), D("30"), D("40"), D("50")]


@pytest.mark.asyncio
async def test_three_missed_weekly_cycles_leave_one_fresh_active_period(db, factory):
    x = await factory.user()
    group = await factory.group(x)
    created = await factory.goal(group, base_target="10")

    now = datetime(2024, 1, 22)
    result = await PeriodTransitionOrchestrator(db).transition_goal(created.goal.id, now)

    periods = await _periods(db, created.goal.id)
    assert result.finalized_period_ids == [p.id for p in periods[:3]]
    assert result.opened_period_ids == [p.id for p in periods[1:]]
    assert result.active_period_id == periods[-1].id
    assert [p.is_active for p in periods] == [False, False, False, True]
    assert periods[-1].bounds == PeriodBounds(datetime(2024, 1, 22), datetime(2024, 1, 29))
    _assert_contiguous(periods)
    assert [await _target(db, p.id, x.id) for p in periods] == [D("10"), D("20"), D("30"), D("40")]


@pytest.mark.asyncio
async def test_monthly_goal_is_backfilled_month_by_month(db, factory):
    x = await factory.user()
    group = await factory.group(x)
    created = await factory.goal(group, base_target="100", period_type="monthly")

    report = await PeriodTransitionOrchestrator(db).sweep(datetime(2024, 4, 15))
    assert report.finalized_count == 3

    periods = await _periods(db, created.goal.id)
    assert [p.bounds for p in periods] == [
        PeriodBounds(datetime(2024, 1, 1), datetime(2024, 2, 1)),
        PeriodBounds(datetime(2024, 2, 1), datetime(2024, 3, 1)),
        PeriodBounds(datetime(2024, 3, 1), datetime(2024, 4, 1)),
        PeriodBounds(datetime(2024, 4, 1), datetime(2024, 5, 1)),
    ]
    assert [p.is_active for p in periods] == [False, False, False, True]
    assert [await _target(db, p.id, x.id) for p in periods] == [D("100"), D("200"), D("300"), D("400")]


@pytest.mark.asyncio
async def test_second_sweep_at_same_instant_is_a_noop(db, factory):
    x = await factory.user()
    group = await factory.group(x)
    created = await factory.goal(group)

    orchestrator = PeriodTransitionOrchestrator(db)
    first = await orchestrator.sweep(NEXT_MONDAY)
    second = await orchestrator.sweep(NEXT_MONDAY)

    assert first.finalized_count == 1 and first.opened_count == 1
    assert second.finalized_count == 0 and second.opened_count == 0
    assert [r.changed for r in second.results] == [False]
    assert len(await _periods(db, created.goal.id)) == 2


@pytest.mark.asyncio
async def test_caught_up_goal_is_left_alone(db, factory):
    x = await factory.user()
    group = await factory.group(x)
    created = await factory.goal(group)

    result = await PeriodTransitionOrchestrator(db).transition_goal(created.goal.id, datetime(2024, 1, 7, 23, 59))
    assert not result.changed
    assert result.active_period_id == created.period.id


@pytest.mark.asyncio
async def test_at_most_one_active_period(db, factory):
    x = await factory.user()
    group = await factory.group(x)
    created = await factory.goal(group)

    orchestrator = PeriodTransitionOrchestrator(db)
    for day in (8, 15, 22):
        await orchestrator.sweep(datetime(2024, 1, day, 6))

        async with db.session() as session:
            active = await session.scalar(
                select(func.count())
                .select_from(GroupGoalPeriod)
                .where(GroupGoalPeriod.group_goal_id == created.goal.id, GroupGoalPeriod.is_active.is_(True))
            )
        assert active == 1

    # the storage refuses a second active period outright
    async with db.session() as session:
        with pytest.raises(IntegrityError):
            await periods_repo.create_period(
                session,
                goal_id=created.goal.id,
                bounds=PeriodBounds(datetime(2024, 3, 4), datetime(2024, 3, 11)),
            )


@pytest.mark.asyncio
async def test_members_joining_later_start_with_no_penalty(db, factory):
    x, late = await factory.user(), await factory.user()
    group = await factory.group(x)
    created = await factory.goal(group)
    await factory.add_member(group, late)

    result = await PeriodTransitionOrchestrator(db).transition_goal(created.goal.id, NEXT_MONDAY)

    assert await _target(db, result.active_period_id, x.id) == D("20")
    assert await _target(db, result.active_period_id, late.id) == D("10")


@pytest.mark.asyncio
async def test_base_target_change_applies_to_next_period_only(db, factory):
    x = await factory.user()
    group = await factory.group(x)
    created = await factory.goal(group, base_target="10")

    async with db.session() as session:
        await GoalService.set_base_target(session, created.goal.id, "15")
    assert await _target(db, created.period.id, x.id) == D("10")

    await _log(db, created.goal.id, x.id, "10", date(2024, 1, 4))
    result = await PeriodTransitionOrchestrator(db).transition_goal(created.goal.id, NEXT_MONDAY)
    assert await _target(db, result.active_period_id, x.id) == D("15")


@pytest.mark.asyncio
async def test_deactivated_goal_is_finalized_without_successor(db, factory):
    x = await factory.user()
    group = await factory.group(x)
    created = await factory.goal(group)

    async with db.session() as session:
        await GoalService.deactivate_goal(session, created.goal.id)

    orchestrator = PeriodTransitionOrchestrator(db)
    assert created.goal.id in await orchestrator.list_due_goal_ids()

    result = await orchestrator.transition_goal(created.goal.id, NEXT_MONDAY)
    assert result.finalized_period_ids == [created.period.id]
    assert result.opened_period_ids == []
    assert result.active_period_id is None

    # nothing left to do for it
    assert created.goal.id not in await orchestrator.list_due_goal_ids()


@pytest.mark.asyncio
async def test_one_failing_goal_does_not_block_the_others(db, factory, monkeypatch):
    x = await factory.user()
    group = await factory.group(x)
    bad = await factory.goal(group, name="Bad")
    good = await factory.goal(group, name="Good")

    original = PeriodTransitionOrchestrator._transition

    async def flaky(self, session, goal_id, now):
        if goal_id == bad.goal.id:
            raise RuntimeError("boom")
        return await original(self, session, goal_id, now)

    monkeypatch.setattr(PeriodTransitionOrchestrator, "_transition", flaky)
    orchestrator = PeriodTransitionOrchestrator(db, concurrency=2)
    report = await orchestrator.sweep(NEXT_MONDAY)

    assert list(report.failed) == [bad.goal.id]
    assert [r.goal_id for r in report.results] == [good.goal.id]
    assert [p.is_active for p in await _periods(db, bad.goal.id)] == [True]
    assert [p.is_active for p in await _periods(db, good.goal.id)] == [False, True]

    with pytest.raises(GoalTransitionError) as exc:
        await orchestrator.transition_goal(bad.goal.id, NEXT_MONDAY)
    assert isinstance(exc.value.cause, RuntimeError)

    # retried on the next tick once the cause is gone
    monkeypatch.setattr(PeriodTransitionOrchestrator, "_transition", original)
    retry = await orchestrator.sweep(NEXT_MONDAY)
    assert retry.failed == {}
    assert [p.is_active for p in await _periods(db, bad.goal.id)] == [False, True]


@pytest.mark.asyncio
async def test_stop_request_skips_remaining_goals(db, factory):
    x = await factory.user()
    group = await factory.group(x)
    created = await factory.goal(group)

    orchestrator = PeriodTransitionOrchestrator(db)
    orchestrator.request_stop()
    report = await orchestrator.sweep(NEXT_MONDAY)

    assert report.skipped == [created.goal.id]
    assert [p.is_active for p in await _periods(db, created.goal.id)] == [True]


@pytest.mark.asyncio
async def test_sweep_past_its_deadline_finishes_in_flight_goal_and_skips_the_rest(db, factory, monkeypatch):
    x = await factory.user()
    group = await factory.group(x)
    goals = [await factory.goal(group, name=f"Goal {i}") for i in range(3)]

    original = PeriodTransitionOrchestrator._transition
    started: list[int] = []

    async def slow(self, session, goal_id, now):
        started.append(goal_id)
        await asyncio.sleep(0.3)
        return await original(self, session, goal_id, now)

    monkeypatch.setattr(PeriodTransitionOrchestrator, "_transition", slow)
    orchestrator = PeriodTransitionOrchestrator(db, concurrency=1)
    report = await orchestrator.sweep(NEXT_MONDAY, timeout=0.05)

    assert len(started) == 1
    (first,) = started
    assert [r.goal_id for r in report.results] == [first]
    assert sorted(report.skipped) == sorted(g.goal.id for g in goals if g.goal.id != first)
    assert report.failed == {}

    # the in-flight goal was carried through; the skipped ones are untouched
    assert [p.is_active for p in await _periods(db, first)] == [False, True]
    for goal_id in report.skipped:
        assert [p.is_active for p in await _periods(db, goal_id)] == [True]


@pytest.mark.asyncio
async def test_plan_matches_what_the_sweep_does(db, factory):
    x = await factory.user()
    group = await factory.group(x)
    created = await factory.goal(group)
    now = datetime(2024, 1, 22, 9)

    orchestrator = PeriodTransitionOrchestrator(db)
    _, plan = await orchestrator.plan_goal(created.goal.id, now)
    assert len(await _periods(db, created.goal.id)) == 1  # dry run writes nothing

    await orchestrator.sweep(now)
    periods = await _periods(db, created.goal.id)

    assert [p.bounds for p in periods if not p.is_active] == plan.to_finalize
    assert [p.bounds for p in periods[1:]] == plan.to_open


def test_plan_transitions_pure():
    active = PeriodBounds(datetime(2024, 1, 1), datetime(2024, 1, 8))

    assert plan_transitions("weekly", active, datetime(2024, 1, 7)).is_noop

    plan = plan_transitions("weekly", active, datetime(2024, 1, 15))
    assert plan.to_finalize == [active, PeriodBounds(datetime(2024, 1, 8), datetime(2024, 1, 15))]
    assert plan.to_open[-1] == PeriodBounds(datetime(2024, 1, 15), datetime(2024, 1, 22))

    stopped = plan_transitions("weekly", active, datetime(2024, 1, 15), goal_active=False)
    assert stopped.to_finalize == [active] and stopped.to_open == []

    fresh = plan_transitions("monthly", None, datetime(2024, 2, 10))
    assert fresh.to_open == [PeriodBounds(datetime(2024, 2, 1), datetime(2024, 3, 1))]
