from datetime import date, datetime
from decimal import Decimal

import pytest

from goalbot.services.errors import (
    AmbiguousGoalError,
    GoalNotFoundError,
    InvalidAmountError,
    NoActivePeriodError,
    NotEnrolledError,
)
from goalbot.services.goals import GoalService, days_remaining
from goalbot.services.leaderboard import LinearPoints
from goalbot.services.transitions import PeriodTransitionOrchestrator

D = Decimal
WEDNESDAY = datetime(2024, 1, 3, 12, 0)


@pytest.mark.asyncio
async def test_create_goal_opens_first_period_aligned_on_now(db, factory):
    ann, bob = await factory.user(), await factory.user()
    group = await factory.group(ann, bob)

    created = await factory.goal(group, period_type="monthly", base_target="100", now=datetime(2024, 2, 14, 8))

    assert created.goal.is_active
    assert created.period.start_at == datetime(2024, 2, 1)
    assert created.period.end_at == datetime(2024, 3, 1)
    assert created.seeded == 2


@pytest.mark.asyncio
async def test_create_goal_validates_input(db, factory):
    group = await factory.group()
    with pytest.raises(InvalidAmountError):
        await factory.goal(group, base_target="0")
    with pytest.raises(InvalidAmountError):
        await factory.goal(group, base_target="-5")
    with pytest.raises(ValueError):
        await factory.goal(group, period_type="daily")
    with pytest.raises(ValueError):
        await factory.goal(group, name="   ")


@pytest.mark.asyncio
async def test_record_progress_checks_the_group(db, factory):
    ann = await factory.user()
    group = await factory.group(ann)
    other = await factory.group(ann, title="Other")
    created = await factory.goal(group)

    async with db.session() as session:
        snap = await GoalService.record_progress(
            session, group_id=group.id, goal_id=created.goal.id, user_id=ann.id, amount="3", today=date(2024, 1, 3)
        )
    assert snap.current_amount == D("3")

    # same goal addressed from another chat: rejected and rolled back
    async with db.session() as session:
        with pytest.raises(GoalNotFoundError):
            await GoalService.record_progress(
                session, group_id=other.id, goal_id=created.goal.id, user_id=ann.id, amount="3", today=date(2024, 1, 3)
            )

    async with db.session() as session:
        view = await GoalService.get_member_progress(session, created.goal.id, ann.id, today=date(2024, 1, 3))
    assert view.snapshot.current_amount == D("3")
    assert view.streak == 1
    assert [e.amount for e in view.entries] == [D("3")]


@pytest.mark.asyncio
async def test_resolve_goal(db, factory):
    ann = await factory.user()
    group = await factory.group(ann)

    async with db.session() as session:
        with pytest.raises(GoalNotFoundError):
            await GoalService.resolve_goal(session, group.id)

    first = await factory.goal(group, name="Run")
    async with db.session() as session:
        assert (await GoalService.resolve_goal(session, group.id)).id == first.goal.id

    second = await factory.goal(group, name="Swim")
    async with db.session() as session:
        with pytest.raises(AmbiguousGoalError) as exc:
            await GoalService.resolve_goal(session, group.id)
        assert exc.value.goal_ids == [first.goal.id, second.goal.id]
        assert (await GoalService.resolve_goal(session, group.id, second.goal.id)).name == "Swim"


@pytest.mark.asyncio
async def test_current_period_view(db, factory):
    ann, bob = await factory.user(), await factory.user()
    group = await factory.group(ann, bob)
    created = await factory.goal(group)

    async with db.session() as session:
        await GoalService.record_progress(
            session, group_id=group.id, goal_id=created.goal.id, user_id=ann.id, amount="10", today=date(2024, 1, 3)
        )

    async with db.session() as session:
        view = await GoalService.get_current_period(session, created.goal.id, now=WEDNESDAY)

    assert view.period.id == created.period.id
    assert view.days_remaining == 5  # Wed 12:00 -> Mon 00:00 is 4.5 days
    assert view.summary.participants == 2
    assert view.summary.completed == 1
    assert view.summary.completion_rate == D("50.0")


def test_days_remaining_never_negative():
    class P:
        end_at = datetime(2024, 1, 8)

    assert days_remaining(P(), datetime(2024, 1, 9)) == 0
    assert days_remaining(P(), datetime(2024, 1, 7)) == 1


@pytest.mark.asyncio
async def test_leaderboard(db, factory):
    ann, bob, cat = await factory.user("ann"), await factory.user("bob"), await factory.user("cat")
    group = await factory.group(ann, bob, cat)
    created = await factory.goal(group)

    for user, amount in ((ann, "9.9"), (bob, "10"), (cat, "2")):
        async with db.session() as session:
            await GoalService.record_progress(
                session, group_id=group.id, goal_id=created.goal.id, user_id=user.id, amount=amount, today=date(2024, 1, 3)
            )

    service = GoalService(LinearPoints(per_place=1, completion_bonus=5))
    async with db.session() as session:
        board = await service.get_leaderboard(session, created.goal.id, group_id=group.id)
        top = await service.get_leaderboard(session, created.goal.id, limit=1)

    assert [(e.display_name, e.rank, e.points) for e in board.entries] == [("@bob", 1, 8), ("@ann", 2, 2), ("@cat", 3, 1)]
    assert board.summary.completed == 1
    assert [e.display_name for e in top.entries] == ["@bob"]


@pytest.mark.asyncio
async def test_deactivate_and_reactivate(db, factory):
    ann = await factory.user()
    group = await factory.group(ann)
    created = await factory.goal(group)
    goal_id = created.goal.id

    async with db.session() as session:
        goal = await GoalService.deactivate_goal(session, goal_id, group_id=group.id)
    assert not goal.is_active

    # the open period runs to its end, then closes without a successor
    await PeriodTransitionOrchestrator(db).sweep(datetime(2024, 1, 10))
    async with db.session() as session:
        with pytest.raises(NoActivePeriodError):
            await GoalService.get_current_period(session, goal_id)
        # the last period still has a leaderboard
        board = await GoalService().get_leaderboard(session, goal_id)
        assert board.period.id == created.period.id and not board.period.is_active

    async with db.session() as session:
        item = await GoalService.reactivate_goal(session, goal_id, now=datetime(2024, 1, 10))
    assert item.goal.is_active
    # fresh period aligned on now, no carry-over from before the pause
    assert item.period.start_at == datetime(2024, 1, 8)

    async with db.session() as session:
        view = await GoalService.get_member_progress(session, goal_id, ann.id, today=date(2024, 1, 10))
    assert view.snapshot.target_amount == D("10")
    assert view.snapshot.penalty_carry_over == D("0")


@pytest.mark.asyncio
async def test_unknown_goal_and_not_enrolled(db, factory):
    ann, late = await factory.user(), await factory.user()
    group = await factory.group(ann)
    created = await factory.goal(group)
    await factory.add_member(group, late)

    async with db.session() as session:
        with pytest.raises(GoalNotFoundError):
            await GoalService.set_base_target(session, 9999, "5")
    async with db.session() as session:
        with pytest.raises(InvalidAmountError):
            await GoalService.set_base_target(session, created.goal.id, "0")
    async with db.session() as session:
        with pytest.raises(NotEnrolledError):
            await GoalService.record_progress(
                session, group_id=group.id, goal_id=created.goal.id, user_id=late.id, amount="1", today=date(2024, 1, 3)
            )
    async with db.session() as session:
        with pytest.raises(NotEnrolledError):
            await GoalService.get_member_progress(session, created.goal.id, late.id)
