# goalbot/services/errors.py
from __future__ import annotations

from decimal import Decimal


class GoalEngineError(Exception):
    """Base class for every error raised by the goal period engine."""


class InvalidAmountError(GoalEngineError):
    def __init__(self, amount: object, reason: str = "amount must be a finite number >= 0") -> None:
        super().__init__(f"Invalid amount {amount!r}: {reason}")
        self.amount = amount


class PeriodClosedError(GoalEngineError):
    """Write against a finalized period. Surfaced to callers as a conflict."""

    def __init__(self, period_id: int) -> None:
        super().__init__(f"Period {period_id} is already finalized")
        self.period_id = period_id


class DuplicateRowError(GoalEngineError):
    def __init__(self, period_id: int, user_ids: list[int]) -> None:
        super().__init__(f"Progress rows already exist for period {period_id}: users {sorted(user_ids)}")
        self.period_id = period_id
        self.user_ids = sorted(user_ids)


class NotEnrolledError(GoalEngineError):
    """Member has no progress row in the period (joined after it opened)."""

    def __init__(self, period_id: int, user_id: int) -> None:
        super().__init__(f"User {user_id} has no progress row in period {period_id}")
        self.period_id = period_id
        self.user_id = user_id


class InvalidEntryDateError(GoalEngineError):
    pass


class GoalNotFoundError(GoalEngineError):
    def __init__(self, goal_id: int) -> None:
        super().__init__(f"Group goal {goal_id} not found")
        self.goal_id = goal_id


class NoActivePeriodError(GoalEngineError):
    def __init__(self, goal_id: int) -> None:
        super().__init__(f"Group goal {goal_id} has no active period")
        self.goal_id = goal_id


class NotEntitledError(GoalEngineError):
    def __init__(self, user_id: int) -> None:
        super().__init__(f"User {user_id} is not entitled to group goals")
        self.user_id = user_id


class GoalTransitionError(GoalEngineError):
    """Sweep failed for one goal. The goal is retried on the next tick."""

    def __init__(self, goal_id: int, cause: BaseException) -> None:
        super().__init__(f"Transition failed for goal {goal_id}: {cause!r}")
        self.goal_id = goal_id
        self.cause = cause


# largest magnitude the Numeric(12, 2) amount columns can hold
MAX_AMOUNT = Decimal("1e10")


def parse_amount(raw: object) -> Decimal:
    """
    Converts user/caller input into a non-negative Decimal with 2 places.
    Raises InvalidAmountError for anything else.
    """
    try:
        value = Decimal(str(raw).strip().replace(",", "."))
    except (ArithmeticError, ValueError) as e:
        raise InvalidAmountError(raw, "not a number") from e

    if not value.is_finite():
        raise InvalidAmountError(raw, "not a finite number")
    if value < 0:
        raise InvalidAmountError(raw, "negative progress is not allowed")
    if value >= MAX_AMOUNT:
        raise InvalidAmountError(raw, "amount is too large")
    try:
        return value.quantize(Decimal("0.01"))
    except ArithmeticError as e:
        raise InvalidAmountError(raw, "not a representable amount") from e


class PeriodNotFoundError(GoalEngineError):
    def __init__(self, period_id: int) -> None:
        super().__init__(f"Period {period_id} not found")
        self.period_id = period_id


class AmbiguousGoalError(GoalEngineError):
    """The group has several active goals and none was picked."""

    def __init__(self, group_id: int, goal_ids: list[int]) -> None:
        super().__init__(f"Group {group_id} has several active goals: {goal_ids}")
        self.group_id = group_id
        self.goal_ids = goal_ids
