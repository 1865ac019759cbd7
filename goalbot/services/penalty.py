# goalbot/services/penalty.py
from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Protocol

ZERO = Decimal("0")


class _HasAmounts(Protocol):
    user_id: int
    target_amount: Decimal
    current_amount: Decimal


def carry_over(target_amount: Decimal, current_amount: Decimal) -> Decimal:
    """
    Deficit carried into the next period: max(0, target - current).
    Overachievement never produces credit.
    """
    deficit = Decimal(target_amount) - Decimal(current_amount)
    return deficit if deficit > ZERO else ZERO


def carry_over_map(rows: Iterable[_HasAmounts]) -> dict[int, Decimal]:
    """
    Penalty per member for a finalized period.
    Members missing from the map (not in the period) carry 0.
    """
    return {int(r.user_id): carry_over(r.target_amount, r.current_amount) for r in rows}


def next_target(base_target: Decimal, penalty: Decimal | None) -> Decimal:
    return Decimal(base_target) + (Decimal(penalty) if penalty else ZERO)
