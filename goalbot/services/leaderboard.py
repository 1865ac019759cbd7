# goalbot/services/leaderboard.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Protocol, Sequence

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")


class RankableRow(Protocol):
    user_id: int
    target_amount: Decimal
    current_amount: Decimal
    penalty_carry_over: Decimal


class PointsScheme(Protocol):
    def points_for(self, *, rank: int, field_size: int, is_completed: bool) -> int: ...


@dataclass(frozen=True, slots=True)
class LinearPoints:
    """
    per_place * (field_size - rank + 1), plus a bonus for completed members.
    Completed members always rank above the rest, so points never increase with rank.
    """

    per_place: int = 10
    completion_bonus: int = 50

    def points_for(self, *, rank: int, field_size: int, is_completed: bool) -> int:
        base = self.per_place * max(field_size - rank + 1, 0)
        return base + (self.completion_bonus if is_completed else 0)


@dataclass(frozen=True, slots=True)
class LeaderboardEntry:
    rank: int
    user_id: int
    display_name: str | None
    current_amount: Decimal
    target_amount: Decimal
    penalty_carry_over: Decimal
    ratio: Decimal  # uncapped, used for ordering
    progress_percentage: Decimal  # capped at 100 for display
    is_completed: bool
    points: int


@dataclass(frozen=True, slots=True)
class ProgressSummary:
    participants: int
    completed: int
    completion_rate: Decimal
    average_completion: Decimal
    total_progress: Decimal


def progress_ratio(current_amount: Decimal, target_amount: Decimal) -> Decimal:
    if target_amount <= ZERO:
        # nothing to reach: treat as fully met
        return ONE
    return Decimal(current_amount) / Decimal(target_amount)


def display_percentage(current_amount: Decimal, target_amount: Decimal) -> Decimal:
    pct = progress_ratio(current_amount, target_amount) * HUNDRED
    return min(pct, HUNDRED).quantize(Decimal("0.1"))


def _tie_key(row: RankableRow) -> tuple[bool, Decimal, Decimal]:
    completed = Decimal(row.current_amount) >= Decimal(row.target_amount)
    return (completed, progress_ratio(row.current_amount, row.target_amount), Decimal(row.penalty_carry_over))


def _sort_key(row: RankableRow) -> tuple:
    completed, ratio, penalty = _tie_key(row)
    # completed first, higher ratio first, lower inherited penalty first, then user id
    return (not completed, -ratio, penalty, int(row.user_id))


def rank(
    rows: Iterable[RankableRow],
    points_scheme: PointsScheme | None = None,
) -> list[LeaderboardEntry]:
    """
    Orders one period's progress rows and assigns competition ranks (1, 2, 2, 4).

    Rows tie when completion, ratio and inherited penalty are all equal; the user id
    only fixes their order within the tie. Pure: same input, same output.
    """
    scheme = points_scheme or LinearPoints()
    ordered: Sequence[RankableRow] = sorted(rows, key=_sort_key)
    field_size = len(ordered)

    out: list[LeaderboardEntry] = []
    prev_key: tuple | None = None
    current_rank = 0

    for position, row in enumerate(ordered, start=1):
        key = _tie_key(row)
        if key != prev_key:
            current_rank = position
            prev_key = key

        completed, ratio, _ = key
        out.append(
            LeaderboardEntry(
                rank=current_rank,
                user_id=int(row.user_id),
                display_name=getattr(row, "display_name", None),
                current_amount=Decimal(row.current_amount),
                target_amount=Decimal(row.target_amount),
                penalty_carry_over=Decimal(row.penalty_carry_over),
                ratio=ratio,
                progress_percentage=display_percentage(row.current_amount, row.target_amount),
                is_completed=completed,
                points=scheme.points_for(rank=current_rank, field_size=field_size, is_completed=completed),
            )
        )

    return out


def summarize(rows: Iterable[RankableRow]) -> ProgressSummary:
    rows = list(rows)
    participants = len(rows)
    if not participants:
        return ProgressSummary(
            participants=0,
            completed=0,
            completion_rate=ZERO,
            average_completion=ZERO,
            total_progress=ZERO,
        )

    completed = sum(1 for r in rows if Decimal(r.current_amount) >= Decimal(r.target_amount))
    avg = sum((display_percentage(r.current_amount, r.target_amount) for r in rows), ZERO) / participants
    total = sum((Decimal(r.current_amount) for r in rows), ZERO)

    return ProgressSummary(
        participants=participants,
        completed=completed,
        completion_rate=(Decimal(completed) * HUNDRED / participants).quantize(Decimal("0.1")),
        average_completion=avg.quantize(Decimal("0.1")),
        total_progress=total,
    )
