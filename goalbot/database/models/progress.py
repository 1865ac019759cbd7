# goalbot/database/models/progress.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column

from goalbot.database.base import Base


class GroupGoalProgress(Base):
    """
    One row per (period, member).

    target_amount = base_target + penalty_carry_over, fixed at creation.
    current_amount only grows, through the atomic increment in the ledger.
    """
    __tablename__ = "group_goal_progress"
    __table_args__ = (
        UniqueConstraint("period_id", "user_id", name="uq_group_goal_progress_period_user"),
        CheckConstraint("current_amount >= 0", name="ck_group_goal_progress_current_nonneg"),
        CheckConstraint("penalty_carry_over >= 0", name="ck_group_goal_progress_penalty_nonneg"),
        Index("ix_group_goal_progress_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    period_id: Mapped[int] = mapped_column(ForeignKey("group_goal_periods.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))

    base_target: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    penalty_carry_over: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    target_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    current_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        server_default=func.now(),
        onupdate=func.now(),
    )

    @hybrid_property
    def is_completed(self) -> bool:
        # derived from the amounts, never stored
        return self.current_amount >= self.target_amount


class ProgressEntry(Base):
    """
    Daily entries of a progress row. Same-day entries are merged additively.
    """
    __tablename__ = "group_goal_entries"
    __table_args__ = (
        UniqueConstraint("progress_id", "entry_date", name="uq_group_goal_entries_progress_date"),
        CheckConstraint("amount >= 0", name="ck_group_goal_entries_amount_nonneg"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    progress_id: Mapped[int] = mapped_column(
        ForeignKey("group_goal_progress.id", ondelete="CASCADE"),
        index=True,
    )

    entry_date: Mapped[date] = mapped_column(Date)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        server_default=func.now(),
        onupdate=func.now(),
    )
