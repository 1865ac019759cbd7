# goalbot/database/models/period.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from goalbot.database.base import Base
from goalbot.utils.periods import PeriodBounds


class GroupGoalPeriod(Base):
    """
    Half-open [start_at, end_at) window of a goal, UTC.

    Immutable once created except is_active/finalized_at, which flip exactly
    once at finalization. At most one active period per goal (partial unique index).
    """
    __tablename__ = "group_goal_periods"
    __table_args__ = (
        UniqueConstraint("group_goal_id", "start_at", name="uq_group_goal_periods_goal_start"),
        CheckConstraint("end_at > start_at", name="ck_group_goal_periods_interval"),
        Index(
            "uq_group_goal_periods_one_active",
            "group_goal_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
        Index("ix_group_goal_periods_active_end", "is_active", "end_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    group_goal_id: Mapped[int] = mapped_column(ForeignKey("group_goals.id", ondelete="CASCADE"), index=True)

    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=False))
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=False))

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), server_default=func.now())

    @property
    def bounds(self) -> PeriodBounds:
        return PeriodBounds(start=self.start_at, end=self.end_at)

    def has_ended(self, now: datetime) -> bool:
        return self.end_at <= now
