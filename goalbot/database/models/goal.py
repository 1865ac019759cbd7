# goalbot/database/models/goal.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from goalbot.database.base import Base
from goalbot.utils.periods import PeriodType


class GroupGoal(Base):
    """
    Shared recurring goal of a group.

    period_type never changes after creation (open periods would desync).
    base_target changes only affect periods opened afterwards.
    """
    __tablename__ = "group_goals"
    __table_args__ = (
        CheckConstraint("base_target > 0", name="ck_group_goals_base_target_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("groups.id", ondelete="CASCADE"), index=True)

    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    unit: Mapped[str] = mapped_column(String(50))

    period_type: Mapped[PeriodType] = mapped_column(Enum(PeriodType, native_enum=False))
    base_target: Mapped[Decimal] = mapped_column(Numeric(12, 2))

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    created_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # bumped by every sweep; also the first write of a transition unit of work
    last_swept_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        server_default=func.now(),
        onupdate=func.now(),
    )
