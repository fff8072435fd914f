"""
Achievements and per-user progress.

Achievement ──< AchievementCriterion            (catalogue, read-only for the engine)
UserAchievement ──< UserCriterionProgress       (one row per user × achievement × criterion)

Unique constraints make lazy and eager creation of the per-user rows
idempotent at the DB level. `unlocked` / `completed` only ever flip
false → true, and their timestamps are written exactly once, together
with the flip.
"""
from datetime import datetime
from decimal import Decimal
import enum

from sqlalchemy import (
    Integer, String, Text, Boolean, Numeric, DateTime, Enum, ForeignKey,
    UniqueConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class CriterionType(str, enum.Enum):
    EVENT_COUNT_ALL = "EVENT_COUNT_ALL"
    EVENT_COUNT_CREATED = "EVENT_COUNT_CREATED"
    EVENT_COUNT_COMPLETED = "EVENT_COUNT_COMPLETED"
    EVENT_BANK_COMPLETED = "EVENT_BANK_COMPLETED"
    EVENT_PEOPLE_COMPLETED = "EVENT_PEOPLE_COMPLETED"
    EVENT_TIME_COMPLETED = "EVENT_TIME_COMPLETED"
    EVENT_INCOME_ONETIME = "EVENT_INCOME_ONETIME"
    EVENT_INCOME_ALL = "EVENT_INCOME_ALL"
    USER_ACTIVITY = "USER_ACTIVITY"
    USER_BANK = "USER_BANK"


class Achievement(Base):
    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    icon: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    criteria: Mapped[list["AchievementCriterion"]] = relationship(
        back_populates="achievement",
        cascade="all, delete-orphan",
        order_by="AchievementCriterion.id",
    )


class AchievementCriterion(Base):
    __tablename__ = "achievement_criteria"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    achievement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    criterion_type: Mapped[str] = mapped_column(
        Enum(CriterionType, name="criterion_type_enum"), nullable=False, index=True
    )
    # Target threshold; zero and negative targets are legal.
    value: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    achievement: Mapped[Achievement] = relationship(back_populates="criteria")


class UserAchievement(Base):
    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    achievement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    unlocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    unlocked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    progresses: Mapped[list["UserCriterionProgress"]] = relationship(
        back_populates="user_achievement",
        cascade="all, delete-orphan",
        order_by="UserCriterionProgress.criterion_id",
    )


class UserCriterionProgress(Base):
    __tablename__ = "user_criterion_progress"
    __table_args__ = (
        UniqueConstraint("user_achievement_id", "criterion_id", name="uq_user_criterion_progress"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_achievement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("user_achievements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    criterion_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("achievement_criteria.id", ondelete="CASCADE"), nullable=False, index=True
    )
    current_value: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    user_achievement: Mapped[UserAchievement] = relationship(back_populates="progresses")
