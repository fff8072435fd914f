"""
End conditions of an event.

An Event owns one or more EndConditionGroups; each group owns one or more
Conditions. Inside a group every condition must hold (AND); how groups
combine into the event decision is the GroupPolicy in
app/services/conditions.py.

All completion flags are monotonic: once true they are never reset.
`value` is stored as a string — digits only for numeric parameters, a UTC
ISO-8601 timestamp for `time`.
"""
from datetime import datetime
import enum

from sqlalchemy import Integer, String, Boolean, DateTime, Enum, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base

# Width of the stored `value` column.
CONDITION_VALUE_MAX_LENGTH = 64


class ConditionParameter(str, enum.Enum):
    bank = "bank"
    people = "people"
    time = "time"


class ConditionOperator(str, enum.Enum):
    EQUALS = "EQUALS"
    GREATER = "GREATER"
    LESS = "LESS"
    GREATER_EQUALS = "GREATER_EQUALS"
    LESS_EQUALS = "LESS_EQUALS"


class EndConditionGroup(Base):
    __tablename__ = "end_condition_groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    event_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_failed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    event: Mapped["Event"] = relationship(back_populates="groups")  # noqa: F821
    conditions: Mapped[list["Condition"]] = relationship(
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="Condition.id",
    )


class Condition(Base):
    __tablename__ = "conditions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    group_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("end_condition_groups.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    parameter_name: Mapped[str] = mapped_column(
        Enum(ConditionParameter, name="condition_parameter_enum"), nullable=False, index=True
    )
    operator: Mapped[str] = mapped_column(
        Enum(ConditionOperator, name="condition_operator_enum"), nullable=False
    )
    value: Mapped[str] = mapped_column(String(CONDITION_VALUE_MAX_LENGTH), nullable=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    group: Mapped[EndConditionGroup] = relationship(back_populates="conditions")
