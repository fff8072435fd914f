from datetime import datetime
from decimal import Decimal
import enum

from sqlalchemy import Integer, String, Text, Numeric, DateTime, Enum, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class EventStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset({
    EventStatus.COMPLETED,
    EventStatus.FAILED,
    EventStatus.CANCELLED,
})


class EventType(str, enum.Enum):
    DONATION = "DONATION"
    FUNDRAISING = "FUNDRAISING"
    JACKPOT = "JACKPOT"


class Event(Base):
    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    event_type: Mapped[str] = mapped_column(
        Enum(EventType, name="event_type_enum"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        Enum(EventStatus, name="event_status_enum"),
        nullable=False,
        default=EventStatus.IN_PROGRESS,
        index=True,
    )
    # Cached sum of deposits; condition checks always read the live aggregate.
    bank_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    creator_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    recipient_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    winner_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    groups: Mapped[list["EndConditionGroup"]] = relationship(  # noqa: F821
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EndConditionGroup.id",
    )
