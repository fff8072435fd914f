from datetime import datetime
from sqlalchemy import Integer, Text, Numeric, DateTime, Enum, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column
from decimal import Decimal
import enum

from app.db.base import Base


class TransactionType(str, enum.Enum):
    BALANCE_INCOME = "BALANCE_INCOME"
    BALANCE_OUTCOME = "BALANCE_OUTCOME"
    EVENT_INCOME = "EVENT_INCOME"
    EVENT_OUTCOME = "EVENT_OUTCOME"
    GIFT = "GIFT"


# Types that add to the user's balance; everything else subtracts.
INCOMING_TYPES = frozenset({
    TransactionType.BALANCE_INCOME,
    TransactionType.EVENT_INCOME,
    TransactionType.GIFT,
})


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("events.id", ondelete="SET NULL"), nullable=True, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    tx_type: Mapped[str] = mapped_column(
        Enum(TransactionType, name="transaction_type_enum"),
        nullable=False,
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
