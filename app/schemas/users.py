"""
User and balance schemas.

POST /users                    UserCreate        → UserResponse
POST /users/{id}/balance       BalanceChange     → TransactionResponse
GET  /users/{id}/transactions                    → TransactionListResponse
POST /users/{id}/activity                        → ActivityResponse
"""
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class UserCreate(BaseModel):
    username: str = Field(min_length=1, max_length=64, examples=["alice"])
    email: str = Field(min_length=3, max_length=256, pattern=r"^[^@\s]+@[^@\s]+$", examples=["alice@example.com"])


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    balance: str
    created_at: str


class BalanceChange(BaseModel):
    amount: Decimal = Field(gt=0, examples=["100.00"])
    operation: Literal["deposit", "withdraw"] = Field(
        default="deposit",
        description='"deposit" adds to the balance, "withdraw" subtracts from it.',
    )
    description: Optional[str] = Field(default=None, max_length=500)


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    event_id: Optional[int] = None
    amount: str
    tx_type: str = Field(
        description='"BALANCE_INCOME" | "BALANCE_OUTCOME" | "EVENT_INCOME" | "EVENT_OUTCOME" | "GIFT"'
    )
    description: Optional[str] = None
    created_at: str


class TransactionListResponse(BaseModel):
    total: int
    items: list[TransactionResponse]


class ActivityResponse(BaseModel):
    user_id: int
    streak: int = Field(description="Consecutive UTC days with event activity.")
