"""
Users router.

POST /users                        — create a user (and its achievement rows)
GET  /users/{id}                   — one user with balance
POST /users/{id}/balance           — deposit to / withdraw from the balance
GET  /users/{id}/transactions      — transaction history (paginated)
POST /users/{id}/activity          — recompute the activity streak
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.db.base import get_db
from app.models import enum_value
from app.models.transaction import Transaction, TransactionType
from app.models.user import User
from app.routers.dependencies import get_criterion_manager, get_tracker
from app.schemas.common import with_errors
from app.schemas.users import (
    ActivityResponse,
    BalanceChange,
    TransactionListResponse,
    TransactionResponse,
    UserCreate,
    UserResponse,
)
from app.services import users as user_service
from app.services.achievements import AchievementTracker
from app.services.criteria import CriterionManager

router = APIRouter(prefix="/users", tags=["users"])


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def _user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        balance=str(user.balance),
        created_at=user.created_at.isoformat() if user.created_at else "",
    )


def _tx_to_response(tx: Transaction) -> TransactionResponse:
    return TransactionResponse(
        id=tx.id,
        user_id=tx.user_id,
        event_id=tx.event_id,
        amount=str(tx.amount),
        tx_type=enum_value(tx.tx_type),
        description=tx.description,
        created_at=tx.created_at.isoformat() if tx.created_at else "",
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a user",
    responses=with_errors({409: {"description": "Username or email already taken"}}),
)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    tracker: AchievementTracker = Depends(get_tracker),
):
    """Create a user with a zero balance and initialize its achievement progress."""
    user = user_service.create_user(db, payload.username, payload.email, tracker=tracker)
    return _user_to_response(user)


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    summary="Get one user",
    responses=with_errors({404: {"description": "User not found"}}),
)
def get_user(user_id: int, db: Session = Depends(get_db)):
    return _user_to_response(user_service.get_user(db, user_id))


@router.post(
    "/{user_id}/balance",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Deposit to or withdraw from a user's balance",
    responses=with_errors({
        404: {"description": "User not found"},
        409: {"description": "Withdrawal larger than the balance"},
    }),
)
def change_balance(
    user_id: int,
    payload: BalanceChange,
    db: Session = Depends(get_db),
    manager: CriterionManager = Depends(get_criterion_manager),
):
    tx_type = (
        TransactionType.BALANCE_INCOME if payload.operation == "deposit"
        else TransactionType.BALANCE_OUTCOME
    )
    tx = user_service.change_balance(
        db, user_id, payload.amount, tx_type,
        manager=manager,
        description=payload.description,
    )
    return _tx_to_response(tx)


@router.get(
    "/{user_id}/transactions",
    response_model=TransactionListResponse,
    summary="List a user's transactions (newest first)",
    responses=with_errors({404: {"description": "User not found"}}),
)
def list_transactions(
    user_id: int,
    limit: int = Query(default=50, ge=1, le=200, description="Page size."),
    offset: int = Query(default=0, ge=0, description="Skip N items."),
    db: Session = Depends(get_db),
):
    total, items = user_service.list_transactions(db, user_id, limit=limit, offset=offset)
    return TransactionListResponse(total=total, items=[_tx_to_response(t) for t in items])


@router.post(
    "/{user_id}/activity",
    response_model=ActivityResponse,
    summary="Recompute the user's activity streak",
    responses=with_errors({404: {"description": "User not found"}}),
)
def update_activity(
    user_id: int,
    manager: CriterionManager = Depends(get_criterion_manager),
):
    """Count consecutive active days and feed them to USER_ACTIVITY progress."""
    streak = manager.update_user_activity_streak(user_id)
    return ActivityResponse(user_id=user_id, streak=streak)
