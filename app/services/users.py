"""
User balance ledger.

Balance is a cached running total of the user's transactions. Incoming
types add, outgoing types subtract; an outgoing transaction that would
drive the balance negative is refused with InsufficientBalanceError.
The subtraction is a guarded UPDATE (`WHERE balance >= amount`) so two
concurrent withdrawals cannot both pass the check.

Public API
----------
create_user(db, username, email, tracker)     -> User
get_user(db, user_id)                         -> User
apply_transaction(db, user_id, amount, type)  -> Transaction   (no commit)
change_balance(db, user_id, amount, type)     -> Transaction   (commits, fans out USER_BANK)
list_transactions(db, user_id, limit, offset) -> (total, items)
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import (
    DuplicateUserError,
    InsufficientBalanceError,
    UserNotFoundError,
    ValidationError,
)
from app.models.notification import NotificationKind
from app.models.transaction import INCOMING_TYPES, Transaction, TransactionType
from app.models.user import User
from app.services import notifications
from app.services.achievements import AchievementTracker, to_decimal

if TYPE_CHECKING:
    from app.services.criteria import CriterionManager

logger = logging.getLogger(__name__)


def create_user(
    db: Session,
    username: str,
    email: str,
    tracker: Optional[AchievementTracker] = None,
) -> User:
    """Create a user and, when a tracker is given, its achievement rows."""
    clash = (
        db.query(User.id)
        .filter((User.username == username) | (User.email == email))
        .first()
    )
    if clash is not None:
        raise DuplicateUserError(username)

    user = User(username=username, email=email, balance=Decimal("0"))
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateUserError(username) from exc
    db.refresh(user)
    logger.info("Created user %s (%s)", user.id, username)

    if tracker is not None:
        tracker.initialize_user_achievements(user.id)
    return user


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return user


def apply_transaction(
    db: Session,
    user_id: int,
    amount,
    tx_type: TransactionType,
    event_id: Optional[int] = None,
    description: Optional[str] = None,
) -> Transaction:
    """Record one transaction and move the cached balance. The caller commits."""
    amount = to_decimal(amount)
    if amount <= 0:
        raise ValidationError(
            message="Transaction amount must be positive.",
            details={"amount": str(amount)},
        )
    user = get_user(db, user_id)

    q = db.query(User).filter(User.id == user_id)
    if tx_type in INCOMING_TYPES:
        q.update({User.balance: User.balance + amount}, synchronize_session="fetch")
    else:
        updated = (
            q.filter(User.balance >= amount)
            .update({User.balance: User.balance - amount}, synchronize_session="fetch")
        )
        if updated != 1:
            raise InsufficientBalanceError(user_id, user.balance, amount)

    tx = Transaction(
        user_id=user_id,
        event_id=event_id,
        amount=amount,
        tx_type=tx_type,
        description=description,
    )
    db.add(tx)
    db.flush()
    db.refresh(user)

    notifications.emit(
        db,
        NotificationKind.balance_updated,
        subject_id=user_id,
        user_id=user_id,
        payload={"transaction_id": tx.id, "type": tx_type.value, "balance": user.balance},
    )
    logger.debug("User %s %s %s -> balance %s", user_id, tx_type.value, amount, user.balance)
    return tx


def change_balance(
    db: Session,
    user_id: int,
    amount,
    tx_type: TransactionType,
    manager: Optional["CriterionManager"] = None,
    description: Optional[str] = None,
) -> Transaction:
    """Top-up or withdrawal: record, commit, then report the new balance."""
    tx = apply_transaction(db, user_id, amount, tx_type, description=description)
    db.commit()
    db.refresh(tx)
    if manager is not None:
        manager.on_user_bank_updated(user_id, Decimal(str(get_user(db, user_id).balance)))
    return tx


def list_transactions(
    db: Session,
    user_id: int,
    limit: int = 50,
    offset: int = 0,
) -> tuple[int, list[Transaction]]:
    get_user(db, user_id)
    q = db.query(Transaction).filter(Transaction.user_id == user_id)
    total = q.count()
    items = (
        q.order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return total, items
