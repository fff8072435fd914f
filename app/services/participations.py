"""
Participations — a user's deposit into an in-progress event.

The deposit is recorded (EVENT_OUTCOME transaction + participation row +
cached bank total) and committed first. Achievement fan-out and the
bank / people condition checks run afterwards, so a failed check never
loses the deposit; what a failed check does is decided by
CONDITION_CHECK_FAILURES.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.core.errors import EventNotActiveError, ValidationError
from app.models import enum_value
from app.models.event import EventStatus
from app.models.participation import Participation
from app.models.transaction import TransactionType
from app.services import condition_store
from app.services.achievements import to_decimal
from app.services.criteria import CriterionManager
from app.services.event_completion import (
    CheckResult,
    EventCompletionCoordinator,
    run_post_participation_checks,
)
from app.services.events import get_event
from app.services.users import apply_transaction, get_user

logger = logging.getLogger(__name__)


def create_participation(
    db: Session,
    event_id: int,
    user_id: int,
    deposit: Any,
    manager: Optional[CriterionManager] = None,
    coordinator: Optional[EventCompletionCoordinator] = None,
) -> tuple[Participation, list[CheckResult]]:
    amount = to_decimal(deposit)
    if amount <= 0:
        raise ValidationError(
            message="Deposit must be positive.",
            details={"deposit": str(amount)},
        )
    event = get_event(db, event_id)
    if event.status != EventStatus.IN_PROGRESS:
        raise EventNotActiveError(event_id, enum_value(event.status))
    get_user(db, user_id)

    apply_transaction(
        db,
        user_id,
        amount,
        TransactionType.EVENT_OUTCOME,
        event_id=event_id,
        description=f"Deposit to event {event_id}",
    )
    participation = Participation(event_id=event_id, user_id=user_id, deposit=amount)
    db.add(participation)
    db.flush()
    event.bank_amount = condition_store.bank_total(db, event_id)
    db.commit()
    db.refresh(participation)
    logger.info("User %s deposited %s into event %s", user_id, amount, event_id)

    if manager is not None:
        manager.on_event_participated(user_id)
        manager.on_user_bank_updated(user_id, Decimal(str(get_user(db, user_id).balance)))

    results: list[CheckResult] = []
    if coordinator is not None:
        results = run_post_participation_checks(coordinator, event_id)
    return participation, results


def list_participations(
    db: Session,
    event_id: int,
    limit: int = 50,
    offset: int = 0,
) -> tuple[int, list[Participation]]:
    get_event(db, event_id)
    q = db.query(Participation).filter(Participation.event_id == event_id)
    total = q.count()
    items = q.order_by(Participation.id).offset(offset).limit(limit).all()
    return total, items
