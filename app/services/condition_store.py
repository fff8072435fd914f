"""
Condition Store Gateway — every read and write the condition engine makes.

Writes are guarded UPDATEs (`... WHERE flag = false`, `... WHERE status =
expected`). They return True only for the caller that actually flipped
the row, so redundant or concurrent checks converge on the same state and
each transition side effect runs at most once.

Nothing here commits; the coordinator owns the transaction.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from app.models.condition import Condition, ConditionParameter, EndConditionGroup
from app.models.event import Event, EventStatus
from app.models.participation import Participation


# ---------------------------------------------------------------------------
# Live facts
# ---------------------------------------------------------------------------

def bank_total(db: Session, event_id: int) -> Decimal:
    total = (
        db.query(func.coalesce(func.sum(Participation.deposit), 0))
        .filter(Participation.event_id == event_id)
        .scalar()
    )
    return Decimal(str(total or 0))


def participant_count(db: Session, event_id: int) -> int:
    return (
        db.query(func.count(Participation.id))
        .filter(Participation.event_id == event_id)
        .scalar()
        or 0
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_event(db: Session, event_id: int) -> Optional[Event]:
    return db.get(Event, event_id)


def event_groups(db: Session, event_id: int) -> list[EndConditionGroup]:
    return (
        db.query(EndConditionGroup)
        .options(selectinload(EndConditionGroup.conditions))
        .filter(EndConditionGroup.event_id == event_id)
        .order_by(EndConditionGroup.id)
        .all()
    )


def unresolved_groups(db: Session, event_id: int) -> list[EndConditionGroup]:
    """Groups of the event that are neither completed nor failed, with their conditions."""
    return (
        db.query(EndConditionGroup)
        .options(selectinload(EndConditionGroup.conditions))
        .filter(
            EndConditionGroup.event_id == event_id,
            EndConditionGroup.is_completed == False,  # noqa: E712
            EndConditionGroup.is_failed == False,  # noqa: E712
        )
        .order_by(EndConditionGroup.id)
        .all()
    )


def unresolved_time_conditions(db: Session) -> list[Condition]:
    """
    Every open `time` condition in an open group of an in-progress event,
    system-wide. Ordered by event so the sweep settles events in a stable order.
    """
    return (
        db.query(Condition)
        .join(EndConditionGroup, Condition.group_id == EndConditionGroup.id)
        .join(Event, EndConditionGroup.event_id == Event.id)
        .filter(
            Condition.parameter_name == ConditionParameter.time,
            Condition.is_completed == False,  # noqa: E712
            EndConditionGroup.is_completed == False,  # noqa: E712
            EndConditionGroup.is_failed == False,  # noqa: E712
            Event.status == EventStatus.IN_PROGRESS,
        )
        .order_by(EndConditionGroup.event_id, Condition.id)
        .all()
    )


# ---------------------------------------------------------------------------
# Guarded writes
# ---------------------------------------------------------------------------

def mark_condition_completed(db: Session, condition_id: int) -> bool:
    updated = (
        db.query(Condition)
        .filter(Condition.id == condition_id, Condition.is_completed == False)  # noqa: E712
        .update({Condition.is_completed: True}, synchronize_session="evaluate")
    )
    return updated == 1


def mark_group_completed(db: Session, group_id: int) -> bool:
    updated = (
        db.query(EndConditionGroup)
        .filter(
            EndConditionGroup.id == group_id,
            EndConditionGroup.is_completed == False,  # noqa: E712
            EndConditionGroup.is_failed == False,  # noqa: E712
        )
        .update({EndConditionGroup.is_completed: True}, synchronize_session="evaluate")
    )
    return updated == 1


def mark_group_failed(db: Session, group_id: int) -> bool:
    updated = (
        db.query(EndConditionGroup)
        .filter(
            EndConditionGroup.id == group_id,
            EndConditionGroup.is_completed == False,  # noqa: E712
            EndConditionGroup.is_failed == False,  # noqa: E712
        )
        .update({EndConditionGroup.is_failed: True}, synchronize_session="evaluate")
    )
    return updated == 1


def transition_event_status(
    db: Session,
    event_id: int,
    expected: EventStatus,
    target: EventStatus,
    **values: Any,
) -> bool:
    """Move the event to `target` only if it is still in `expected`."""
    changes: dict[Any, Any] = {Event.status: target}
    for name, value in values.items():
        changes[getattr(Event, name)] = value
    updated = (
        db.query(Event)
        .filter(Event.id == event_id, Event.status == expected)
        .update(changes, synchronize_session="evaluate")
    )
    return updated == 1
