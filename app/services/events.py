"""
Event lifecycle: creation with end conditions, reads, start / cancel,
and the live condition status view.

Status machine
--------------
  PENDING -> IN_PROGRESS -> COMPLETED | FAILED     (coordinator only)
  PENDING | IN_PROGRESS -> CANCELLED

Every transition is a guarded UPDATE on the expected current status.
Conditions are validated and sanitised here, once, before they are
persisted; the coordinator only ever parses stored values strictly.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import (
    EventNotFoundError,
    InvalidStatusTransitionError,
    UserNotFoundError,
    ValidationError,
)
from app.models import enum_value
from app.models.condition import Condition, ConditionParameter, EndConditionGroup
from app.models.event import Event, EventStatus, EventType
from app.models.user import User
from app.services import condition_store
from app.services.conditions import completion_percentage, validate_condition
from app.services.criteria import CriterionManager
from app.services.event_completion import (
    CheckResult,
    EventCompletionCoordinator,
    enforce_check_policy,
)

logger = logging.getLogger(__name__)


def parse_event_type(raw: Any) -> EventType:
    try:
        return EventType(str(enum_value(raw)).strip().upper())
    except ValueError as exc:
        raise ValidationError(
            message=f"Unsupported event type: {raw!r}.",
            details={"event_type": str(raw)},
        ) from exc


def _build_groups(groups: Sequence[Sequence[Mapping[str, Any]]]) -> list[EndConditionGroup]:
    built = []
    for index, conditions in enumerate(groups):
        if not conditions:
            raise ValidationError(
                message="Every condition group needs at least one condition.",
                details={"group": index},
            )
        rows = []
        for item in conditions:
            parameter, operator, value = validate_condition(
                item.get("parameter_name"), item.get("operator"), item.get("value"),
            )
            rows.append(Condition(parameter_name=parameter, operator=operator, value=value))
        built.append(EndConditionGroup(conditions=rows))
    return built


def _require_user(db: Session, user_id: int) -> None:
    if db.get(User, user_id) is None:
        raise UserNotFoundError(user_id)


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------

def create_event(
    db: Session,
    name: str,
    event_type: Any,
    creator_id: int,
    groups: Sequence[Sequence[Mapping[str, Any]]] = (),
    description: Optional[str] = None,
    recipient_id: Optional[int] = None,
    start: bool = True,
    manager: Optional[CriterionManager] = None,
    coordinator: Optional[EventCompletionCoordinator] = None,
) -> tuple[Event, list[CheckResult]]:
    """
    Persist an event with its condition groups, report it to the
    achievement fan-out, then run an initial condition check so that
    conditions already true (e.g. a time threshold in the past) settle
    immediately.
    """
    etype = parse_event_type(event_type)
    _require_user(db, creator_id)
    if recipient_id is not None:
        _require_user(db, recipient_id)
    elif etype is not EventType.JACKPOT:
        recipient_id = creator_id

    event = Event(
        name=name,
        description=description,
        event_type=etype,
        status=EventStatus.IN_PROGRESS if start else EventStatus.PENDING,
        bank_amount=Decimal("0"),
        creator_id=creator_id,
        recipient_id=recipient_id,
        groups=_build_groups(groups),
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info(
        "Created %s event %s with %d condition groups", etype.value, event.id, len(event.groups),
    )

    if manager is not None:
        manager.on_event_created(creator_id)

    results: list[CheckResult] = []
    if start and coordinator is not None:
        results.append(coordinator.check_event_conditions(event.id))
        if settings.TIME_CHECK_ON_EVENT_CREATE:
            results.append(coordinator.check_time_conditions())
        enforce_check_policy(results)
        db.refresh(event)
    return event, results


def get_event(db: Session, event_id: int) -> Event:
    event = db.get(Event, event_id)
    if event is None:
        raise EventNotFoundError(event_id)
    return event


def list_events(
    db: Session,
    status: Optional[str] = None,
    event_type: Optional[str] = None,
    creator_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[int, list[Event]]:
    q = db.query(Event)
    if status:
        try:
            q = q.filter(Event.status == EventStatus(status.upper()))
        except ValueError as exc:
            raise ValidationError(
                message=f"Unsupported event status: {status!r}.",
                details={"status": status},
            ) from exc
    if event_type:
        q = q.filter(Event.event_type == parse_event_type(event_type))
    if creator_id is not None:
        q = q.filter(Event.creator_id == creator_id)
    total = q.count()
    items = q.order_by(Event.created_at.desc(), Event.id.desc()).offset(offset).limit(limit).all()
    return total, items


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

def start_event(
    db: Session,
    event_id: int,
    coordinator: Optional[EventCompletionCoordinator] = None,
) -> tuple[Event, list[CheckResult]]:
    event = get_event(db, event_id)
    if not condition_store.transition_event_status(
        db, event_id, EventStatus.PENDING, EventStatus.IN_PROGRESS,
    ):
        raise InvalidStatusTransitionError(event_id, enum_value(event.status), EventStatus.IN_PROGRESS.value)
    db.commit()
    logger.info("Event %s started", event_id)

    results: list[CheckResult] = []
    if coordinator is not None:
        results = [coordinator.check_event_conditions(event_id), coordinator.check_time_conditions()]
        enforce_check_policy(results)
    db.refresh(event)
    return event, results


def cancel_event(db: Session, event_id: int) -> Event:
    event = get_event(db, event_id)
    for expected in (EventStatus.IN_PROGRESS, EventStatus.PENDING):
        if condition_store.transition_event_status(db, event_id, expected, EventStatus.CANCELLED):
            db.commit()
            logger.info("Event %s cancelled (was %s)", event_id, expected.value)
            db.refresh(event)
            return event
    db.refresh(event)
    raise InvalidStatusTransitionError(event_id, enum_value(event.status), EventStatus.CANCELLED.value)


# ---------------------------------------------------------------------------
# Live condition status
# ---------------------------------------------------------------------------

@dataclass
class ConditionStatus:
    id: int
    parameter_name: str
    operator: str
    value: str
    is_completed: bool
    current_value: str


@dataclass
class GroupStatus:
    id: int
    is_completed: bool
    is_failed: bool
    completion_percentage: int
    conditions: list[ConditionStatus] = field(default_factory=list)


@dataclass
class EventConditionsStatus:
    event_id: int
    status: str
    bank: Decimal
    people: int
    groups: list[GroupStatus] = field(default_factory=list)


def get_event_conditions_status(
    db: Session,
    event_id: int,
    now: Optional[datetime] = None,
) -> EventConditionsStatus:
    """Each group with its conditions, their live current values and % done."""
    event = get_event(db, event_id)
    now = now or datetime.now(timezone.utc)
    bank = condition_store.bank_total(db, event_id)
    people = condition_store.participant_count(db, event_id)
    current = {
        ConditionParameter.bank: str(bank),
        ConditionParameter.people: str(people),
        ConditionParameter.time: now.isoformat(),
    }

    groups: Iterable[EndConditionGroup] = condition_store.event_groups(db, event_id)
    return EventConditionsStatus(
        event_id=event_id,
        status=enum_value(event.status),
        bank=bank,
        people=people,
        groups=[
            GroupStatus(
                id=group.id,
                is_completed=group.is_completed,
                is_failed=group.is_failed,
                completion_percentage=completion_percentage(group.conditions),
                conditions=[
                    ConditionStatus(
                        id=c.id,
                        parameter_name=enum_value(c.parameter_name),
                        operator=enum_value(c.operator),
                        value=c.value,
                        is_completed=c.is_completed,
                        current_value=current[ConditionParameter(enum_value(c.parameter_name))],
                    )
                    for c in group.conditions
                ],
            )
            for group in groups
        ],
    )
