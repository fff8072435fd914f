"""
Events router.

POST /events                          — create an event with end conditions
GET  /events                          — list events (filters, paginated)
GET  /events/{id}                     — one event with its condition groups
GET  /events/{id}/conditions          — live condition status and % done
POST /events/{id}/start               — PENDING → IN_PROGRESS
POST /events/{id}/cancel              — PENDING | IN_PROGRESS → CANCELLED
POST /events/{id}/participations      — deposit into an event
GET  /events/{id}/participations      — list deposits
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.db.base import get_db
from app.models import enum_value
from app.models.event import Event
from app.models.participation import Participation
from app.routers.dependencies import get_coordinator, get_criterion_manager
from app.schemas.common import with_errors
from app.schemas.events import (
    CheckResultResponse,
    ConditionOut,
    ConditionsStatusResponse,
    EventCreate,
    EventCreateResponse,
    EventListResponse,
    EventResponse,
    GroupOut,
    ParticipationCreate,
    ParticipationCreateResponse,
    ParticipationListResponse,
    ParticipationResponse,
)
from app.services import events as event_service
from app.services.criteria import CriterionManager
from app.services.event_completion import CheckResult, EventCompletionCoordinator
from app.services.participations import create_participation, list_participations

router = APIRouter(prefix="/events", tags=["events"])


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def _iso(moment) -> Optional[str]:
    return moment.isoformat() if moment else None


def event_to_response(event: Event) -> EventResponse:
    return EventResponse(
        id=event.id,
        name=event.name,
        description=event.description,
        event_type=enum_value(event.event_type),
        status=enum_value(event.status),
        bank_amount=str(event.bank_amount),
        creator_id=event.creator_id,
        recipient_id=event.recipient_id,
        winner_id=event.winner_id,
        completed_at=_iso(event.completed_at),
        created_at=_iso(event.created_at) or "",
        groups=[
            GroupOut(
                id=group.id,
                is_completed=group.is_completed,
                is_failed=group.is_failed,
                conditions=[
                    ConditionOut(
                        id=c.id,
                        parameter_name=enum_value(c.parameter_name),
                        operator=enum_value(c.operator),
                        value=c.value,
                        is_completed=c.is_completed,
                    )
                    for c in group.conditions
                ],
            )
            for group in event.groups
        ],
    )


def check_to_response(result: CheckResult) -> CheckResultResponse:
    return CheckResultResponse(
        check=result.check,
        ok=result.ok,
        error=result.error,
        event_ids=result.event_ids,
        conditions_completed=result.conditions_completed,
        groups_completed=result.groups_completed,
        groups_failed=result.groups_failed,
        transitions={str(k): v.value for k, v in result.transitions.items()},
    )


def _participation_to_response(p: Participation) -> ParticipationResponse:
    return ParticipationResponse(
        id=p.id,
        event_id=p.event_id,
        user_id=p.user_id,
        deposit=str(p.deposit),
        created_at=_iso(p.created_at) or "",
    )


# ---------------------------------------------------------------------------
# POST /events
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=EventCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an event with end condition groups",
    responses=with_errors({
        201: {"description": "Event created; `checks` reports the initial condition pass."},
        404: {"description": "Creator or recipient not found"},
        422: {"description": "Unknown operator / parameter or malformed condition value"},
    }),
)
def create_event(
    payload: EventCreate,
    db: Session = Depends(get_db),
    manager: CriterionManager = Depends(get_criterion_manager),
    coordinator: EventCompletionCoordinator = Depends(get_coordinator),
):
    """
    Create an event. Condition values are sanitised once, here: numbers
    keep their exact value, otherwise only their digits are kept
    (`"1,000$"` → `"1000"`); times are stored as UTC ISO-8601.

    `time` conditions with `LESS` / `LESS_EQUALS` are deadlines: the
    group fails if its other conditions are not met before the moment.
    """
    event, checks = event_service.create_event(
        db,
        name=payload.name,
        event_type=payload.event_type,
        creator_id=payload.creator_id,
        groups=[[c.model_dump() for c in group] for group in payload.groups],
        description=payload.description,
        recipient_id=payload.recipient_id,
        start=payload.start,
        manager=manager,
        coordinator=coordinator,
    )
    return EventCreateResponse(
        event=event_to_response(event),
        checks=[check_to_response(r) for r in checks],
    )


# ---------------------------------------------------------------------------
# GET /events, GET /events/{id}
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=EventListResponse,
    summary="List events (newest first)",
)
def list_events(
    status_filter: Optional[str] = Query(
        default=None, alias="status", description="PENDING | IN_PROGRESS | COMPLETED | FAILED | CANCELLED",
    ),
    event_type: Optional[str] = Query(default=None, description="DONATION | FUNDRAISING | JACKPOT"),
    creator_id: Optional[int] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200, description="Page size."),
    offset: int = Query(default=0, ge=0, description="Skip N items."),
    db: Session = Depends(get_db),
):
    total, items = event_service.list_events(
        db,
        status=status_filter,
        event_type=event_type,
        creator_id=creator_id,
        limit=limit,
        offset=offset,
    )
    return EventListResponse(total=total, items=[event_to_response(e) for e in items])


@router.get(
    "/{event_id}",
    response_model=EventResponse,
    summary="Get one event",
    responses=with_errors({404: {"description": "Event not found"}}),
)
def get_event(event_id: int, db: Session = Depends(get_db)):
    return event_to_response(event_service.get_event(db, event_id))


@router.get(
    "/{event_id}/conditions",
    response_model=ConditionsStatusResponse,
    summary="Live condition status of an event",
    responses=with_errors({404: {"description": "Event not found"}}),
)
def get_event_conditions(event_id: int, db: Session = Depends(get_db)):
    """
    Every condition group with its conditions, the live current value of
    each condition's parameter and the group's completion percentage.
    """
    view = event_service.get_event_conditions_status(db, event_id)
    return ConditionsStatusResponse(
        event_id=view.event_id,
        status=view.status,
        bank=str(view.bank),
        people=view.people,
        groups=[
            {
                "id": g.id,
                "is_completed": g.is_completed,
                "is_failed": g.is_failed,
                "completion_percentage": g.completion_percentage,
                "conditions": [vars(c) for c in g.conditions],
            }
            for g in view.groups
        ],
    )


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

@router.post(
    "/{event_id}/start",
    response_model=EventCreateResponse,
    summary="Start a pending event",
    responses=with_errors({
        404: {"description": "Event not found"},
        409: {"description": "Event is not PENDING"},
    }),
)
def start_event(
    event_id: int,
    db: Session = Depends(get_db),
    coordinator: EventCompletionCoordinator = Depends(get_coordinator),
):
    event, checks = event_service.start_event(db, event_id, coordinator=coordinator)
    return EventCreateResponse(
        event=event_to_response(event),
        checks=[check_to_response(r) for r in checks],
    )


@router.post(
    "/{event_id}/cancel",
    response_model=EventResponse,
    summary="Cancel an event",
    responses=with_errors({
        404: {"description": "Event not found"},
        409: {"description": "Event already COMPLETED, FAILED or CANCELLED"},
    }),
)
def cancel_event(event_id: int, db: Session = Depends(get_db)):
    return event_to_response(event_service.cancel_event(db, event_id))


# ---------------------------------------------------------------------------
# Participations
# ---------------------------------------------------------------------------

@router.post(
    "/{event_id}/participations",
    response_model=ParticipationCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Deposit into an event",
    responses=with_errors({
        201: {"description": "Deposit recorded; `checks` reports the bank / people pass."},
        404: {"description": "Event or user not found"},
        409: {"description": "Event not IN_PROGRESS, or insufficient balance"},
    }),
)
def participate(
    event_id: int,
    payload: ParticipationCreate,
    db: Session = Depends(get_db),
    manager: CriterionManager = Depends(get_criterion_manager),
    coordinator: EventCompletionCoordinator = Depends(get_coordinator),
):
    """
    Record a deposit, then check the event's bank and people conditions.

    The deposit is committed before the checks run: a failing check is
    reported in `checks[].ok` and does not fail this request (unless the
    server runs with `CONDITION_CHECK_FAILURES=raise`).
    """
    participation, checks = create_participation(
        db,
        event_id=event_id,
        user_id=payload.user_id,
        deposit=payload.deposit,
        manager=manager,
        coordinator=coordinator,
    )
    event = event_service.get_event(db, event_id)
    db.refresh(event)
    return ParticipationCreateResponse(
        participation=_participation_to_response(participation),
        event_status=enum_value(event.status),
        checks=[check_to_response(r) for r in checks],
    )


@router.get(
    "/{event_id}/participations",
    response_model=ParticipationListResponse,
    summary="List deposits of an event",
    responses=with_errors({404: {"description": "Event not found"}}),
)
def get_participations(
    event_id: int,
    limit: int = Query(default=50, ge=1, le=200, description="Page size."),
    offset: int = Query(default=0, ge=0, description="Skip N items."),
    db: Session = Depends(get_db),
):
    total, items = list_participations(db, event_id, limit=limit, offset=offset)
    return ParticipationListResponse(
        total=total,
        items=[_participation_to_response(p) for p in items],
    )
