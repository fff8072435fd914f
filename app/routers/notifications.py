"""
Notification outbox router.

GET /notifications   — list queued notifications (paginated, newest first)
"""
from __future__ import annotations

import json
from typing import Optional, Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.base import get_db
from app.models.notification import Notification, NotificationKind
from app.schemas.notifications import NotificationListResponse, NotificationResponse
from app.services.notifications import get_notifications

router = APIRouter(prefix="/notifications", tags=["notifications"])


# ---------------------------------------------------------------------------
# Serialization helper
# ---------------------------------------------------------------------------

def _parse_payload(raw: Optional[str]) -> Optional[dict[str, Any]]:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (ValueError, TypeError):
        return None


def _notification_to_response(n: Notification) -> NotificationResponse:
    return NotificationResponse(
        id=n.id,
        kind=n.kind,
        subject_id=n.subject_id,
        user_id=n.user_id,
        payload=_parse_payload(n.payload),
        created_at=n.created_at.isoformat() if n.created_at else "",
    )


# ---------------------------------------------------------------------------
# GET /notifications
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=NotificationListResponse,
    summary="List queued notifications (newest first)",
    responses={
        200: {"description": "Paginated list of notifications for the delivery worker."},
    },
)
def list_notifications(
    kind: Optional[NotificationKind] = Query(
        default=None,
        description="Filter by kind. Omit for all.",
        examples=["achievement_unlocked"],
    ),
    user_id: Optional[int] = Query(default=None, description="Filter by recipient user."),
    limit: int = Query(default=50, ge=1, le=200, description="Page size."),
    offset: int = Query(default=0, ge=0, description="Skip N items."),
    db: Session = Depends(get_db),
):
    """
    Return the outbox consumed by the external notification collaborator.

    ### Kinds
    | Kind | Subject |
    |---|---|
    | `achievement_unlocked`     | user achievement id (at most once) |
    | `event_completed`          | event id (at most once) |
    | `event_failed`             | event id (at most once) |
    | `event_conditions_updated` | event id |
    | `balance_updated`          | user id |
    """
    total, items = get_notifications(
        db,
        kind=kind.value if kind else None,
        user_id=user_id,
        limit=limit,
        offset=offset,
    )
    return NotificationListResponse(
        total=total,
        items=[_notification_to_response(n) for n in items],
    )
