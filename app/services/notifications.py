"""
Notification outbox — what the external delivery collaborator consumes.

Idempotency
-----------
Terminal kinds (achievement unlocked, event completed / failed) are
emitted at most once per subject: the engine checks for an existing row
first and the `dedupe_key` unique constraint is the final guard against
a concurrent writer. Progress kinds are plain appends.

Nothing here commits; callers own the transaction.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.notification import Notification, NotificationKind, UNIQUE_KINDS

logger = logging.getLogger(__name__)


def _dedupe_key(kind: NotificationKind, subject_id: int) -> Optional[str]:
    if kind in UNIQUE_KINDS:
        return f"{kind.value}:{subject_id}"
    return None


def _exists(db: Session, dedupe_key: str) -> bool:
    return (
        db.query(Notification.id)
        .filter(Notification.dedupe_key == dedupe_key)
        .first()
        is not None
    )


def emit(
    db: Session,
    kind: NotificationKind,
    subject_id: int,
    user_id: Optional[int] = None,
    payload: Optional[dict[str, Any]] = None,
) -> bool:
    """
    Queue a notification. Returns True if inserted, False if skipped as a
    duplicate of an already-emitted terminal notification.
    """
    key = _dedupe_key(kind, subject_id)
    if key is not None and _exists(db, key):
        return False

    notification = Notification(
        kind=kind.value,
        subject_id=subject_id,
        user_id=user_id,
        dedupe_key=key,
        payload=json.dumps(payload, default=str) if payload is not None else None,
    )
    try:
        with db.begin_nested():
            db.add(notification)
    except IntegrityError:
        # Another writer emitted it first.
        return False

    logger.debug("Queued %s notification for subject %s", kind.value, subject_id)
    return True


def get_notifications(
    db: Session,
    kind: Optional[str] = None,
    user_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[int, list[Notification]]:
    """Return (total, page) of notifications ordered newest first."""
    q = db.query(Notification)
    if kind:
        q = q.filter(Notification.kind == kind)
    if user_id is not None:
        q = q.filter(Notification.user_id == user_id)
    total = q.count()
    items = (
        q.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return total, items
