"""
Notification — outbox of things the external notification collaborator
(push, email, websocket fan-out) should deliver.

Append-only. Terminal kinds carry `dedupe_key = "<kind>:<subject_id>"`, so the
unique constraint makes re-emission after a redundant check a no-op at the
DB level. Progress-style kinds (conditions updated, balance updated) leave
`dedupe_key` NULL, which the constraint does not compare.

kind values:
  "achievement_unlocked"      — subject = user_achievement.id
  "event_completed"           — subject = event.id
  "event_failed"              — subject = event.id
  "event_conditions_updated"  — subject = event.id
  "balance_updated"           — subject = user.id

payload: JSON-encoded dict stored as Text.
"""
from datetime import datetime
import enum

from sqlalchemy import Integer, String, Text, DateTime, func, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class NotificationKind(str, enum.Enum):
    achievement_unlocked = "achievement_unlocked"
    event_completed = "event_completed"
    event_failed = "event_failed"
    event_conditions_updated = "event_conditions_updated"
    balance_updated = "balance_updated"


# Kinds emitted at most once per subject.
UNIQUE_KINDS = frozenset({
    NotificationKind.achievement_unlocked,
    NotificationKind.event_completed,
    NotificationKind.event_failed,
})


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        UniqueConstraint("dedupe_key", name="uq_notification_dedupe_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    kind: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    subject_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    dedupe_key: Mapped[str | None] = mapped_column(String(128), nullable=True)
    payload: Mapped[str | None] = mapped_column(
        "payload", Text, nullable=True,
        comment="JSON-encoded dict with context specific to each kind",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
