"""
Notification outbox schemas.

GET /notifications → NotificationListResponse
"""
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: str = Field(
        description=(
            '"achievement_unlocked" | "event_completed" | "event_failed" | '
            '"event_conditions_updated" | "balance_updated"'
        )
    )
    subject_id: int = Field(description="Event, user or user-achievement id, depending on kind.")
    user_id: Optional[int] = None
    payload: Optional[dict[str, Any]] = Field(
        default=None,
        description="Context specific to each kind.",
    )
    created_at: str


class NotificationListResponse(BaseModel):
    total: int
    items: list[NotificationResponse]
