"""
Achievement catalogue and per-user progress schemas.

GET  /achievements                          → list[AchievementResponse]
GET  /users/{id}/achievements               → UserAchievementListResponse
POST /users/{id}/achievements/initialize    → UserAchievementListResponse
"""
from typing import Optional
from pydantic import BaseModel, Field


class CriterionResponse(BaseModel):
    id: int
    criterion_type: str
    value: str = Field(description="Target; progress >= value completes the criterion.")
    description: Optional[str] = None


class AchievementResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    criteria: list[CriterionResponse]


class CriterionProgressResponse(BaseModel):
    criterion_id: int
    criterion_type: str
    target: str
    current_value: str
    completed: bool
    completed_at: Optional[str] = None


class UserAchievementResponse(BaseModel):
    achievement_id: int
    name: str
    icon: Optional[str] = None
    user_achievement_id: Optional[int] = Field(
        default=None,
        description="Null until the user's achievements are initialized.",
    )
    unlocked: bool
    unlocked_at: Optional[str] = None
    criteria: list[CriterionProgressResponse]


class UserAchievementListResponse(BaseModel):
    user_id: int
    unlocked: int
    total: int
    items: list[UserAchievementResponse]
