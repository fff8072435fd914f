"""
Achievements router.

GET  /achievements                           — the catalogue
GET  /users/{id}/achievements                — a user's progress per achievement
POST /users/{id}/achievements/initialize     — idempotently create progress rows
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from app.routers.dependencies import get_catalogue, get_tracker
from app.schemas.common import with_errors
from app.schemas.achievements import (
    AchievementResponse,
    CriterionProgressResponse,
    CriterionResponse,
    UserAchievementListResponse,
    UserAchievementResponse,
)
from app.services.achievements import AchievementTracker, UserAchievementView
from app.services.catalogue import AchievementCatalogue

router = APIRouter(tags=["achievements"])


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

def _view_to_response(view: UserAchievementView) -> UserAchievementResponse:
    return UserAchievementResponse(
        achievement_id=view.achievement.id,
        name=view.achievement.name,
        icon=view.achievement.icon,
        user_achievement_id=view.user_achievement_id,
        unlocked=view.unlocked,
        unlocked_at=view.unlocked_at.isoformat() if view.unlocked_at else None,
        criteria=[
            CriterionProgressResponse(
                criterion_id=p.criterion.id,
                criterion_type=p.criterion.criterion_type.value,
                target=str(p.criterion.value),
                current_value=str(p.current_value),
                completed=p.completed,
                completed_at=p.completed_at.isoformat() if p.completed_at else None,
            )
            for p in view.criteria
        ],
    )


def _list_response(user_id: int, views: list[UserAchievementView]) -> UserAchievementListResponse:
    return UserAchievementListResponse(
        user_id=user_id,
        unlocked=sum(1 for v in views if v.unlocked),
        total=len(views),
        items=[_view_to_response(v) for v in views],
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "/achievements",
    response_model=list[AchievementResponse],
    summary="List the achievement catalogue",
)
def list_achievements(catalogue: AchievementCatalogue = Depends(get_catalogue)):
    return [
        AchievementResponse(
            id=a.id,
            name=a.name,
            description=a.description,
            icon=a.icon,
            criteria=[
                CriterionResponse(
                    id=c.id,
                    criterion_type=c.criterion_type.value,
                    value=str(c.value),
                    description=c.description,
                )
                for c in a.criteria
            ],
        )
        for a in catalogue.achievements
    ]


@router.get(
    "/users/{user_id}/achievements",
    response_model=UserAchievementListResponse,
    summary="A user's achievement progress",
    responses=with_errors({404: {"description": "User not found"}}),
)
def get_user_achievements(user_id: int, tracker: AchievementTracker = Depends(get_tracker)):
    return _list_response(user_id, tracker.get_user_achievements(user_id))


@router.post(
    "/users/{user_id}/achievements/initialize",
    response_model=UserAchievementListResponse,
    summary="Create missing achievement progress rows for a user",
    responses=with_errors({404: {"description": "User not found"}}),
)
def initialize_user_achievements(user_id: int, tracker: AchievementTracker = Depends(get_tracker)):
    """
    Safe to call on every login: rows that exist are kept as they are,
    progress is never reset.
    """
    tracker.initialize_user_achievements(user_id)
    return _list_response(user_id, tracker.get_user_achievements(user_id))
