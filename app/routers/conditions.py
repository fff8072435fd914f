"""
Condition sweep router.

POST /conditions/check-time   — run the system-wide time condition sweep
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from app.routers.dependencies import get_coordinator
from app.routers.events import check_to_response
from app.schemas.events import CheckResultResponse
from app.services.event_completion import EventCompletionCoordinator, enforce_check_policy

router = APIRouter(prefix="/conditions", tags=["conditions"])


@router.post(
    "/check-time",
    response_model=CheckResultResponse,
    summary="Sweep open time conditions",
    responses={
        200: {"description": "What the sweep flipped; `ok` is false if any event failed to check."},
    },
)
def check_time(coordinator: EventCompletionCoordinator = Depends(get_coordinator)):
    """
    Meant for an external scheduler (cron, worker beat). Completes every
    `time` condition whose moment has come, fails groups whose deadline
    has passed, and settles the affected events. Safe to call at any
    frequency: repeated calls converge on the same state.
    """
    result = coordinator.check_time_conditions()
    enforce_check_policy([result])
    return check_to_response(result)
