"""
Custom exception hierarchy for the Endgame service.

Rule: every HTTP error has a machine-readable `code` string so clients
can branch on it without parsing English messages.

Taxonomy
--------
  ValidationError  — unknown operator / parameter / criterion type, malformed value
  NotFoundError    — referenced event / user / achievement row is missing
  StorageError     — wrapped persistence failure
  business rules   — insufficient balance, event not active, bad transition
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class EndgameException(Exception):
    """Base class for all application-level errors."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


# --- validation -------------------------------------------------------------

class ValidationError(EndgameException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "VALIDATION_ERROR"


class UnknownOperatorError(ValidationError):
    code = "UNKNOWN_OPERATOR"

    def __init__(self, operator: Any):
        super().__init__(
            message=f"Unsupported comparison operator: {operator!r}.",
            details={"operator": str(operator)},
        )


class UnknownParameterError(ValidationError):
    code = "UNKNOWN_PARAMETER"

    def __init__(self, parameter: Any):
        super().__init__(
            message=f"Unsupported condition parameter: {parameter!r}.",
            details={"parameter": str(parameter)},
        )


class UnknownCriterionTypeError(ValidationError):
    code = "UNKNOWN_CRITERION_TYPE"

    def __init__(self, criterion_type: Any):
        super().__init__(
            message=f"Unsupported achievement criterion type: {criterion_type!r}.",
            details={"criterion_type": str(criterion_type)},
        )


class MalformedValueError(ValidationError):
    code = "MALFORMED_VALUE"

    def __init__(self, value: Any, expected: str):
        super().__init__(
            message=f"Value {value!r} is not a valid {expected}.",
            details={"value": str(value), "expected": expected},
        )


# --- not found --------------------------------------------------------------

class NotFoundError(EndgameException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            message=f"{entity} {entity_id} not found.",
            details={"entity": entity, "id": entity_id},
        )


class EventNotFoundError(NotFoundError):
    code = "EVENT_NOT_FOUND"

    def __init__(self, event_id: int):
        super().__init__("Event", event_id)


class UserNotFoundError(NotFoundError):
    code = "USER_NOT_FOUND"

    def __init__(self, user_id: int):
        super().__init__("User", user_id)


class AchievementNotFoundError(NotFoundError):
    code = "ACHIEVEMENT_NOT_FOUND"

    def __init__(self, achievement_id: int):
        super().__init__("Achievement", achievement_id)


class UserAchievementNotFoundError(NotFoundError):
    code = "USER_ACHIEVEMENT_NOT_FOUND"

    def __init__(self, user_achievement_id: int):
        super().__init__("UserAchievement", user_achievement_id)


# --- storage ----------------------------------------------------------------

class StorageError(EndgameException):
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "STORAGE_ERROR"

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(
            message=message,
            details={"operation": operation} if operation else {},
        )


# --- business rules ---------------------------------------------------------

class InsufficientBalanceError(EndgameException):
    http_status = status.HTTP_409_CONFLICT
    code = "INSUFFICIENT_BALANCE"

    def __init__(self, user_id: int, balance: Any, required: Any):
        super().__init__(
            message=f"User {user_id} has insufficient balance.",
            details={"balance": str(balance), "required": str(required)},
        )


class EventNotActiveError(EndgameException):
    http_status = status.HTTP_409_CONFLICT
    code = "EVENT_NOT_ACTIVE"

    def __init__(self, event_id: int, current_status: str):
        super().__init__(
            message=f"Event {event_id} is not accepting participations.",
            details={"event_id": event_id, "status": current_status},
        )


class InvalidStatusTransitionError(EndgameException):
    http_status = status.HTTP_409_CONFLICT
    code = "INVALID_STATUS_TRANSITION"

    def __init__(self, event_id: int, current_status: str, target_status: str):
        super().__init__(
            message=f"Event {event_id} cannot move from {current_status} to {target_status}.",
            details={"event_id": event_id, "from": current_status, "to": target_status},
        )


class DuplicateUserError(EndgameException):
    http_status = status.HTTP_409_CONFLICT
    code = "DUPLICATE_USER"

    def __init__(self, username: str):
        super().__init__(
            message=f"A user named {username!r} or with that email already exists.",
            details={"username": username},
        )


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def endgame_exception_handler(request: Request, exc: EndgameException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return structured 422 with machine-readable field errors."""
    field_errors = []
    for error in exc.errors():
        field_errors.append({
            "field": ".".join(str(loc) for loc in error["loc"] if loc != "body"),
            "message": error["msg"],
            "type": error["type"],
        })
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed.",
            "details": {"errors": field_errors},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
