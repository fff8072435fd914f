"""
Shared schema primitives used across the API.

Every domain error leaves the service in the same envelope (see
app.core.errors); `with_errors` attaches that envelope to the documented
4xx/5xx responses of a route so it shows up in the OpenAPI schema.
"""
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict


class ErrorDetail(BaseModel):
    """A single field-level validation error (VALIDATION_ERROR details.errors[])."""
    field: str
    message: str
    type: str


class ErrorResponse(BaseModel):
    """Standard error envelope returned for all 4xx/5xx responses."""
    model_config = ConfigDict(from_attributes=True)

    code: str
    message: str
    details: Optional[dict[str, Any]] = None


def with_errors(responses: dict[int, dict[str, Any]]) -> dict[int, dict[str, Any]]:
    return {
        code: {**doc, "model": ErrorResponse} if code >= 400 else doc
        for code, doc in responses.items()
    }
