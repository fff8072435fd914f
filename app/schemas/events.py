"""
Event, end-condition and participation schemas.

POST /events                        EventCreate          → EventCreateResponse
GET  /events                                             → EventListResponse
GET  /events/{id}                                        → EventResponse
GET  /events/{id}/conditions                             → ConditionsStatusResponse
POST /events/{id}/participations    ParticipationCreate  → ParticipationCreateResponse
POST /conditions/check-time                              → CheckResultResponse
"""
from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------

class ConditionIn(BaseModel):
    parameter_name: str = Field(description='"bank" | "people" | "time"', examples=["bank"])
    operator: str = Field(
        description=(
            'EQUALS | GREATER | LESS | GREATER_EQUALS | LESS_EQUALS, '
            'or one of = == > < >= <= eq gt lt gte lte'
        ),
        examples=["GREATER_EQUALS"],
    )
    value: Union[str, int, Decimal] = Field(
        description="Number for bank/people, ISO-8601 timestamp for time.",
        examples=["1000"],
    )


class EventCreate(BaseModel):
    name: str = Field(min_length=1, max_length=128, examples=["Birthday gift"])
    description: Optional[str] = Field(default=None, max_length=2000)
    event_type: str = Field(description='"DONATION" | "FUNDRAISING" | "JACKPOT"', examples=["DONATION"])
    creator_id: int
    recipient_id: Optional[int] = Field(
        default=None,
        description="Defaults to the creator for DONATION / FUNDRAISING; drawn for JACKPOT.",
    )
    start: bool = Field(default=True, description="Create IN_PROGRESS (true) or PENDING (false).")
    groups: list[list[ConditionIn]] = Field(
        default_factory=list,
        description=(
            "End condition groups. Conditions inside a group must all hold; "
            "how groups combine is the server's EVENT_GROUP_POLICY."
        ),
    )


class ParticipationCreate(BaseModel):
    user_id: int
    deposit: Decimal = Field(gt=0, examples=["250.00"])


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

class ConditionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    parameter_name: str
    operator: str
    value: str
    is_completed: bool


class GroupOut(BaseModel):
    id: int
    is_completed: bool
    is_failed: bool
    conditions: list[ConditionOut]


class EventResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    event_type: str
    status: str
    bank_amount: str
    creator_id: int
    recipient_id: Optional[int] = None
    winner_id: Optional[int] = None
    completed_at: Optional[str] = None
    created_at: str
    groups: list[GroupOut]


class EventListResponse(BaseModel):
    total: int
    items: list[EventResponse]


class CheckResultResponse(BaseModel):
    check: str
    ok: bool
    error: Optional[str] = None
    event_ids: list[int]
    conditions_completed: list[int]
    groups_completed: list[int]
    groups_failed: list[int]
    transitions: dict[str, str] = Field(description="event id → new status")


class EventCreateResponse(BaseModel):
    event: EventResponse
    checks: list[CheckResultResponse]


class ParticipationResponse(BaseModel):
    id: int
    event_id: int
    user_id: int
    deposit: str
    created_at: str


class ParticipationCreateResponse(BaseModel):
    participation: ParticipationResponse
    event_status: str
    checks: list[CheckResultResponse]


class ParticipationListResponse(BaseModel):
    total: int
    items: list[ParticipationResponse]


class ConditionStatusOut(BaseModel):
    id: int
    parameter_name: str
    operator: str
    value: str
    is_completed: bool
    current_value: str


class GroupStatusOut(BaseModel):
    id: int
    is_completed: bool
    is_failed: bool
    completion_percentage: int
    conditions: list[ConditionStatusOut]


class ConditionsStatusResponse(BaseModel):
    event_id: int
    status: str
    bank: str
    people: int
    groups: list[GroupStatusOut]
