"""
Condition Evaluator — pure decision logic for event end conditions.

No DB, no clock: every function takes the facts it needs as arguments.

Public API
----------
satisfies(operator, actual, threshold)      -> bool
evaluate_group(conditions)                  -> bool   (AND inside a group)
decide_event_outcome(groups, policy)        -> EventStatus | None
normalize_condition_value(parameter, raw)   -> str    (ingestion-time sanitation)
parse_threshold(parameter, value)           -> Decimal | datetime

Value sanitation
----------------
Numeric thresholds are sanitised ONCE, when the condition is created:
well-formed numbers are kept exactly; anything else is reduced to its
digits with leading zeros stripped ("1,000$" -> "1000", "007" -> "7").
Input with no digits at all is rejected. At evaluation time stored
values are parsed strictly and a parse failure is a ValidationError,
never a silent zero.
"""
from __future__ import annotations

import operator as _op
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Protocol, Union

from app.core.errors import (
    MalformedValueError,
    UnknownOperatorError,
    UnknownParameterError,
    ValidationError,
)
from app.models.condition import CONDITION_VALUE_MAX_LENGTH, ConditionOperator, ConditionParameter
from app.models.event import EventStatus


Threshold = Union[Decimal, datetime]


class _HasCompletion(Protocol):
    is_completed: bool


class _GroupState(Protocol):
    is_completed: bool
    is_failed: bool


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------

_COMPARATORS: dict[ConditionOperator, Callable[[Any, Any], bool]] = {
    ConditionOperator.EQUALS: _op.eq,
    ConditionOperator.GREATER: _op.gt,
    ConditionOperator.LESS: _op.lt,
    ConditionOperator.GREATER_EQUALS: _op.ge,
    ConditionOperator.LESS_EQUALS: _op.le,
}

_OPERATOR_ALIASES: dict[str, ConditionOperator] = {
    "=": ConditionOperator.EQUALS,
    "==": ConditionOperator.EQUALS,
    "eq": ConditionOperator.EQUALS,
    ">": ConditionOperator.GREATER,
    "gt": ConditionOperator.GREATER,
    "<": ConditionOperator.LESS,
    "lt": ConditionOperator.LESS,
    ">=": ConditionOperator.GREATER_EQUALS,
    "gte": ConditionOperator.GREATER_EQUALS,
    "<=": ConditionOperator.LESS_EQUALS,
    "lte": ConditionOperator.LESS_EQUALS,
}

# Time conditions with these operators are deadlines, see is_deadline().
_DEADLINE_OPERATORS = frozenset({ConditionOperator.LESS, ConditionOperator.LESS_EQUALS})


def parse_operator(raw: Any) -> ConditionOperator:
    """Accept an enum member, its name, or a symbolic alias (">=", "gte", ...)."""
    if isinstance(raw, ConditionOperator):
        return raw
    if isinstance(raw, str):
        key = raw.strip()
        try:
            return ConditionOperator(key.upper())
        except ValueError:
            pass
        if key.lower() in _OPERATOR_ALIASES:
            return _OPERATOR_ALIASES[key.lower()]
    raise UnknownOperatorError(raw)


def parse_parameter(raw: Any) -> ConditionParameter:
    if isinstance(raw, ConditionParameter):
        return raw
    if isinstance(raw, str):
        try:
            return ConditionParameter(raw.strip().lower())
        except ValueError:
            pass
    raise UnknownParameterError(raw)


def satisfies(op: Any, actual: Threshold, threshold: Threshold) -> bool:
    """
    Total over the operator enumeration. An unsupported operator is a
    configuration error (UnknownOperatorError), not a silent False.
    """
    comparator = _COMPARATORS[parse_operator(op)]
    return bool(comparator(actual, threshold))


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------

def _to_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def parse_timestamp(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        return _to_utc(raw)
    if not isinstance(raw, str) or not raw.strip():
        raise MalformedValueError(raw, "ISO-8601 timestamp")
    text = raw.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return _to_utc(datetime.fromisoformat(text))
    except ValueError as exc:
        raise MalformedValueError(raw, "ISO-8601 timestamp") from exc


def _sanitize_digits(raw: str) -> Optional[str]:
    digits = re.sub(r"\D", "", raw)
    if not digits:
        return None
    return digits.lstrip("0") or "0"


def normalize_numeric_value(raw: Any, integral: bool = False) -> str:
    """
    Ingestion-time sanitation of a numeric threshold.

    Exact numbers are kept as-is (canonical form, no exponent).
    Malformed input falls back to its digits with leading zeros stripped.
    """
    text = str(raw).strip() if raw is not None else ""
    try:
        number = Decimal(text)
    except InvalidOperation:
        number = None

    if number is not None and number.is_finite() and number >= 0:
        if integral and number != number.to_integral_value():
            raise MalformedValueError(raw, "whole number")
        if number == number.to_integral_value():
            return str(int(number))
        return format(number.normalize(), "f")

    sanitized = _sanitize_digits(text)
    if sanitized is None:
        raise MalformedValueError(raw, "number")
    return sanitized


def normalize_time_value(raw: Any) -> str:
    return parse_timestamp(raw).isoformat()


def normalize_condition_value(parameter: Any, raw: Any) -> str:
    param = parse_parameter(parameter)
    if param is ConditionParameter.time:
        return normalize_time_value(raw)
    return normalize_numeric_value(raw, integral=param is ConditionParameter.people)


def validate_condition(parameter: Any, op: Any, raw_value: Any) -> tuple[ConditionParameter, ConditionOperator, str]:
    """Parse and sanitise a condition definition before it is persisted."""
    param = parse_parameter(parameter)
    operator = parse_operator(op)
    if param is ConditionParameter.time and operator is ConditionOperator.EQUALS:
        raise ValidationError(
            message="Time conditions cannot use EQUALS; use a range operator.",
            details={"parameter": param.value, "operator": operator.value},
        )
    value = normalize_condition_value(param, raw_value)
    if len(value) > CONDITION_VALUE_MAX_LENGTH:
        raise MalformedValueError(
            raw_value, f"value of at most {CONDITION_VALUE_MAX_LENGTH} characters",
        )
    return param, operator, value


def parse_threshold(parameter: Any, value: str) -> Threshold:
    """Strict evaluation-time parsing of a stored condition value."""
    param = parse_parameter(parameter)
    if param is ConditionParameter.time:
        return parse_timestamp(value)
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise MalformedValueError(value, "number") from exc
    if not number.is_finite():
        raise MalformedValueError(value, "number")
    return number


def is_deadline(parameter: Any, op: Any) -> bool:
    """
    A `time` condition with LESS / LESS_EQUALS is a deadline: it can only
    complete together with its non-time siblings, and its group fails once
    the moment passes unsatisfied.
    """
    return (
        parse_parameter(parameter) is ConditionParameter.time
        and parse_operator(op) in _DEADLINE_OPERATORS
    )


# ---------------------------------------------------------------------------
# Groups and events
# ---------------------------------------------------------------------------

def evaluate_group(conditions: Iterable[_HasCompletion]) -> bool:
    """True iff the group has conditions and every one of them is completed."""
    items = list(conditions)
    return bool(items) and all(c.is_completed for c in items)


def completion_percentage(conditions: Iterable[_HasCompletion]) -> int:
    items = list(conditions)
    if not items:
        return 0
    done = sum(1 for c in items if c.is_completed)
    return round(done * 100 / len(items))


class GroupPolicy(str, Enum):
    """How the groups of one event combine into the event decision."""
    ANY = "any"   # one completed group finishes the event
    ALL = "all"   # every group must complete; one failure fails the event


def decide_event_outcome(
    groups: Iterable[_GroupState],
    policy: GroupPolicy = GroupPolicy.ANY,
) -> Optional[EventStatus]:
    """
    Return COMPLETED / FAILED when the groups settle the event, else None.
    An event without groups never resolves on its own.
    """
    items = list(groups)
    if not items:
        return None

    if policy is GroupPolicy.ANY:
        if any(g.is_completed for g in items):
            return EventStatus.COMPLETED
        if all(g.is_completed or g.is_failed for g in items):
            return EventStatus.FAILED
        return None

    if any(g.is_failed for g in items):
        return EventStatus.FAILED
    if all(g.is_completed for g in items):
        return EventStatus.COMPLETED
    return None
