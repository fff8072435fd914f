"""
Unit tests for the pure condition evaluator — no DB required.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.core.errors import (
    MalformedValueError,
    UnknownOperatorError,
    UnknownParameterError,
    ValidationError,
)
from app.models import enum_value
from app.models.condition import ConditionOperator, ConditionParameter
from app.models.event import EventStatus
from app.schemas.events import ConditionIn
from app.services.conditions import (
    GroupPolicy,
    completion_percentage,
    decide_event_outcome,
    evaluate_group,
    is_deadline,
    normalize_condition_value,
    parse_operator,
    parse_threshold,
    satisfies,
    validate_condition,
)


def _c(done):
    return SimpleNamespace(is_completed=done)


def _g(completed=False, failed=False):
    return SimpleNamespace(is_completed=completed, is_failed=failed)


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------

class TestSatisfies:
    @pytest.mark.parametrize("op,actual,threshold,expected", [
        (ConditionOperator.GREATER_EQUALS, Decimal("1000"), Decimal("1000"), True),
        (ConditionOperator.GREATER_EQUALS, Decimal("999"), Decimal("1000"), False),
        (ConditionOperator.GREATER, Decimal("1000"), Decimal("1000"), False),
        (ConditionOperator.GREATER, Decimal("1000.01"), Decimal("1000"), True),
        (ConditionOperator.LESS, Decimal("4"), Decimal("5"), True),
        (ConditionOperator.LESS_EQUALS, Decimal("5"), Decimal("5"), True),
        (ConditionOperator.LESS_EQUALS, Decimal("6"), Decimal("5"), False),
        (ConditionOperator.EQUALS, Decimal("5.0"), Decimal("5"), True),
        (ConditionOperator.EQUALS, Decimal("5.01"), Decimal("5"), False),
    ])
    def test_numeric(self, op, actual, threshold, expected):
        assert satisfies(op, actual, threshold) is expected

    def test_time_reached(self):
        threshold = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert satisfies(ConditionOperator.GREATER_EQUALS, threshold, threshold)
        assert not satisfies(ConditionOperator.GREATER_EQUALS, threshold - timedelta(seconds=1), threshold)

    def test_every_operator_is_supported(self):
        for op in ConditionOperator:
            satisfies(op, Decimal("1"), Decimal("1"))

    def test_unknown_operator_raises(self):
        with pytest.raises(UnknownOperatorError):
            satisfies("BETWEEN", Decimal("1"), Decimal("1"))


class TestParseOperator:
    @pytest.mark.parametrize("raw,expected", [
        (">=", ConditionOperator.GREATER_EQUALS),
        ("gte", ConditionOperator.GREATER_EQUALS),
        ("greater_equals", ConditionOperator.GREATER_EQUALS),
        ("<", ConditionOperator.LESS),
        ("==", ConditionOperator.EQUALS),
        (" LESS_EQUALS ", ConditionOperator.LESS_EQUALS),
    ])
    def test_aliases(self, raw, expected):
        assert parse_operator(raw) is expected

    def test_rejects_non_string(self):
        with pytest.raises(UnknownOperatorError):
            parse_operator(3)


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------

class TestEnumValue:
    def test_enum_and_plain_strings(self):
        assert enum_value(EventStatus.IN_PROGRESS) == "IN_PROGRESS"
        assert enum_value(ConditionOperator.GREATER_EQUALS) == "GREATER_EQUALS"
        assert enum_value("bank") == "bank"


class TestConditionIn:
    def test_decimal_threshold_is_not_narrowed_to_float(self):
        body = ConditionIn(parameter_name="bank", operator=">=", value=Decimal("1000.123456789012345678"))
        assert isinstance(body.value, Decimal)
        assert validate_condition(body.parameter_name, body.operator, body.value)[2] == "1000.123456789012345678"

    def test_string_and_integer_values_pass_through(self):
        assert ConditionIn(parameter_name="bank", operator=">=", value="1,000$").value == "1,000$"
        assert ConditionIn(parameter_name="people", operator=">=", value=5).value == 5


class TestNormalizeValue:
    @pytest.mark.parametrize("raw,expected", [
        ("1000", "1000"),
        (1000, "1000"),
        ("12.50", "12.5"),
        ("1e3", "1000"),
        ("1,000$", "1000"),
        ("007", "7"),
        ("abc000", "0"),
        (" 42 ", "42"),
    ])
    def test_bank(self, raw, expected):
        assert normalize_condition_value("bank", raw) == expected

    def test_no_digits_is_rejected(self):
        with pytest.raises(MalformedValueError):
            normalize_condition_value("bank", "lots")

    def test_people_must_be_whole(self):
        assert normalize_condition_value("people", "20") == "20"
        with pytest.raises(MalformedValueError):
            normalize_condition_value("people", "2.5")

    def test_time_is_stored_as_utc(self):
        assert normalize_condition_value("time", "2026-03-01T10:00:00Z") == "2026-03-01T10:00:00+00:00"
        assert normalize_condition_value("time", "2026-03-01T12:00:00+02:00") == "2026-03-01T10:00:00+00:00"

    def test_malformed_time_is_rejected(self):
        with pytest.raises(MalformedValueError):
            normalize_condition_value("time", "next tuesday")

    def test_unknown_parameter(self):
        with pytest.raises(UnknownParameterError):
            normalize_condition_value("weather", "1")


class TestValidateCondition:
    def test_returns_parsed_triple(self):
        param, op, value = validate_condition("bank", ">=", "1,000")
        assert param is ConditionParameter.bank
        assert op is ConditionOperator.GREATER_EQUALS
        assert value == "1000"

    def test_time_equals_is_rejected(self):
        with pytest.raises(ValidationError):
            validate_condition("time", "EQUALS", "2026-03-01T10:00:00Z")

    def test_value_must_fit_the_column(self):
        assert validate_condition("bank", ">=", "1" * 64)[2] == "1" * 64
        with pytest.raises(MalformedValueError):
            validate_condition("bank", ">=", "1" * 65)
        with pytest.raises(MalformedValueError):
            validate_condition("bank", ">=", "1" * 80 + "x")


class TestParseThreshold:
    def test_strict_numeric(self):
        assert parse_threshold("bank", "1000") == Decimal("1000")
        with pytest.raises(MalformedValueError):
            parse_threshold("bank", "1,000")

    def test_never_silently_zero(self):
        with pytest.raises(MalformedValueError):
            parse_threshold("people", "")

    def test_time(self):
        moment = parse_threshold("time", "2026-03-01T10:00:00+00:00")
        assert moment == datetime(2026, 3, 1, 10, tzinfo=timezone.utc)


def test_is_deadline():
    assert is_deadline("time", "LESS")
    assert is_deadline("time", "<=")
    assert not is_deadline("time", ">=")
    assert not is_deadline("bank", "LESS")


# ---------------------------------------------------------------------------
# Groups and events
# ---------------------------------------------------------------------------

class TestEvaluateGroup:
    def test_all_completed(self):
        assert evaluate_group([_c(True), _c(True)])

    def test_one_open(self):
        assert not evaluate_group([_c(True), _c(False)])

    def test_empty_group_never_completes(self):
        assert not evaluate_group([])

    def test_completion_percentage(self):
        assert completion_percentage([_c(True), _c(False), _c(False)]) == 33
        assert completion_percentage([_c(True), _c(True)]) == 100
        assert completion_percentage([]) == 0


class TestDecideEventOutcome:
    def test_no_groups_never_resolves(self):
        assert decide_event_outcome([], GroupPolicy.ANY) is None
        assert decide_event_outcome([], GroupPolicy.ALL) is None

    def test_any_one_group_completes(self):
        assert decide_event_outcome([_g(), _g(completed=True)], GroupPolicy.ANY) is EventStatus.COMPLETED

    def test_any_completed_beats_failed(self):
        groups = [_g(failed=True), _g(completed=True)]
        assert decide_event_outcome(groups, GroupPolicy.ANY) is EventStatus.COMPLETED

    def test_any_fails_when_all_resolved_without_completion(self):
        assert decide_event_outcome([_g(failed=True), _g(failed=True)], GroupPolicy.ANY) is EventStatus.FAILED

    def test_any_waits_while_a_group_is_open(self):
        assert decide_event_outcome([_g(failed=True), _g()], GroupPolicy.ANY) is None

    def test_all_requires_every_group(self):
        assert decide_event_outcome([_g(completed=True), _g()], GroupPolicy.ALL) is None
        assert decide_event_outcome([_g(completed=True), _g(completed=True)], GroupPolicy.ALL) is EventStatus.COMPLETED

    def test_all_fails_on_first_failure(self):
        assert decide_event_outcome([_g(completed=True), _g(failed=True)], GroupPolicy.ALL) is EventStatus.FAILED
