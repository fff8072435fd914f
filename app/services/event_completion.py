"""
Event Completion Coordinator — decides when an event has finished.

Checks
------
  check_bank_conditions(event_id)     live deposit sum   vs `bank` conditions
  check_people_conditions(event_id)   live participants  vs `people` conditions
  check_time_conditions()             system-wide sweep of open `time` conditions
  check_and_update_event_status(id)   deadline pass + group policy + transition
  check_event_conditions(event_id)    bank, people and status for one event

Each check flips satisfied conditions, then groups whose conditions are
all completed, then settles the event through a guarded transition out
of IN_PROGRESS. Every write is a monotonic guarded UPDATE, so running a
check twice, or two callers racing, converges on the same state and only
the caller that wins the transition runs its side effects.

Failure policy
--------------
Checks never raise. A failure is rolled back, logged and reported in the
returned CheckResult; `enforce_check_policy` lets the orchestration
layer decide whether that is logged-and-ignored or escalated
(CONDITION_CHECK_FAILURES).

Deadlines
---------
A `time` condition with LESS / LESS_EQUALS completes only together with
its other siblings while "now" still satisfies it. Once the moment has
passed unsatisfied, its group is marked failed.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Iterable, Literal, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import EventNotFoundError, StorageError
from app.models.condition import Condition, ConditionParameter, EndConditionGroup
from app.models.event import Event, EventStatus
from app.models.notification import NotificationKind
from app.models.user import User
from app.services import condition_store, notifications
from app.services.conditions import (
    GroupPolicy,
    decide_event_outcome,
    evaluate_group,
    is_deadline,
    parse_threshold,
    satisfies,
)
from app.services.criteria import CriterionManager
from app.services.payouts import settle_event_payout

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------

@dataclass
class CheckResult:
    """What one check did, and whether it failed."""
    check: str
    event_ids: list[int] = field(default_factory=list)
    ok: bool = True
    error: Optional[str] = None
    conditions_completed: list[int] = field(default_factory=list)
    groups_completed: list[int] = field(default_factory=list)
    groups_failed: list[int] = field(default_factory=list)
    transitions: dict[int, EventStatus] = field(default_factory=dict)

    @property
    def event_status(self) -> Optional[EventStatus]:
        """Status the single checked event moved to, if it moved."""
        if len(self.event_ids) != 1:
            return None
        return self.transitions.get(self.event_ids[0])

    @property
    def changed(self) -> bool:
        return bool(
            self.conditions_completed
            or self.groups_completed
            or self.groups_failed
            or self.transitions
        )

    def fail(self, exc: BaseException) -> None:
        self.ok = False
        message = f"{type(exc).__name__}: {exc}"
        self.error = message if self.error is None else f"{self.error}; {message}"


def enforce_check_policy(
    results: Iterable[CheckResult],
    mode: Optional[Literal["log", "raise"]] = None,
) -> None:
    """
    Apply CONDITION_CHECK_FAILURES to finished checks: "log" leaves the
    caller's action untouched, "raise" turns the first failure into a
    StorageError.
    """
    if (mode or settings.CONDITION_CHECK_FAILURES) != "raise":
        return
    for result in results:
        if not result.ok:
            raise StorageError(
                f"Condition check '{result.check}' failed: {result.error}",
                operation=result.check,
            )


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------

class EventCompletionCoordinator:

    def __init__(
        self,
        db: Session,
        policy: Optional[GroupPolicy] = None,
        manager: Optional[CriterionManager] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.db = db
        self.policy = GroupPolicy(policy or settings.EVENT_GROUP_POLICY)
        self.manager = manager
        self.rng = rng
        self.clock = clock

    # --- public checks --------------------------------------------------------

    def check_bank_conditions(self, event_id: int) -> CheckResult:
        result = CheckResult("bank", [event_id])
        self._guarded(result, lambda: self._check_parameter(
            result, event_id, ConditionParameter.bank, condition_store.bank_total,
        ))
        return result

    def check_people_conditions(self, event_id: int) -> CheckResult:
        result = CheckResult("people", [event_id])
        self._guarded(result, lambda: self._check_parameter(
            result, event_id, ConditionParameter.people,
            lambda db, eid: Decimal(condition_store.participant_count(db, eid)),
        ))
        return result

    def check_and_update_event_status(self, event_id: int) -> CheckResult:
        result = CheckResult("status", [event_id])
        self._guarded(result, lambda: self._check_status(result, event_id))
        return result

    def check_event_conditions(self, event_id: int) -> CheckResult:
        result = CheckResult("event", [event_id])
        self._guarded(result, lambda: self._check_parameter(
            result, event_id, ConditionParameter.bank, condition_store.bank_total,
        ))
        self._guarded(result, lambda: self._check_parameter(
            result, event_id, ConditionParameter.people,
            lambda db, eid: Decimal(condition_store.participant_count(db, eid)),
        ))
        self._guarded(result, lambda: self._check_status(result, event_id))
        return result

    def check_time_conditions(self) -> CheckResult:
        """Sweep every open time condition of every in-progress event."""
        result = CheckResult("time")
        by_event: dict[int, list[Condition]] = {}

        def _collect() -> None:
            for condition in condition_store.unresolved_time_conditions(self.db):
                by_event.setdefault(condition.group.event_id, []).append(condition)

        self._guarded(result, _collect)
        result.event_ids = sorted(by_event)

        now = self.clock()
        for event_id in result.event_ids:
            self._guarded(result, lambda eid=event_id: self._sweep_event(
                result, eid, by_event[eid], now,
            ))
        if result.event_ids:
            logger.info(
                "Time sweep: %d events, %d conditions completed, %d transitions",
                len(result.event_ids), len(result.conditions_completed), len(result.transitions),
            )
        return result

    # --- swallow point --------------------------------------------------------

    def _guarded(self, result: CheckResult, step: Callable[[], None]) -> None:
        try:
            step()
        except Exception as exc:  # noqa: BLE001 - checks must not fail the triggering action
            self.db.rollback()
            logger.exception(
                "Condition check '%s' failed for events %s", result.check, result.event_ids,
            )
            result.fail(exc)

    # --- steps ----------------------------------------------------------------

    def _active_event(self, event_id: int) -> Optional[Event]:
        event = condition_store.get_event(self.db, event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        if event.status != EventStatus.IN_PROGRESS:
            logger.debug("Event %s is %s; skipping condition check", event_id, event.status)
            return None
        return event

    def _check_parameter(
        self,
        result: CheckResult,
        event_id: int,
        parameter: ConditionParameter,
        fact: Callable[[Session, int], Decimal],
    ) -> None:
        if self._active_event(event_id) is None:
            return

        actual = fact(self.db, event_id)
        now = self.clock()
        for group in condition_store.unresolved_groups(self.db, event_id):
            changed = False
            for condition in group.conditions:
                if condition.is_completed or condition.parameter_name != parameter:
                    continue
                threshold = parse_threshold(parameter, condition.value)
                if satisfies(condition.operator, actual, threshold) and \
                        condition_store.mark_condition_completed(self.db, condition.id):
                    result.conditions_completed.append(condition.id)
                    logger.info(
                        "Event %s: %s condition %s met (%s %s %s)",
                        event_id, parameter.value, condition.id,
                        actual, condition.operator.value, threshold,
                    )
                    changed = True
            self._refresh_group(result, event_id, group, now, changed)

        self._settle_event(result, event_id)

    def _sweep_event(
        self,
        result: CheckResult,
        event_id: int,
        conditions: list[Condition],
        now: datetime,
    ) -> None:
        if self._active_event(event_id) is None:
            return

        changed_groups: set[int] = set()
        for condition in conditions:
            if condition.is_completed or is_deadline(condition.parameter_name, condition.operator):
                continue
            threshold = parse_threshold(ConditionParameter.time, condition.value)
            if satisfies(condition.operator, now, threshold) and \
                    condition_store.mark_condition_completed(self.db, condition.id):
                result.conditions_completed.append(condition.id)
                changed_groups.add(condition.group_id)
                logger.info("Event %s: time condition %s reached", event_id, condition.id)

        for group in condition_store.unresolved_groups(self.db, event_id):
            self._refresh_group(result, event_id, group, now, group.id in changed_groups)
        self._settle_event(result, event_id)

    def _check_status(self, result: CheckResult, event_id: int) -> None:
        if self._active_event(event_id) is None:
            return
        now = self.clock()
        for group in condition_store.unresolved_groups(self.db, event_id):
            self._refresh_group(result, event_id, group, now, False)
        self._settle_event(result, event_id)

    def _refresh_group(
        self,
        result: CheckResult,
        event_id: int,
        group: EndConditionGroup,
        now: datetime,
        changed: bool,
    ) -> None:
        """Resolve deadlines, then complete the group if every condition holds."""
        deadlines = [
            c for c in group.conditions
            if not c.is_completed and is_deadline(c.parameter_name, c.operator)
        ]
        others_done = all(
            c.is_completed for c in group.conditions
            if not is_deadline(c.parameter_name, c.operator)
        )
        for condition in deadlines:
            threshold = parse_threshold(ConditionParameter.time, condition.value)
            if not satisfies(condition.operator, now, threshold):
                if condition_store.mark_group_failed(self.db, group.id):
                    result.groups_failed.append(group.id)
                    logger.info("Event %s: group %s missed its deadline", event_id, group.id)
                    self._emit_group_update(event_id, group)
                return
            if others_done and condition_store.mark_condition_completed(self.db, condition.id):
                result.conditions_completed.append(condition.id)
                changed = True

        if evaluate_group(group.conditions) and condition_store.mark_group_completed(self.db, group.id):
            result.groups_completed.append(group.id)
            logger.info("Event %s: group %s completed", event_id, group.id)
            changed = True

        if changed:
            self._emit_group_update(event_id, group)

    def _emit_group_update(self, event_id: int, group: EndConditionGroup) -> None:
        notifications.emit(
            self.db,
            NotificationKind.event_conditions_updated,
            subject_id=event_id,
            payload={
                "group_id": group.id,
                "is_completed": group.is_completed,
                "is_failed": group.is_failed,
                "completed_conditions": [c.id for c in group.conditions if c.is_completed],
            },
        )

    def _settle_event(self, result: CheckResult, event_id: int) -> None:
        groups = condition_store.event_groups(self.db, event_id)
        outcome = decide_event_outcome(groups, self.policy)
        if outcome is None:
            self.db.commit()
            return

        values = {"completed_at": self.clock()} if outcome is EventStatus.COMPLETED else {}
        won = condition_store.transition_event_status(
            self.db, event_id, EventStatus.IN_PROGRESS, outcome, **values,
        )
        self.db.commit()
        if not won:
            logger.debug("Event %s was settled by another caller", event_id)
            return

        result.transitions[event_id] = outcome
        logger.info("Event %s -> %s", event_id, outcome.value)
        self._after_transition(result, event_id, outcome)

    def _after_transition(self, result: CheckResult, event_id: int, outcome: EventStatus) -> None:
        """Run once, by the caller that won the transition. Never undoes it."""
        try:
            event = self.db.get(Event, event_id)
            if outcome is EventStatus.FAILED:
                notifications.emit(
                    self.db, NotificationKind.event_failed,
                    subject_id=event_id, user_id=event.creator_id,
                )
                self.db.commit()
                return

            payout = settle_event_payout(self.db, event, self.rng)
            notifications.emit(
                self.db,
                NotificationKind.event_completed,
                subject_id=event_id,
                user_id=event.creator_id,
                payload={
                    "bank": payout.bank,
                    "payout": payout.payout,
                    "commission": payout.commission,
                    "recipient_id": payout.recipient_id,
                    "winner_id": event.winner_id,
                },
            )
            self.db.commit()

            if self.manager is not None:
                self.manager.track_event_completion(event, payout.payout)
                if payout.transaction_id is not None:
                    recipient = self.db.get(User, payout.recipient_id)
                    self.manager.on_user_bank_updated(recipient.id, Decimal(str(recipient.balance)))
        except Exception as exc:  # noqa: BLE001 - the transition already happened
            self.db.rollback()
            logger.exception("Completion effects failed for event %s", event_id)
            result.fail(exc)


# ---------------------------------------------------------------------------
# Orchestration helpers
# ---------------------------------------------------------------------------

def run_post_participation_checks(
    coordinator: EventCompletionCoordinator,
    event_id: int,
) -> list[CheckResult]:
    """Bank and people checks after a deposit, under CONDITION_CHECK_FAILURES."""
    results = [
        coordinator.check_bank_conditions(event_id),
        coordinator.check_people_conditions(event_id),
    ]
    enforce_check_policy(results)
    return results


def check_bank_conditions(db: Session, event_id: int, **kwargs) -> CheckResult:
    return EventCompletionCoordinator(db, **kwargs).check_bank_conditions(event_id)


def check_people_conditions(db: Session, event_id: int, **kwargs) -> CheckResult:
    return EventCompletionCoordinator(db, **kwargs).check_people_conditions(event_id)


def check_time_conditions(db: Session, **kwargs) -> CheckResult:
    return EventCompletionCoordinator(db, **kwargs).check_time_conditions()


def check_and_update_event_status(db: Session, event_id: int, **kwargs) -> CheckResult:
    return EventCompletionCoordinator(db, **kwargs).check_and_update_event_status(event_id)
