"""
Achievement Progress Tracker — turns criterion updates into progress rows
and unlocks achievements once every criterion is met.

Algorithm (update_progress)
---------------------------
  1. every catalogue criterion of the given type (a type can appear in
     several achievements)
  2. skip if the user has no UserAchievement for it, or it is unlocked
  3. get-or-create the UserCriterionProgress row; skip if completed
  4. new = increment | set | max (current, value)
  5. completed = new >= target     (zero and negative targets are legal)
  6. persist; on a completed flip, run the completion check

Idempotency
-----------
Per-user rows are unique per (user, achievement) and (user_achievement,
criterion). Creation runs in a savepoint and an IntegrityError means a
concurrent writer won, so the existing row is re-read. `completed` and
`unlocked` are flipped with guarded UPDATEs and their timestamps are
written with the flip, so they are set exactly once.

Errors propagate: SQLAlchemy failures are rolled back and re-raised as
StorageError. Public methods commit.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import MalformedValueError, StorageError, UserNotFoundError, ValidationError
from app.models.achievement import UserAchievement, UserCriterionProgress
from app.models.notification import NotificationKind
from app.models.user import User
from app.services import notifications
from app.services.catalogue import AchievementCatalogue, AchievementDef, CriterionDef

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Update policy
# ---------------------------------------------------------------------------

class UpdateType(str, Enum):
    INCREMENT = "increment"
    SET = "set"
    MAX = "max"


def parse_update_type(raw: Any) -> UpdateType:
    if isinstance(raw, UpdateType):
        return raw
    try:
        return UpdateType(str(raw).strip().lower())
    except ValueError as exc:
        raise ValidationError(
            message=f"Unsupported update type: {raw!r}.",
            details={"update_type": str(raw)},
        ) from exc


# Progress values, balances and deposits are stored with two decimal places.
_MAX_DECIMAL_PLACES = 2


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise MalformedValueError(value, "number")
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise MalformedValueError(value, "number") from exc
    if not number.is_finite():
        raise MalformedValueError(value, "number")
    if number.normalize().as_tuple().exponent < -_MAX_DECIMAL_PLACES:
        raise MalformedValueError(value, f"number with at most {_MAX_DECIMAL_PLACES} decimal places")
    return number


def compute_progress(current: Decimal, value: Decimal, update_type: UpdateType) -> Decimal:
    if update_type is UpdateType.INCREMENT:
        return current + value
    if update_type is UpdateType.SET:
        return value
    return max(current, value)


def is_criterion_met(value: Decimal, target: Decimal) -> bool:
    return value >= target


# ---------------------------------------------------------------------------
# Result / view types
# ---------------------------------------------------------------------------

@dataclass
class ProgressUpdate:
    """One criterion row touched by update_progress."""
    user_achievement_id: int
    achievement_id: int
    criterion_id: int
    previous_value: Decimal
    current_value: Decimal
    completed: bool
    unlocked: bool = False


@dataclass
class CriterionProgressView:
    criterion: CriterionDef
    current_value: Decimal
    completed: bool
    completed_at: Optional[datetime]


@dataclass
class UserAchievementView:
    achievement: AchievementDef
    user_achievement_id: Optional[int]
    unlocked: bool
    unlocked_at: Optional[datetime]
    criteria: list[CriterionProgressView] = field(default_factory=list)


UnlockCallback = Callable[[Session, UserAchievement], None]


def notify_unlock(db: Session, user_achievement: UserAchievement) -> None:
    """Default unlock callback: queue an achievement_unlocked notification."""
    notifications.emit(
        db,
        NotificationKind.achievement_unlocked,
        subject_id=user_achievement.id,
        user_id=user_achievement.user_id,
        payload={
            "achievement_id": user_achievement.achievement_id,
            "unlocked_at": user_achievement.unlocked_at,
        },
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Tracker
# ---------------------------------------------------------------------------

class AchievementTracker:

    def __init__(
        self,
        db: Session,
        catalogue: AchievementCatalogue,
        on_unlock: Optional[UnlockCallback] = notify_unlock,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.db = db
        self.catalogue = catalogue
        self.on_unlock = on_unlock
        self.clock = clock

    # --- row access -----------------------------------------------------------

    def _find_user_achievement(self, user_id: int, achievement_id: int) -> Optional[UserAchievement]:
        return (
            self.db.query(UserAchievement)
            .filter(
                UserAchievement.user_id == user_id,
                UserAchievement.achievement_id == achievement_id,
            )
            .first()
        )

    def _find_progress(self, user_achievement_id: int, criterion_id: int) -> Optional[UserCriterionProgress]:
        return (
            self.db.query(UserCriterionProgress)
            .filter(
                UserCriterionProgress.user_achievement_id == user_achievement_id,
                UserCriterionProgress.criterion_id == criterion_id,
            )
            .first()
        )

    def _ensure_user_achievement(self, user_id: int, achievement_id: int) -> UserAchievement:
        existing = self._find_user_achievement(user_id, achievement_id)
        if existing is not None:
            return existing
        row = UserAchievement(user_id=user_id, achievement_id=achievement_id, unlocked=False)
        try:
            with self.db.begin_nested():
                self.db.add(row)
        except IntegrityError:
            # Created concurrently; the unique constraint kept one row.
            return self._find_user_achievement(user_id, achievement_id)
        return row

    def _ensure_progress(self, user_achievement_id: int, criterion_id: int) -> UserCriterionProgress:
        existing = self._find_progress(user_achievement_id, criterion_id)
        if existing is not None:
            return existing
        row = UserCriterionProgress(
            user_achievement_id=user_achievement_id,
            criterion_id=criterion_id,
            current_value=Decimal("0"),
            completed=False,
        )
        try:
            with self.db.begin_nested():
                self.db.add(row)
        except IntegrityError:
            return self._find_progress(user_achievement_id, criterion_id)
        return row

    def _commit(self, operation: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError(f"Failed to persist {operation}.", operation=operation) from exc

    # --- public operations ----------------------------------------------------

    def initialize_user_achievements(self, user_id: int) -> list[UserAchievement]:
        """
        Ensure a UserAchievement for every catalogue achievement and a zeroed
        progress row for each of its criteria. Existing rows and their
        progress are left untouched, so this is safe to call repeatedly.
        """
        if self.db.get(User, user_id) is None:
            raise UserNotFoundError(user_id)
        try:
            rows = []
            for achievement in self.catalogue.achievements:
                user_achievement = self._ensure_user_achievement(user_id, achievement.id)
                for criterion in achievement.criteria:
                    self._ensure_progress(user_achievement.id, criterion.id)
                rows.append(user_achievement)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError("Failed to initialize user achievements.", operation="initialize") from exc
        self._commit("initialize")
        logger.debug("Initialized %d achievements for user %s", len(rows), user_id)
        return rows

    def update_progress(
        self,
        user_id: int,
        criterion_type: Any,
        value: Any = 1,
        update_type: Any = UpdateType.INCREMENT,
    ) -> list[ProgressUpdate]:
        """Apply one update to every open criterion of `criterion_type` for the user."""
        criteria = self.catalogue.criteria_of_type(criterion_type)
        policy = parse_update_type(update_type)
        amount = to_decimal(value)

        updates: list[ProgressUpdate] = []
        try:
            for criterion in criteria:
                update = self._apply(user_id, criterion, amount, policy)
                if update is not None:
                    updates.append(update)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError("Failed to update achievement progress.", operation="update_progress") from exc
        self._commit("update_progress")
        return updates

    def _apply(
        self,
        user_id: int,
        criterion: CriterionDef,
        amount: Decimal,
        policy: UpdateType,
    ) -> Optional[ProgressUpdate]:
        user_achievement = self._find_user_achievement(user_id, criterion.achievement_id)
        if user_achievement is None or user_achievement.unlocked:
            return None

        progress = self._ensure_progress(user_achievement.id, criterion.id)
        if progress.completed:
            return None

        previous = Decimal(str(progress.current_value))
        new_value = compute_progress(previous, amount, policy)
        completed = is_criterion_met(new_value, criterion.value)

        values: dict[Any, Any] = {UserCriterionProgress.current_value: new_value}
        if completed:
            values[UserCriterionProgress.completed] = True
            values[UserCriterionProgress.completed_at] = self.clock()
        flipped = (
            self.db.query(UserCriterionProgress)
            .filter(
                UserCriterionProgress.id == progress.id,
                UserCriterionProgress.completed == False,  # noqa: E712
            )
            .update(values, synchronize_session="evaluate")
        ) == 1
        if not flipped:
            return None

        update = ProgressUpdate(
            user_achievement_id=user_achievement.id,
            achievement_id=criterion.achievement_id,
            criterion_id=criterion.id,
            previous_value=previous,
            current_value=new_value,
            completed=completed,
        )
        if completed:
            logger.info(
                "User %s completed criterion %s (%s >= %s)",
                user_id, criterion.id, new_value, criterion.value,
            )
            update.unlocked = self._check_completion(user_achievement.id)
        return update

    def check_achievement_completion(self, user_achievement_id: int) -> bool:
        """Unlock the achievement if every progress row is completed. Returns True on unlock."""
        try:
            unlocked = self._check_completion(user_achievement_id)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError("Failed to check achievement completion.", operation="check_completion") from exc
        self._commit("check_completion")
        return unlocked

    def _check_completion(self, user_achievement_id: int) -> bool:
        user_achievement = self.db.get(UserAchievement, user_achievement_id)
        if user_achievement is None or user_achievement.unlocked:
            return False

        rows = (
            self.db.query(UserCriterionProgress.completed)
            .filter(UserCriterionProgress.user_achievement_id == user_achievement_id)
            .all()
        )
        # No progress rows means nothing was ever required; never unlock.
        if not rows or not all(done for (done,) in rows):
            return False

        flipped = (
            self.db.query(UserAchievement)
            .filter(
                UserAchievement.id == user_achievement_id,
                UserAchievement.unlocked == False,  # noqa: E712
            )
            .update(
                {UserAchievement.unlocked: True, UserAchievement.unlocked_at: self.clock()},
                synchronize_session="evaluate",
            )
        ) == 1
        if not flipped:
            return False

        logger.info(
            "User %s unlocked achievement %s",
            user_achievement.user_id, user_achievement.achievement_id,
        )
        if self.on_unlock is not None:
            self.on_unlock(self.db, user_achievement)
        return True

    def get_user_achievements(self, user_id: int) -> list[UserAchievementView]:
        """Every catalogue achievement with the user's status and per-criterion progress."""
        if self.db.get(User, user_id) is None:
            raise UserNotFoundError(user_id)

        rows = {
            ua.achievement_id: ua
            for ua in self.db.query(UserAchievement).filter(UserAchievement.user_id == user_id).all()
        }
        views = []
        for achievement in self.catalogue.achievements:
            ua = rows.get(achievement.id)
            progress = {p.criterion_id: p for p in ua.progresses} if ua is not None else {}
            views.append(UserAchievementView(
                achievement=achievement,
                user_achievement_id=ua.id if ua is not None else None,
                unlocked=bool(ua.unlocked) if ua is not None else False,
                unlocked_at=ua.unlocked_at if ua is not None else None,
                criteria=[
                    CriterionProgressView(
                        criterion=criterion,
                        current_value=Decimal(str(progress[criterion.id].current_value))
                        if criterion.id in progress else Decimal("0"),
                        completed=bool(progress[criterion.id].completed)
                        if criterion.id in progress else False,
                        completed_at=progress[criterion.id].completed_at
                        if criterion.id in progress else None,
                    )
                    for criterion in achievement.criteria
                ],
            ))
        return views
