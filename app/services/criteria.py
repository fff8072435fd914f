"""
Criterion Manager — maps domain signals onto achievement progress updates.

Fan-out table
-------------
  event created       -> EVENT_COUNT_CREATED +1, EVENT_COUNT_ALL +1
  event participated  -> EVENT_COUNT_ALL +1
  event completed     -> EVENT_BANK_COMPLETED max, EVENT_PEOPLE_COMPLETED max,
                         EVENT_TIME_COMPLETED +1, EVENT_INCOME_ONETIME max,
                         EVENT_INCOME_ALL +income, EVENT_COUNT_COMPLETED +1,
                         EVENT_COUNT_ALL +1
  activity streak     -> USER_ACTIVITY max
  balance changed     -> USER_BANK set

Bank, people and income facts that are zero are not reported; the count
criteria always are.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from app.core.errors import UserNotFoundError
from app.models.achievement import CriterionType
from app.models.event import Event
from app.models.participation import Participation
from app.models.user import User
from app.services import condition_store
from app.services.achievements import AchievementTracker, UpdateType

logger = logging.getLogger(__name__)

# Streaks longer than this are not counted further back.
_STREAK_WINDOW_DAYS = 365


@dataclass(frozen=True)
class EventCompletionFacts:
    bank: Decimal
    people: int
    completed_at: Optional[datetime]
    income: Decimal = Decimal("0")


class CriterionManager:

    def __init__(self, tracker: AchievementTracker):
        self.tracker = tracker

    @property
    def db(self) -> Session:
        return self.tracker.db

    # --- signal handlers ------------------------------------------------------

    def on_event_created(self, user_id: int) -> None:
        self.tracker.update_progress(user_id, CriterionType.EVENT_COUNT_CREATED, 1)
        self.tracker.update_progress(user_id, CriterionType.EVENT_COUNT_ALL, 1)

    def on_event_participated(self, user_id: int) -> None:
        self.tracker.update_progress(user_id, CriterionType.EVENT_COUNT_ALL, 1)

    def on_event_completed(self, user_id: int, facts: EventCompletionFacts) -> None:
        track = self.tracker.update_progress
        if facts.bank:
            track(user_id, CriterionType.EVENT_BANK_COMPLETED, facts.bank, UpdateType.MAX)
        if facts.people:
            track(user_id, CriterionType.EVENT_PEOPLE_COMPLETED, facts.people, UpdateType.MAX)
        if facts.completed_at is not None:
            track(user_id, CriterionType.EVENT_TIME_COMPLETED, 1)
        if facts.income:
            track(user_id, CriterionType.EVENT_INCOME_ONETIME, facts.income, UpdateType.MAX)
            track(user_id, CriterionType.EVENT_INCOME_ALL, facts.income)
        track(user_id, CriterionType.EVENT_COUNT_COMPLETED, 1)
        track(user_id, CriterionType.EVENT_COUNT_ALL, 1)

    def on_user_activity_updated(self, user_id: int, streak: int) -> None:
        self.tracker.update_progress(user_id, CriterionType.USER_ACTIVITY, streak, UpdateType.MAX)

    def on_user_bank_updated(self, user_id: int, balance: Decimal) -> None:
        self.tracker.update_progress(user_id, CriterionType.USER_BANK, balance, UpdateType.SET)

    # --- composite passes -----------------------------------------------------

    def track_event_completion(self, event: Event, payout: Decimal = Decimal("0")) -> list[int]:
        """
        Report a completed event to everyone involved, once per user:
        participants, then the creator, then the recipient. Only the user
        who received the payout (recipient or jackpot winner) gets income.
        Returns the user ids tracked.
        """
        participant_ids = [
            uid for (uid,) in (
                self.db.query(Participation.user_id)
                .filter(Participation.event_id == event.id)
                .distinct()
                .order_by(Participation.user_id)
                .all()
            )
        ]
        bank = condition_store.bank_total(self.db, event.id)
        people = condition_store.participant_count(self.db, event.id)

        tracked: list[int] = []
        for user_id in participant_ids + [event.creator_id, event.recipient_id]:
            if user_id is None or user_id in tracked:
                continue
            income = payout if user_id == event.recipient_id else Decimal("0")
            self.on_event_completed(user_id, EventCompletionFacts(
                bank=bank,
                people=people,
                completed_at=event.completed_at,
                income=income,
            ))
            tracked.append(user_id)

        logger.debug("Tracked completion of event %s for users %s", event.id, tracked)
        return tracked

    def update_user_activity_streak(self, user_id: int, today: Optional[date] = None) -> int:
        if self.db.get(User, user_id) is None:
            raise UserNotFoundError(user_id)
        streak = calculate_activity_streak(self.db, user_id, today)
        self.on_user_activity_updated(user_id, streak)
        return streak

    def refresh_all_users(self, today: Optional[date] = None) -> int:
        """Recompute streak and balance progress for every user. Returns users processed."""
        users = self.db.query(User).order_by(User.id).all()
        for user in users:
            self.tracker.initialize_user_achievements(user.id)
            self.update_user_activity_streak(user.id, today)
            self.on_user_bank_updated(user.id, Decimal(str(user.balance)))
        logger.info("Refreshed achievement progress for %d users", len(users))
        return len(users)


# ---------------------------------------------------------------------------
# Activity streak
# ---------------------------------------------------------------------------

def _utc_day(moment: datetime) -> date:
    if moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(timezone.utc).date()


def activity_days(db: Session, user_id: int, since: datetime) -> set[date]:
    """UTC days on which the user created an event or took part in one."""
    created = (
        db.query(Event.created_at)
        .filter(Event.creator_id == user_id, Event.created_at >= since)
        .all()
    )
    joined = (
        db.query(Participation.created_at)
        .filter(Participation.user_id == user_id, Participation.created_at >= since)
        .all()
    )
    return {_utc_day(ts) for (ts,) in created + joined if ts is not None}


def calculate_activity_streak(db: Session, user_id: int, today: Optional[date] = None) -> int:
    """
    Consecutive active days ending today. A streak that ended yesterday
    still counts until the day is over.
    """
    today = today or datetime.now(timezone.utc).date()
    since = datetime.combine(
        today - timedelta(days=_STREAK_WINDOW_DAYS), datetime.min.time()
    )
    days = activity_days(db, user_id, since)

    cursor = today if today in days else today - timedelta(days=1)
    streak = 0
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak
