"""
Achievement catalogue — read-only reference data for the progress tracker.

The catalogue is a frozen snapshot of achievements and their criteria.
It is loaded from the DB (`load_catalogue`) or built directly from
definitions in tests, and is always passed explicitly to the tracker.

DEFAULT_ACHIEVEMENTS is the catalogue seeded by migration 0002 and by
`seed_achievements()`.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Optional

from sqlalchemy.orm import Session, selectinload

from app.core.errors import UnknownCriterionTypeError
from app.models import enum_value
from app.models.achievement import Achievement, AchievementCriterion, CriterionType


# ---------------------------------------------------------------------------
# Snapshot types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CriterionDef:
    id: int
    achievement_id: int
    criterion_type: CriterionType
    value: Decimal
    description: Optional[str] = None


@dataclass(frozen=True)
class AchievementDef:
    id: int
    name: str
    criteria: tuple[CriterionDef, ...]
    description: Optional[str] = None
    icon: Optional[str] = None


def parse_criterion_type(raw: Any) -> CriterionType:
    if isinstance(raw, CriterionType):
        return raw
    if isinstance(raw, str):
        try:
            return CriterionType(raw.strip().upper())
        except ValueError:
            pass
    raise UnknownCriterionTypeError(raw)


class AchievementCatalogue:
    """Immutable index of achievements by id and criteria by type."""

    def __init__(self, achievements: Iterable[AchievementDef]):
        self._achievements: tuple[AchievementDef, ...] = tuple(
            sorted(achievements, key=lambda a: a.id)
        )
        self._by_id = {a.id: a for a in self._achievements}
        by_type: dict[CriterionType, list[CriterionDef]] = {}
        for achievement in self._achievements:
            for criterion in achievement.criteria:
                by_type.setdefault(criterion.criterion_type, []).append(criterion)
        self._by_type = {k: tuple(v) for k, v in by_type.items()}

    @property
    def achievements(self) -> tuple[AchievementDef, ...]:
        return self._achievements

    def get(self, achievement_id: int) -> Optional[AchievementDef]:
        return self._by_id.get(achievement_id)

    def criteria_of_type(self, criterion_type: Any) -> tuple[CriterionDef, ...]:
        return self._by_type.get(parse_criterion_type(criterion_type), ())

    def __len__(self) -> int:
        return len(self._achievements)


def to_definition(row: Achievement) -> AchievementDef:
    return AchievementDef(
        id=row.id,
        name=row.name,
        description=row.description,
        icon=row.icon,
        criteria=tuple(
            CriterionDef(
                id=c.id,
                achievement_id=row.id,
                criterion_type=CriterionType(enum_value(c.criterion_type)),
                value=Decimal(str(c.value)),
                description=c.description,
            )
            for c in row.criteria
        ),
    )


def load_catalogue(db: Session, achievement_ids: Optional[Iterable[int]] = None) -> AchievementCatalogue:
    """Snapshot the catalogue from the DB, optionally restricted to some ids."""
    q = db.query(Achievement).options(selectinload(Achievement.criteria))
    if achievement_ids is not None:
        q = q.filter(Achievement.id.in_(list(achievement_ids)))
    return AchievementCatalogue(to_definition(row) for row in q.order_by(Achievement.id).all())


# ---------------------------------------------------------------------------
# Default catalogue
# ---------------------------------------------------------------------------

# (name, icon, description, [(criterion_type, target), ...])
DEFAULT_ACHIEVEMENTS: list[tuple[str, str, str, list[tuple[CriterionType, int]]]] = [
    ("FIRST_STEPS_1", "🚀", "Create your first event and hold 5 on your balance.", [
        (CriterionType.EVENT_COUNT_CREATED, 1),
        (CriterionType.USER_BANK, 5),
    ]),
    ("BANKER_1", "💰", "Hold 50 on your balance.", [(CriterionType.USER_BANK, 50)]),
    ("BANKER_2", "🏦", "Hold 100 on your balance.", [(CriterionType.USER_BANK, 100)]),
    ("BANKER_3", "💎", "Hold 500 on your balance.", [(CriterionType.USER_BANK, 500)]),
    ("ACTIVE_PARTICIPANT_1", "⭐", "Create 2 events and see 5 events completed.", [
        (CriterionType.EVENT_COUNT_CREATED, 2),
        (CriterionType.EVENT_COUNT_COMPLETED, 5),
    ]),
    ("REGULAR_1", "🎟️", "Take part in 10 events.", [(CriterionType.EVENT_COUNT_ALL, 10)]),
    ("BIG_BANK_1", "🏆", "Finish an event with a bank of 1000.", [
        (CriterionType.EVENT_BANK_COMPLETED, 1000),
    ]),
    ("CROWD_1", "👥", "Finish an event with 20 participants.", [
        (CriterionType.EVENT_PEOPLE_COMPLETED, 20),
    ]),
    ("ON_TIME_1", "⏰", "See 3 events reach their end.", [(CriterionType.EVENT_TIME_COMPLETED, 3)]),
    ("LUCKY_1", "🍀", "Receive 100 from a single event.", [(CriterionType.EVENT_INCOME_ONETIME, 100)]),
    ("EARNER_1", "📈", "Receive 1000 from events in total.", [(CriterionType.EVENT_INCOME_ALL, 1000)]),
    ("STREAK_7", "🔥", "Be active 7 days in a row.", [(CriterionType.USER_ACTIVITY, 7)]),
]


def seed_achievements(db: Session) -> int:
    """Insert DEFAULT_ACHIEVEMENTS that are missing by name. Returns rows inserted."""
    existing = {name for (name,) in db.query(Achievement.name).all()}
    inserted = 0
    for name, icon, description, criteria in DEFAULT_ACHIEVEMENTS:
        if name in existing:
            continue
        db.add(Achievement(
            name=name,
            icon=icon,
            description=description,
            criteria=[
                AchievementCriterion(criterion_type=ctype, value=Decimal(target))
                for ctype, target in criteria
            ],
        ))
        inserted += 1
    if inserted:
        db.commit()
    return inserted
