"""
FastAPI dependencies that assemble the engine per request.

The achievement catalogue is snapshotted from the DB for each request and
handed explicitly to the tracker; tests override these providers to
inject fixed catalogues, clocks and random sources.
"""
from fastapi import Depends
from sqlalchemy.orm import Session

from app.db.base import get_db
from app.services.achievements import AchievementTracker
from app.services.catalogue import AchievementCatalogue, load_catalogue
from app.services.criteria import CriterionManager
from app.services.event_completion import EventCompletionCoordinator


def get_catalogue(db: Session = Depends(get_db)) -> AchievementCatalogue:
    return load_catalogue(db)


def get_tracker(
    db: Session = Depends(get_db),
    catalogue: AchievementCatalogue = Depends(get_catalogue),
) -> AchievementTracker:
    return AchievementTracker(db, catalogue)


def get_criterion_manager(
    tracker: AchievementTracker = Depends(get_tracker),
) -> CriterionManager:
    return CriterionManager(tracker)


def get_coordinator(
    db: Session = Depends(get_db),
    manager: CriterionManager = Depends(get_criterion_manager),
) -> EventCompletionCoordinator:
    return EventCompletionCoordinator(db, manager=manager)
