"""
Shared pytest fixtures.

Uses a SQLite file database so no Postgres is required for tests. The
database lives for the whole session, so every test creates its own
users, events and achievements and only asserts on those.
"""
import uuid
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.db.base import Base, get_db
from app.main import app
from app.models.achievement import Achievement, AchievementCriterion
from app.models.transaction import TransactionType
from app.services.catalogue import seed_achievements
from app.services.events import create_event
from app.services.participations import create_participation
from app.services.users import change_balance, create_user, get_user

SQLITE_URL = "sqlite:///./test_endgame.db"

engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    # Seed the default catalogue (normally done by Alembic migration 0002)
    db = TestingSessionLocal()
    try:
        seed_achievements(db)
    finally:
        db.close()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

@pytest.fixture()
def make_user(db):
    def _make(balance=None):
        tag = uuid.uuid4().hex[:10]
        user = create_user(db, f"user_{tag}", f"user_{tag}@example.com")
        if balance:
            change_balance(db, user.id, Decimal(str(balance)), TransactionType.BALANCE_INCOME)
        return get_user(db, user.id)
    return _make


@pytest.fixture()
def make_event(db):
    def _make(creator, groups=(), event_type="DONATION", start=True, recipient_id=None):
        event, _ = create_event(
            db,
            name=f"event_{uuid.uuid4().hex[:8]}",
            event_type=event_type,
            creator_id=creator.id,
            groups=groups,
            start=start,
            recipient_id=recipient_id,
        )
        return event
    return _make


@pytest.fixture()
def deposit(db):
    def _deposit(event, user, amount):
        participation, _ = create_participation(db, event.id, user.id, Decimal(str(amount)))
        return participation
    return _deposit


@pytest.fixture()
def make_achievement(db):
    def _make(*criteria, name=None):
        achievement = Achievement(
            name=name or f"TEST_{uuid.uuid4().hex[:10]}",
            criteria=[
                AchievementCriterion(criterion_type=ctype, value=Decimal(str(target)))
                for ctype, target in criteria
            ],
        )
        db.add(achievement)
        db.commit()
        db.refresh(achievement)
        return achievement
    return _make
