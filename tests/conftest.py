from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from timeblock.main import app
from timeblock.models.entities import BusyInterval, TaskCandidate, WorkdayConfig
from timeblock.storage.cache import get_cache
from timeblock.storage.database import Base, get_db


MONDAY = date(2024, 1, 1)
BEFORE_WINDOW = datetime(2023, 12, 29, 12, 0)


@pytest.fixture
def monday():
    """2024-01-01, a Monday."""
    return MONDAY


@pytest.fixture
def now():
    """A wall-clock time before every test window, so nothing is clipped."""
    return BEFORE_WINDOW


@pytest.fixture
def default_config():
    """Workday 09:00-17:00, lunch 12:00-13:00, no weekends, no caps."""
    return WorkdayConfig()


@pytest.fixture
def simple_task():
    """Single one-hour critical task."""
    return TaskCandidate(id="task-1", name="Write report", duration=60, priority=1)


@pytest.fixture
def mixed_tasks():
    """Tasks of every priority with assorted durations."""
    return [
        TaskCandidate(id="low", name="Tidy inbox", duration=30, priority=4),
        TaskCandidate(id="critical", name="Ship release", duration=120, priority=1),
        TaskCandidate(id="medium", name="Review PR", duration=45, priority=3),
        TaskCandidate(id="high", name="Plan sprint", duration=90, priority=2, complexity=7),
        TaskCandidate(id="high-2", name="Fix flaky test", duration=60, priority=2),
    ]


@pytest.fixture
def busy_monday():
    """Meetings on Monday, one of them straddling lunch."""
    return [
        BusyInterval(date=MONDAY, start=600, end=660, task_id="standup"),
        BusyInterval(date=MONDAY, start=690, end=810, task_id="lunch-meeting"),
    ]


class InMemoryCache:
    """Dict-backed stand-in for ScheduleCache used by the API tests."""

    def __init__(self):
        self.store = {}

    def get(self, request_hash):
        return self.store.get(request_hash)

    def set(self, request_hash, response, ttl_seconds=None):
        self.store[request_hash] = response

    def delete(self, request_hash):
        self.store.pop(request_hash, None)


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def cache():
    return InMemoryCache()


@pytest.fixture
def client(db_session, cache):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache] = lambda: cache
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
