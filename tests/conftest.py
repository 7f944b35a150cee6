"""Pytest fixtures."""

import itertools

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from friendradar.core.presence import PresenceBroadcaster
from friendradar.core.security import create_access_token
from friendradar.db.base import Base
from friendradar.db.session import get_db
from friendradar.main import app
from friendradar.models import (  # noqa: F401 - register for create_all
    Friendship,
    MeetingHistory,
    MeetingSession,
    SosAlert,
    SosRecipient,
    User,
    UserLocation,
)
from friendradar.services.engine import PresenceEngine
from friendradar.services.friend_graph import add_friend

TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

_user_numbers = itertools.count(1)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="session")
def setup_db():
    """Create tables once for test session."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(setup_db):
    """Test client with overridden DB."""
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def db(setup_db):
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    """Insert a user directly (accounts are owned by the identity provider)."""

    def _make(name: str = "user", ghost: bool = False) -> User:
        n = next(_user_numbers)
        user = User(email=f"{name.lower()}{n}@test.com", full_name=name, is_ghost_mode=ghost)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def auth():
    """Authorization header for a user."""

    def _auth(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.email)}"}

    return _auth


@pytest.fixture
def befriend(db):
    """Make every given user friends with the first one."""

    def _befriend(user: User, *others: User) -> None:
        for other in others:
            add_friend(db, user.id, other.id)

    return _befriend


@pytest.fixture
def broadcaster():
    b = PresenceBroadcaster()
    b.start()
    yield b
    b.close()


class Recorder:
    """Collects events delivered to one user."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    def __call__(self, event, data) -> None:
        self.events.append((event, data))

    def named(self, event: str) -> list[dict]:
        return [data for name, data in self.events if name == event]


@pytest.fixture
def recorder(broadcaster):
    """Subscribe a Recorder to a user id: ``rec = recorder(user.id)``."""

    def _recorder(user_id: int) -> Recorder:
        rec = Recorder()
        broadcaster.subscribe(user_id, rec)
        return rec

    return _recorder


@pytest.fixture
def presence_engine(broadcaster):
    """Engine with a 50 m threshold."""
    return PresenceEngine(broadcaster, nearby_threshold_m=50.0)


@pytest.fixture
def session_factory(setup_db):
    """For tests that need one session per thread."""
    return TestingSessionLocal
