"""
Shared fixtures: a throwaway SQLite database per test, a pinned clock and
factories for games and players.
"""
import os
import uuid
from datetime import datetime, timezone

# Must be set before treasure_hunt.config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["API_KEY"] = "test-api-key"
os.environ["PUSH_NOTIFICATIONS_ENABLED"] = "false"
os.environ["CLAIM_RETRY_WAIT_SEC"] = "0"
os.environ["WIN_DAY_TIMEZONE"] = "UTC"

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from treasure_hunt.clock import FixedClock
from treasure_hunt.db.database import Base
from treasure_hunt.db import models  # noqa: F401
from treasure_hunt.db.models import Game, LeaderboardEntry, User

API_KEY = "test-api-key"
TARGET = (40.7829, -73.9654)


@pytest.fixture
def engine(tmp_path):
    # A file database so that separate sessions really are separate connections
    engine = create_engine(
        f"sqlite:///{tmp_path / 'treasure_hunt.db'}",
        connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def fixed_clock():
    return FixedClock(datetime(2024, 6, 1, 15, 0, tzinfo=timezone.utc))


@pytest.fixture
def today(fixed_clock):
    return fixed_clock.today()


@pytest.fixture
def make_user(db):
    def _make_user(user_id=None, **fields):
        values = {"balance": 0.0, "total_earnings": 0.0, "total_wins": 0}
        values.update(fields)
        user = User(id=user_id or f"user-{uuid.uuid4().hex[:8]}", **values)
        db.add(user)
        db.commit()
        return user
    return _make_user


@pytest.fixture
def make_location_game(db):
    def _make_location_game(**fields):
        values = {
            "id": str(uuid.uuid4()),
            "name": "Central Park Chest",
            "city": "New York",
            "kind": "location",
            "status": "live",
            "prize_amount": 100.0,
            "winner_slots": 3,
            "accuracy_radius": 10.0,
            "target_latitude": TARGET[0],
            "target_longitude": TARGET[1],
        }
        values.update(fields)
        game = Game(**values)
        db.add(game)
        db.commit()
        return game
    return _make_location_game


@pytest.fixture
def make_virtual_game(db):
    def _make_virtual_game(scores=(), **fields):
        """scores: iterable of (user_id, score) or (user_id, score, device_id)"""
        values = {
            "id": str(uuid.uuid4()),
            "name": "Friday Tap Off",
            "city": "New York",
            "kind": "virtual",
            "status": "live",
            "prize_amount": 500.0,
            "winner_slots": 3,
            "virtual_type": "reaction",
            "score_order": "desc",
            "prize_distribution": {"1": 100, "2": 60, "3": 30},
        }
        values.update(fields)
        game = Game(**values)
        db.add(game)
        db.commit()

        for row in scores:
            user_id, score = row[0], row[1]
            device_id = row[2] if len(row) > 2 else f"device-{user_id}"
            db.add(LeaderboardEntry(
                game_id=game.id,
                user_id=user_id,
                username=user_id.title(),
                score=score,
                device_id=device_id
            ))
            db.commit()
        return game
    return _make_virtual_game


class RecordingNotifier:
    """Notifier double that keeps every batch it is handed"""

    def __init__(self, fail=False):
        self.fail = fail
        self.batches = []

    def __call__(self, messages):
        self.batches.append(list(messages))
        if self.fail:
            raise RuntimeError("push gateway down")

    @property
    def messages(self):
        return [m for batch in self.batches for m in batch]


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def failing_notifier():
    return RecordingNotifier(fail=True)


@pytest.fixture
def client(session_factory):
    from fastapi.testclient import TestClient
    from treasure_hunt.dependencies import get_db
    from treasure_hunt.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
