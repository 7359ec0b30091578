"""Test configuration and fixtures for the Questlog backend tests."""

import datetime
import os
import sys
import pathlib
import pytest
from unittest.mock import patch


from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

BACKEND_DIR = pathlib.Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

# Set test environment before importing backend modules
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SESSION_SECRET_KEY"] = "test_secret_key"
os.environ["TESTING_MODE"] = "True"
os.environ["CACHE_ENABLED"] = "False"
os.environ["SLACK_TOKEN"] = ""


@pytest.fixture(autouse=True)
def test_engine():
    """Create a test database engine."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    # Ensure models are imported so tables are registered in SQLModel.metadata
    import models  # noqa: F401

    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture
def test_session(test_engine):
    """Create a test database session."""
    with Session(test_engine) as session:
        yield session


@pytest.fixture
def override_get_session(test_session):
    """Override the get_session dependency for testing."""

    def _override_get_session():
        yield test_session

    return _override_get_session


@pytest.fixture
def test_app(override_get_session):
    """Create a test FastAPI application."""
    # Patch update_database to skip migrations in tests
    with patch("app.update_database"):
        from app import create_app

        app = create_app()
    from models.common import get_session

    app.dependency_overrides[get_session] = override_get_session
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(test_app):
    """Create a test client."""
    with TestClient(test_app) as client:
        yield client


@pytest.fixture
def login(test_app):
    """Act as the given user for the next requests: login(user)"""
    from routes.deps import get_current_user

    def _login(user):
        test_app.dependency_overrides[get_current_user] = lambda: user

    return _login


@pytest.fixture
def make_user(test_session):
    from models.auth import User

    def _make_user(username: str) -> "User":
        existing = test_session.get(User, f"{username}-id")
        if existing:
            return existing
        user = User(
            id=f"{username}-id",
            email=f"{username}@example.com",
            username=username,
            display_name=username.title(),
        )
        test_session.add(user)
        test_session.commit()
        test_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def test_user(make_user):
    return make_user("tester")


@pytest.fixture
def alice(make_user):
    return make_user("alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob")


@pytest.fixture
def carol(make_user):
    return make_user("carol")


@pytest.fixture
def make_challenge(test_session, make_user):
    """Write a challenge straight to the store, dates default to a running one"""
    from models.challenge import (
        Challenge,
        ChallengeGoal,
        ChallengeReward,
        ChallengeType,
        GoalType,
        RewardType,
    )
    from models.types import utcnow

    def _make_challenge(
        creator=None,
        type=ChallengeType.collaborative,
        max_participants=None,
        start=None,
        end=None,
        goal_type=GoalType.complete_games,
        target=5,
        reward_type=RewardType.points,
        badge_id=None,
    ):
        now = utcnow()
        creator = creator or make_user("creator")
        challenge = Challenge(
            title="Weekend Marathon",
            description="Finish as many games as you can",
            type=type,
            start_date=start or now - datetime.timedelta(days=1),
            end_date=end or now + datetime.timedelta(days=7),
            max_participants=max_participants,
            creator_id=creator.id,
        )
        test_session.add(challenge)
        test_session.commit()
        test_session.add(
            ChallengeGoal(challenge_id=challenge.id, type=goal_type, target=target)
        )
        test_session.add(
            ChallengeReward(
                challenge_id=challenge.id,
                type=reward_type,
                name="Finisher",
                description="Completed the marathon",
                badge_id=badge_id,
            )
        )
        test_session.commit()
        test_session.refresh(challenge)
        return challenge

    return _make_challenge


@pytest.fixture
def challenge_payload():
    """A valid creation payload, two days in the future"""
    from models.types import utcnow

    start = utcnow() + datetime.timedelta(days=2)
    return {
        "title": "Summer Speedrun",
        "description": "Beat three platformers before the end of the month",
        "type": "collaborative",
        "start_date": start.isoformat(),
        "end_date": (start + datetime.timedelta(days=14)).isoformat(),
        "goals": [{"type": "complete_games", "target": 3}],
        "rewards": [
            {
                "type": "badge",
                "name": "Speedrunner",
                "description": "Finished the summer speedrun",
            }
        ],
        "rules": ["No cheat codes allowed", {"rule": "Only single player runs"}],
    }


@pytest.fixture(autouse=True)
def clear_cache():
    from services.cache import cache

    cache.clear()
    yield
    cache.clear()


@pytest.fixture(autouse=True)
def reset_database_state(test_session):
    """Reset database state after each test."""
    yield
    # Handle any pending rollbacks first
    try:
        if test_session.in_transaction():
            test_session.rollback()

        # Clean up all tables after each test using proper SQLAlchemy text() function
        from sqlalchemy import text

        for table in reversed(SQLModel.metadata.sorted_tables):
            try:
                test_session.execute(text(f"DELETE FROM {table.name}"))
                test_session.commit()
            except Exception:
                test_session.rollback()
    except Exception:
        # If session is in bad state, just pass
        pass
