"""Pytest configuration and shared fixtures.

This module provides fixtures for testing the gamevault application,
including temporary databases, profiles and challenge payloads.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Generator

import pytest

from gamevault.challenges.manager import ChallengeManager
from gamevault.config import reset_config
from gamevault.db.sqlite import Database, reset_db
from gamevault.profiles.manager import ProfileManager
from gamevault.profiles.schemas import ProfileCreate, ProfileResponse


def iso(dt: datetime) -> str:
    """ISO-8601 string with offset, as a client would send it."""
    return dt.isoformat()


def days_from_now(days: float) -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=days)


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="function")
def db(tmp_path: Path) -> Generator[Database, None, None]:
    """Create a test database instance."""
    # Reset any global state
    reset_db()
    reset_config()

    database = Database(str(tmp_path / "test.db"))
    database.create_tables()
    yield database

    reset_db()
    reset_config()


@pytest.fixture
def profiles(db: Database) -> ProfileManager:
    return ProfileManager(db)


@pytest.fixture
def manager(db: Database) -> ChallengeManager:
    return ChallengeManager(db)


@pytest.fixture
def alice(profiles: ProfileManager) -> ProfileResponse:
    """Profile that creates challenges in most tests."""
    return profiles.create_profile(ProfileCreate(username="alice"))


@pytest.fixture
def bob(profiles: ProfileManager) -> ProfileResponse:
    return profiles.create_profile(ProfileCreate(username="bob"))


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def make_payload() -> Callable[..., dict[str, Any]]:
    """Factory for valid challenge payloads.

    By default the challenge started yesterday and runs for 30 days.
    Keyword arguments override top-level fields.
    """

    def _make(start_in_days: float = -1, duration_days: float = 31, **overrides: Any) -> dict[str, Any]:
        start = days_from_now(start_in_days)
        payload = {
            "title": "Spring Backlog Sprint",
            "description": "Finish games from your backlog before summer.",
            "type": "collaborative",
            "start_date": iso(start),
            "end_date": iso(start + timedelta(days=duration_days)),
            "goals": [
                {"type": "complete_games", "target": 10, "description": "Finish ten games"},
                {"type": "play_time", "target": 20},
            ],
            "rewards": [
                {
                    "type": "badge",
                    "name": "Backlog Buster",
                    "description": "Cleared a chunk of the backlog",
                }
            ],
            "rules": [],
        }
        payload.update(overrides)
        return payload

    return _make


@pytest.fixture
def challenge_payload(make_payload) -> dict[str, Any]:
    """A valid, currently active challenge payload."""
    return make_payload()
