"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of viwo.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

from datetime import UTC, date, datetime, timedelta  # noqa: E402
from decimal import Decimal  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from viwo.config import RewardsConfig  # noqa: E402
from viwo.constants import utcnow  # noqa: E402
from viwo.database.models import (  # noqa: E402
    Base,
    Comment,
    Follow,
    Post,
    PostInteraction,
    User,
)
from viwo.services.notifier import Notifier  # noqa: E402
from viwo.wiring import Services, build_services  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


# The day most scenario tests reward, and an instant inside it.
REWARD_DAY = date(2026, 3, 14)
DAY_NOON = datetime(2026, 3, 14, 12, 0, tzinfo=UTC)


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all ViWo tables.

    JSONB columns are transparently mapped to TEXT for SQLite compatibility.
    Uses StaticPool so the TestClient's worker threads share the same
    in-memory database.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Config / services
# ---------------------------------------------------------------------------
def small_pool_config(**overrides: Any) -> RewardsConfig:
    """Config whose daily pool is exactly 1000 VCN and whose cap is 500 VCN.

    37 500 × 0.8 / 30 = 1000; 15 USD / 0.03 = 500.
    """
    values: dict[str, Any] = {
        "monthly_emission": Decimal("37500"),
        "daily_allocation": Decimal("0.8"),
        "max_daily_reward_usd": Decimal("15"),
        "retry_backoff_seconds": 0.0,
    }
    values.update(overrides)
    return RewardsConfig(**values)


class RecordingNotifier(Notifier):
    """Captures every published event."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    def publish(self, event_type: str, payload: dict) -> None:
        self.events.append((event_type, payload))

    def of_type(self, event_type: str) -> list[dict]:
        return [payload for kind, payload in self.events if kind == event_type]


@pytest.fixture
def config() -> RewardsConfig:
    return RewardsConfig(retry_backoff_seconds=0.0)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def services(db_engine: Engine, config: RewardsConfig, notifier: RecordingNotifier) -> Services:
    return build_services(db_engine, config, notifier)


# ---------------------------------------------------------------------------
# Seed helpers (collaborator tables)
# ---------------------------------------------------------------------------
def add_user(
    engine: Engine,
    user_id: int,
    *,
    tier: str = "BASIC",
    created_at: datetime | None = None,
    username: str | None = None,
) -> int:
    with Session(engine) as session:
        session.add(User(
            id=user_id,
            username=username or f"user{user_id}",
            display_name=f"User {user_id}",
            verification_tier=tier,
            created_at=created_at or utcnow() - timedelta(days=1),
        ))
        session.commit()
    return user_id


def add_posts(
    engine: Engine,
    user_id: int,
    count: int,
    at: datetime = DAY_NOON,
    *,
    media_type: str | None = None,
    **counters: int,
) -> list[int]:
    with Session(engine) as session:
        posts = [
            Post(
                user_id=user_id,
                content=f"post {i}",
                media_type=media_type,
                created_at=at,
                **counters,
            )
            for i in range(count)
        ]
        session.add_all(posts)
        session.commit()
        return [p.id for p in posts]


def add_interactions(
    engine: Engine,
    user_id: int,
    post_id: int,
    kind: str,
    count: int,
    at: datetime = DAY_NOON,
) -> None:
    with Session(engine) as session:
        session.add_all(
            PostInteraction(post_id=post_id, user_id=user_id, interaction_type=kind, created_at=at)
            for _ in range(count)
        )
        session.commit()


def add_comments(
    engine: Engine,
    user_id: int,
    post_id: int,
    count: int,
    at: datetime = DAY_NOON,
    *,
    content: str = "nice post",
) -> None:
    with Session(engine) as session:
        session.add_all(
            Comment(post_id=post_id, user_id=user_id, content=content, created_at=at)
            for _ in range(count)
        )
        session.commit()


def add_follow(engine: Engine, follower_id: int, following_id: int, at: datetime = DAY_NOON) -> None:
    with Session(engine) as session:
        session.add(Follow(follower_id=follower_id, following_id=following_id, created_at=at))
        session.commit()


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------
@pytest.fixture
def admin_token():
    """Generate a valid admin JWT for use in API integration tests."""
    return make_admin_token()


def make_admin_token(sub: str = "99999", username: str = "FixtureAdmin") -> str:
    """Create an admin JWT.  Usable as both a fixture and a factory function."""
    import jwt

    from viwo.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "username": username, "is_admin": True},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def make_user_token(user_id: int) -> str:
    import jwt

    from viwo.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": str(user_id), "username": f"user{user_id}", "is_admin": False},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


@pytest.fixture
def client(services: Services):
    """FastAPI TestClient wired to the in-memory services."""
    from fastapi.testclient import TestClient

    from viwo.api.deps import get_services
    from viwo.api.main import app

    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
