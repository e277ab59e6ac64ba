"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# podium.api.deps validates JWT_SECRET at import time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# SQLite has no JSONB, and only INTEGER PRIMARY KEY autoincrements.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from podium.database.models import Base, Event, Game, Submission  # noqa: E402
from podium.engine.trigger import install_recompute_trigger  # noqa: E402

_sqlite_compat_registered = False


def _register_sqlite_compat():
    """Render JSONB as TEXT and BigInteger as INTEGER on SQLite (idempotent)."""
    global _sqlite_compat_registered
    if _sqlite_compat_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _sqlite_compat_registered = True


_register_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all Podium tables and the trigger on.

    StaticPool keeps one shared connection so the recompute worker thread
    sees the same database as the test.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    install_recompute_trigger()
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------
def make_event(
    engine: Engine, *, games: int = 2, max_score: int = 100, default_points: int = 10,
) -> tuple[int, list[int]]:
    """Insert an event with *games* games.  Returns ``(event_id, game_ids)``."""
    with Session(engine) as session:
        event = Event(title="Test Event")
        session.add(event)
        session.flush()
        rows = [
            Game(
                event_id=event.id,
                title=f"Game {i + 1}",
                max_score=max_score,
                default_points=default_points,
            )
            for i in range(games)
        ]
        session.add_all(rows)
        session.commit()
        return event.id, [g.id for g in rows]


def add_submission(
    engine: Engine,
    event_id: int,
    game_id: int,
    user_id: int,
    score: int,
    status: str = "approved",
) -> int:
    """Insert a submission straight through the ORM.  Returns its id."""
    with Session(engine) as session:
        sub = Submission(
            event_id=event_id,
            game_id=game_id,
            user_id=user_id,
            score=score,
            status=status,
        )
        session.add(sub)
        session.commit()
        return sub.id


def standings_of(engine: Engine, event_id: int) -> list[tuple[int, int, int, int]]:
    """Stored ``(user_id, total_score, games_completed, rank)`` tuples by rank."""
    from podium.services.leaderboard_service import get_standings

    with Session(engine) as session:
        return [
            (e.user_id, e.total_score, e.games_completed, e.rank)
            for e in get_standings(session, event_id)
        ]


# ---------------------------------------------------------------------------
# API helpers
# ---------------------------------------------------------------------------
@pytest.fixture
def organizer_token():
    return make_organizer_token()


def make_organizer_token(sub: str = "99999", username: str = "FixtureOrganizer") -> str:
    """Create an organizer JWT.  Usable as both a fixture and a factory function."""
    import jwt

    from podium.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "username": username, "is_organizer": True},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


@pytest.fixture
def client(db_engine: Engine):
    """TestClient whose engine/session/config dependencies point at SQLite."""
    from fastapi.testclient import TestClient

    from podium.api import deps
    from podium.api.main import app
    from podium.config import default_config
    from podium.engine.recompute_queue import RecomputeQueue

    def _session():
        with Session(db_engine) as session:
            yield session

    queue = RecomputeQueue(db_engine, retry_base_seconds=0.0)
    app.dependency_overrides[deps.get_engine] = lambda: db_engine
    app.dependency_overrides[deps.get_session] = _session
    app.dependency_overrides[deps.get_config] = default_config
    app.dependency_overrides[deps.get_recompute_queue] = lambda: queue
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()
