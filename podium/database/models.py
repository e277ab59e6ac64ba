"""
podium.database.models — SQLAlchemy 2.0 Data Models
=====================================================

Tables:
- events               — Scope boundary for every leaderboard (external, read-only)
- games                — Games inside an event; supply max_score and event_id
- submissions          — One row per (game, user) with a reviewable status
- leaderboard_entries  — Materialized standing per (event, user)
- review_log           — Append-only trail of organizer review actions
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Podium ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class SubmissionStatus(enum.StrEnum):
    """Review states a submission moves through.  Only APPROVED counts."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    FLAGGED = "flagged"


class ReviewAction(enum.StrEnum):
    """Categories of organizer mutations recorded in review_log."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    FLAG = "FLAG"
    BONUS = "BONUS"
    DELETE = "DELETE"


# ---------------------------------------------------------------------------
# Events — scope boundary (owned by the event console)
# ---------------------------------------------------------------------------
class Event(Base):
    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    games: Mapped[list[Game]] = relationship(
        back_populates="event", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Event id={self.id} title={self.title!r}>"


# ---------------------------------------------------------------------------
# Games — one playable unit inside an event
# ---------------------------------------------------------------------------
class Game(Base):
    __tablename__ = "games"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    max_score: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    default_points: Mapped[int] = mapped_column(Integer, nullable=False, default=10)

    event: Mapped[Event] = relationship(back_populates="games")
    submissions: Mapped[list[Submission]] = relationship(
        cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_games_event", "event_id"),
    )

    def __repr__(self) -> str:
        return f"<Game id={self.id} event={self.event_id} max={self.max_score}>"


# ---------------------------------------------------------------------------
# Submissions — the store the leaderboard engine reads
# ---------------------------------------------------------------------------
class Submission(Base):
    """One participant's attempt at one game.

    ``event_id`` is denormalised from the game so the aggregator can scope
    by event without a join.  ``score`` on non-approved rows is
    informational only.
    """
    __tablename__ = "submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    game_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("games.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    event_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False,
        active_history=True,
    )
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SubmissionStatus.PENDING.value
    )
    feedback: Mapped[str | None] = mapped_column(Text, default=None)
    reviewed_by: Mapped[int | None] = mapped_column(BigInteger, default=None)
    reviewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("game_id", "user_id", name="uq_submissions_game_user"),
        Index("ix_submissions_event_status", "event_id", "status"),
        Index("ix_submissions_user", "user_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Submission id={self.id} game={self.game_id} user={self.user_id} "
            f"status={self.status} score={self.score}>"
        )


# ---------------------------------------------------------------------------
# LeaderboardEntry — materialized standing, replaced per event
# ---------------------------------------------------------------------------
class LeaderboardEntry(Base):
    """One user's standing within one event.

    Rows for an event are never patched individually; the whole set is
    deleted and re-inserted by
    :func:`~podium.services.leaderboard_service.replace_event_standings`.
    """
    __tablename__ = "leaderboard_entries"

    event_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("events.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    total_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    games_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_leaderboard_event_rank", "event_id", "rank"),
    )

    def __repr__(self) -> str:
        return (
            f"<LeaderboardEntry event={self.event_id} user={self.user_id} "
            f"rank={self.rank} total={self.total_score}>"
        )


# ---------------------------------------------------------------------------
# ReviewLog — append-only audit trail of organizer actions
# ---------------------------------------------------------------------------
class ReviewLog(Base):
    __tablename__ = "review_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action_type: Mapped[str] = mapped_column(String(20), nullable=False)
    submission_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    event_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_review_log_event_time", "event_id", "timestamp"),
        Index("ix_review_log_actor_time", "actor_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<ReviewLog id={self.id} actor={self.actor_id} action={self.action_type}>"
