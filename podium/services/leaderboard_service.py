"""
podium.services.leaderboard_service — Leaderboard Store Read/Write
====================================================================

Shared service module used by the recompute trigger, the recompute queue,
reconciliation and the API.

Write contract: an event's ``leaderboard_entries`` rows are only ever
replaced as a whole, inside one transaction:

    1. Lock the event row (``FOR NO KEY UPDATE``).  Overlapping recomputes
       of the *same* event queue behind it; the key-share locks taken by
       submission FKs do not conflict with it.
    2. Aggregate approved submissions (:func:`compute_standings`).
    3. DELETE the event's rows, INSERT the fresh set.

Readers under MVCC see either the previous set or the new one.  If any
step raises, the transaction rolls back and the previous set stays.

Read contract: reads never recompute; they return what is stored, ordered
by rank.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, insert, select
from sqlalchemy.orm import Session

from podium.database.models import Event, LeaderboardEntry
from podium.engine.notify import notify_before_commit
from podium.engine.standings import StandingRow, compute_standings

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Write path
# ---------------------------------------------------------------------------
def lock_event(session: Session, event_id: int) -> bool:
    """Take the per-event recompute lock.  Returns False for unknown events.

    SQLite ignores ``FOR UPDATE``; its database-level write lock already
    serialises writers.
    """
    locked = session.scalar(
        select(Event.id).where(Event.id == event_id).with_for_update(key_share=True)
    )
    return locked is not None


def replace_event_standings(session: Session, event_id: int) -> list[StandingRow]:
    """Recompute *event_id* and swap its stored rows within *session*'s transaction.

    Does not commit.  Returns the freshly computed standing.
    """
    if not lock_event(session, event_id):
        logger.debug("Recompute for unknown event %s: standing is empty", event_id)

    standings = compute_standings(session, event_id)
    now = datetime.now(UTC)

    removed = session.execute(
        delete(LeaderboardEntry).where(LeaderboardEntry.event_id == event_id)
    ).rowcount
    if standings:
        session.execute(
            insert(LeaderboardEntry),
            [
                {
                    "event_id": event_id,
                    "user_id": row.user_id,
                    "total_score": row.total_score,
                    "games_completed": row.games_completed,
                    "rank": row.rank,
                    "last_updated": now,
                }
                for row in standings
            ],
        )
    notify_before_commit(session, event_id)

    logger.info(
        "Leaderboard replaced for event %d: %d entries (previously %d)",
        event_id, len(standings), removed or 0,
    )
    return standings


def recompute_event(engine: Engine, event_id: int) -> list[StandingRow]:
    """Standalone recompute of one event in its own transaction.

    Idempotent and safe to retry: running it twice with no submission
    changes in between stores identical rows.
    """
    with Session(engine) as session:
        standings = replace_event_standings(session, event_id)
        session.commit()
    return standings


def recompute_all(engine: Engine) -> dict[int, int]:
    """Recompute every event, one transaction each.

    Returns ``{event_id: entry_count}``.
    """
    with Session(engine) as session:
        event_ids = session.scalars(select(Event.id).order_by(Event.id)).all()

    return {event_id: len(recompute_event(engine, event_id)) for event_id in event_ids}


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------
def get_standings(
    session: Session,
    event_id: int,
    *,
    offset: int = 0,
    limit: int | None = None,
) -> list[LeaderboardEntry]:
    """Stored entries for *event_id*, ordered by rank ascending."""
    query = (
        select(LeaderboardEntry)
        .where(LeaderboardEntry.event_id == event_id)
        .order_by(LeaderboardEntry.rank)
        .offset(offset)
    )
    if limit is not None:
        query = query.limit(limit)
    return list(session.scalars(query).all())


def count_standings(session: Session, event_id: int) -> int:
    return session.scalar(
        select(func.count())
        .select_from(LeaderboardEntry)
        .where(LeaderboardEntry.event_id == event_id)
    ) or 0


def get_user_standing(
    session: Session, event_id: int, user_id: int,
) -> LeaderboardEntry | None:
    """The stored entry of *user_id* in *event_id*, if they have one."""
    return session.get(LeaderboardEntry, (event_id, user_id))


def stored_standings(session: Session, event_id: int) -> list[StandingRow]:
    """Stored entries for *event_id* as :class:`StandingRow` values."""
    return [
        StandingRow(
            user_id=e.user_id,
            total_score=e.total_score,
            games_completed=e.games_completed,
            rank=e.rank,
        )
        for e in get_standings(session, event_id)
    ]


def entry_dict(entry: LeaderboardEntry) -> dict:
    return {
        "event_id": entry.event_id,
        "user_id": str(entry.user_id),
        "total_score": entry.total_score,
        "games_completed": entry.games_completed,
        "rank": entry.rank,
        "last_updated": entry.last_updated.isoformat() if entry.last_updated else None,
    }
