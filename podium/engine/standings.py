"""
podium.engine.standings — Leaderboard Aggregator
==================================================

Turns the approved submissions of one event into an ordered standing.
:func:`compute_game_standings` does the same for a single game.

Ordering is fully explicit so two runs over the same submission set can
never disagree::

    total_score      DESC
    games_completed  DESC
    user_id          ASC     (tertiary key, keeps equal standings stable)

Ranks are the 1-based position in that order.  Ties never share a rank:
two users level on score and games still get consecutive ranks.

The grouping step lives in SQL (:func:`compute_standings`) for the stored
path, and in Python (:func:`tally_submissions`) for callers that already
hold the rows.  Both feed the same :func:`rank_standings`.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import distinct, func, select
from sqlalchemy.orm import Session

from podium.database.models import Submission, SubmissionStatus


@dataclass(frozen=True, slots=True)
class Tally:
    """Per-user aggregate before ranking."""
    user_id: int
    total_score: int
    games_completed: int


@dataclass(frozen=True, slots=True)
class StandingRow:
    """One ranked line of an event leaderboard."""
    user_id: int
    total_score: int
    games_completed: int
    rank: int

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "total_score": self.total_score,
            "games_completed": self.games_completed,
            "rank": self.rank,
        }


class SubmissionLike(Protocol):
    game_id: int
    user_id: int
    event_id: int
    score: int
    status: str


def standing_sort_key(tally: Tally) -> tuple[int, int, int]:
    return (-tally.total_score, -tally.games_completed, tally.user_id)


def rank_standings(tallies: Iterable[Tally]) -> list[StandingRow]:
    """Sort *tallies* and assign contiguous ranks starting at 1."""
    ordered = sorted(tallies, key=standing_sort_key)
    return [
        StandingRow(
            user_id=t.user_id,
            total_score=t.total_score,
            games_completed=t.games_completed,
            rank=position,
        )
        for position, t in enumerate(ordered, start=1)
    ]


def tally_submissions(
    submissions: Iterable[SubmissionLike], event_id: int,
) -> list[Tally]:
    """Group approved submissions of *event_id* by user.

    Rows for other events and rows in any status other than ``approved``
    are skipped.  ``games_completed`` counts distinct games, so a repeated
    game id is only counted once.
    """
    totals: dict[int, int] = {}
    games: dict[int, set[int]] = {}
    for sub in submissions:
        if sub.event_id != event_id or sub.status != SubmissionStatus.APPROVED:
            continue
        totals[sub.user_id] = totals.get(sub.user_id, 0) + (sub.score or 0)
        games.setdefault(sub.user_id, set()).add(sub.game_id)

    return [
        Tally(user_id=uid, total_score=total, games_completed=len(games[uid]))
        for uid, total in totals.items()
    ]


def compute_standings(session: Session, event_id: int) -> list[StandingRow]:
    """Aggregate and rank the approved submissions of *event_id*.

    An unknown event or one with no approved submissions yields ``[]``.
    Read-only: nothing is written through *session*.
    """
    rows = session.execute(
        select(
            Submission.user_id,
            func.coalesce(func.sum(Submission.score), 0).label("total_score"),
            func.count(distinct(Submission.game_id)).label("games_completed"),
        )
        .where(
            Submission.event_id == event_id,
            Submission.status == SubmissionStatus.APPROVED.value,
        )
        .group_by(Submission.user_id)
    ).all()

    return rank_standings(
        Tally(
            user_id=row.user_id,
            total_score=int(row.total_score),
            games_completed=int(row.games_completed),
        )
        for row in rows
    )


def compute_game_standings(session: Session, game_id: int) -> list[StandingRow]:
    """Rank the approved submissions of a single game by score.

    A user has at most one submission per game, so ``games_completed`` is
    always 1 and the order reduces to score DESC, user_id ASC.  Computed
    live; per-game standings are not stored.
    """
    rows = session.execute(
        select(Submission.user_id, Submission.score)
        .where(
            Submission.game_id == game_id,
            Submission.status == SubmissionStatus.APPROVED.value,
        )
    ).all()

    return rank_standings(
        Tally(user_id=row.user_id, total_score=row.score or 0, games_completed=1)
        for row in rows
    )
