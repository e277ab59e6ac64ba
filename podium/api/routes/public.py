"""
podium.api.routes.public — Read-only public endpoints
=======================================================

Event leaderboards are served straight from ``leaderboard_entries``.
Nothing here recomputes them; a stale answer is a recompute bug, not a
read bug.  Per-game leaderboards are not stored and are ranked on read.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from podium.api.deps import get_config, get_session
from podium.config import PodiumConfig
from podium.constants import rank_badge
from podium.database.models import Game
from podium.engine.standings import compute_game_standings
from podium.services import leaderboard_service

router = APIRouter(tags=["public"])


def _public_entry(entry) -> dict:
    return {**leaderboard_service.entry_dict(entry), "badge": rank_badge(entry.rank)}


# ---------------------------------------------------------------------------
# GET /events/{event_id}/leaderboard
# ---------------------------------------------------------------------------
@router.get("/events/{event_id}/leaderboard")
def get_event_leaderboard(
    event_id: int,
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1),
    session: Session = Depends(get_session),
    cfg: PodiumConfig = Depends(get_config),
):
    """Paginated standing of one event, ordered by rank."""
    size = min(page_size or cfg.default_page_size, cfg.max_page_size)
    offset = (page - 1) * size

    total = leaderboard_service.count_standings(session, event_id)
    entries = leaderboard_service.get_standings(
        session, event_id, offset=offset, limit=size,
    )

    return {
        "event_id": event_id,
        "total": total,
        "page": page,
        "page_size": size,
        "entries": [_public_entry(e) for e in entries],
    }


# ---------------------------------------------------------------------------
# GET /events/{event_id}/leaderboard/{user_id}
# ---------------------------------------------------------------------------
@router.get("/events/{event_id}/leaderboard/{user_id}")
def get_participant_standing(
    event_id: int,
    user_id: int,
    session: Session = Depends(get_session),
):
    """One participant's standing; 404 when they have no approved submission."""
    entry = leaderboard_service.get_user_standing(session, event_id, user_id)
    if entry is None:
        raise HTTPException(404, "No standing for this participant in this event")
    return _public_entry(entry)


# ---------------------------------------------------------------------------
# GET /games/{game_id}/leaderboard
# ---------------------------------------------------------------------------
@router.get("/games/{game_id}/leaderboard")
def get_game_leaderboard(
    game_id: int,
    session: Session = Depends(get_session),
):
    """Approved scores of a single game, best first.  Computed on read."""
    game = session.get(Game, game_id)
    if game is None:
        raise HTTPException(404, "Game not found")
    rows = compute_game_standings(session, game_id)
    return {
        "game_id": game_id,
        "event_id": game.event_id,
        "entries": [
            {
                "user_id": str(row.user_id),
                "score": row.total_score,
                "rank": row.rank,
                "badge": rank_badge(row.rank),
            }
            for row in rows
        ],
    }
