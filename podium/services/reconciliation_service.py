"""
podium.services.reconciliation_service — Leaderboard Reconciliation
=====================================================================

Periodic job that validates stored ``leaderboard_entries`` against a fresh
aggregation of ``submissions`` and repairs drift.

How it works:
    1. For each event, compute the standing from approved submissions.
    2. Compare it row-for-row with what is stored.
    3. If anything differs (missing user, stale user, total, games or
       rank), run a full atomic replace for that event.
    4. Log every correction.

Drift should never happen while all writes go through the ORM, but raw
SQL imports and bulk tools bypass the trigger.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from podium.database.models import Event
from podium.engine.standings import StandingRow, compute_standings
from podium.services.leaderboard_service import replace_event_standings, stored_standings

logger = logging.getLogger(__name__)


def diff_standings(
    expected: list[StandingRow], stored: list[StandingRow],
) -> dict:
    """Describe how *stored* differs from *expected* (empty dict = match)."""
    want = {row.user_id: row for row in expected}
    have = {row.user_id: row for row in stored}

    missing = sorted(set(want) - set(have))
    stale = sorted(set(have) - set(want))
    changed = sorted(uid for uid in set(want) & set(have) if want[uid] != have[uid])

    if not (missing or stale or changed):
        return {}
    return {"missing": missing, "stale": stale, "changed": changed}


def reconcile_leaderboards(
    engine: Engine, event_ids: Iterable[int] | None = None,
) -> dict:
    """Validate stored standings and fix drifted events.

    Returns ``{"checked": N, "corrected": M, "corrections": [...], "timestamp": ...}``.
    """
    if event_ids is None:
        with Session(engine) as session:
            event_ids = session.scalars(select(Event.id).order_by(Event.id)).all()

    corrections: list[dict] = []
    checked = 0

    for event_id in event_ids:
        checked += 1
        with Session(engine) as session:
            expected = compute_standings(session, event_id)
            stored = stored_standings(session, event_id)
            diff = diff_standings(expected, stored)
            if not diff:
                continue

            replace_event_standings(session, event_id)
            session.commit()

        corrections.append({"event_id": event_id, **diff})

    if corrections:
        logger.warning(
            "Leaderboard reconciliation: corrected %d/%d events: %s",
            len(corrections), checked, corrections,
        )
    else:
        logger.info("Leaderboard reconciliation: all %d events match", checked)

    return {
        "checked": checked,
        "corrected": len(corrections),
        "corrections": corrections,
        "timestamp": datetime.now(UTC).isoformat(),
    }
