"""
podium.services.submission_service — Submission Writes & Review Actions
=========================================================================

Every write follows the same pattern:
  1. Begin transaction
  2. Read "before" snapshot
  3. Validate and apply the change
  4. Write review_log with before/after JSON
  5. Commit — the recompute trigger replaces the affected leaderboard(s)
     before the commit completes

Validation problems raise :class:`ValueError`; lookups that miss return
``None`` (or ``False`` for deletes).
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from podium.database.models import (
    Game,
    ReviewAction,
    ReviewLog,
    Submission,
    SubmissionStatus,
)
from podium.engine.trigger import install_recompute_trigger

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

install_recompute_trigger()

VALID_STATUSES: frozenset[str] = frozenset(s.value for s in SubmissionStatus)
MAX_REASON_LENGTH = 500
MAX_BONUS_REASON_LENGTH = 200


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def submission_dict(sub: Submission | None) -> dict | None:
    """JSON-serialisable snapshot of a submission row."""
    if sub is None:
        return None
    result: dict[str, Any] = {}
    for col in sub.__table__.columns:
        val = getattr(sub, col.key, None)
        if isinstance(val, datetime):
            val = val.isoformat()
        result[col.name] = val
    return result


def normalize_status(status: str) -> str:
    value = (status or "").strip().lower()
    if value not in VALID_STATUSES:
        raise ValueError(
            f"Invalid status: {status!r}. Must be one of {sorted(VALID_STATUSES)}"
        )
    return value


def validate_score(score: int, game: Game) -> int:
    if isinstance(score, bool) or not isinstance(score, int):
        raise ValueError(f"Score must be an integer, got {score!r}")
    if score < 0:
        raise ValueError("Score must be a non-negative integer")
    if score > game.max_score:
        raise ValueError(
            f"Score {score} exceeds the maximum of {game.max_score} for game {game.id}"
        )
    return score


def _require_reason(
    reason: str | None, what: str, limit: int = MAX_REASON_LENGTH,
) -> str:
    text = (reason or "").strip()
    if not text:
        raise ValueError(f"{what} reason is required")
    if len(text) > limit:
        raise ValueError(f"{what} reason must be {limit} characters or less")
    return text


def _log_review(
    session: Session,
    *,
    actor_id: int,
    action: ReviewAction,
    before: dict | None,
    after: dict | None,
    submission_id: int | None,
    event_id: int | None,
    reason: str | None = None,
) -> None:
    """Insert a row into review_log within the current transaction."""
    session.add(ReviewLog(
        actor_id=actor_id,
        action_type=action.value,
        submission_id=submission_id,
        event_id=event_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


def _finish(session: Session, sub: Submission) -> Submission:
    session.commit()
    session.refresh(sub)
    session.expunge(sub)
    return sub


# ---------------------------------------------------------------------------
# Create / update / delete
# ---------------------------------------------------------------------------
def create_submission(
    engine: Engine,
    *,
    game_id: int,
    user_id: int,
    actor_id: int,
    score: int = 0,
    status: str = SubmissionStatus.PENDING.value,
    feedback: str | None = None,
) -> Submission:
    """Record a participant's submission for *game_id*.

    ``event_id`` is copied from the game.  At most one submission per
    (game, user) is allowed.
    """
    status = normalize_status(status)
    with Session(engine, expire_on_commit=False) as session:
        game = session.get(Game, game_id)
        if game is None:
            raise ValueError(f"Game not found: {game_id}")
        validate_score(score, game)

        existing = session.scalar(
            select(Submission.id).where(
                Submission.game_id == game_id, Submission.user_id == user_id,
            )
        )
        if existing is not None:
            raise ValueError(
                f"User {user_id} already has a submission for game {game_id}"
            )

        sub = Submission(
            game_id=game_id,
            user_id=user_id,
            event_id=game.event_id,
            score=score,
            status=status,
            feedback=feedback,
        )
        session.add(sub)
        session.flush()
        _log_review(
            session,
            actor_id=actor_id,
            action=ReviewAction.CREATE,
            before=None,
            after=submission_dict(sub),
            submission_id=sub.id,
            event_id=sub.event_id,
        )
        sub = _finish(session, sub)

    logger.info(
        "Submission %d created: game=%d user=%d status=%s score=%d",
        sub.id, game_id, user_id, status, score,
    )
    return sub


def update_submission(
    engine: Engine,
    submission_id: int,
    *,
    actor_id: int,
    score: int | None = None,
    status: str | None = None,
    feedback: str | None = None,
) -> Submission | None:
    """Edit score / status / feedback.  Returns ``None`` if not found."""
    with Session(engine, expire_on_commit=False) as session:
        sub = session.get(Submission, submission_id)
        if sub is None:
            return None
        before = submission_dict(sub)

        if score is not None:
            game = session.get(Game, sub.game_id)
            sub.score = validate_score(score, game)
        if status is not None:
            sub.status = normalize_status(status)
        if feedback is not None:
            sub.feedback = feedback
        session.flush()

        _log_review(
            session,
            actor_id=actor_id,
            action=ReviewAction.UPDATE,
            before=before,
            after=submission_dict(sub),
            submission_id=sub.id,
            event_id=sub.event_id,
        )
        return _finish(session, sub)


def delete_submission(
    engine: Engine,
    submission_id: int,
    *,
    actor_id: int,
    reason: str | None = None,
) -> bool:
    """Delete a submission (e.g. disqualification).  True if it existed."""
    with Session(engine) as session:
        sub = session.get(Submission, submission_id)
        if sub is None:
            return False
        _log_review(
            session,
            actor_id=actor_id,
            action=ReviewAction.DELETE,
            before=submission_dict(sub),
            after=None,
            submission_id=sub.id,
            event_id=sub.event_id,
            reason=reason,
        )
        session.delete(sub)
        session.commit()

    logger.info("Submission %d deleted by %d", submission_id, actor_id)
    return True


# ---------------------------------------------------------------------------
# Review actions
# ---------------------------------------------------------------------------
def _review(
    engine: Engine,
    submission_id: int,
    *,
    actor_id: int,
    action: ReviewAction,
    status: SubmissionStatus,
    score: int | None = None,
    feedback: str | None = None,
    reason: str | None = None,
) -> Submission | None:
    with Session(engine, expire_on_commit=False) as session:
        sub = session.get(Submission, submission_id)
        if sub is None:
            return None
        before = submission_dict(sub)

        if action is ReviewAction.APPROVE:
            if sub.status == SubmissionStatus.APPROVED:
                raise ValueError("Submission is already approved")
            game = session.get(Game, sub.game_id)
            points = game.default_points if score is None else score
            sub.score = validate_score(points, game)

        sub.status = status.value
        note = feedback if feedback is not None else reason
        if note is not None:
            sub.feedback = note
        sub.reviewed_by = actor_id
        sub.reviewed_at = datetime.now(UTC)
        session.flush()

        _log_review(
            session,
            actor_id=actor_id,
            action=action,
            before=before,
            after=submission_dict(sub),
            submission_id=sub.id,
            event_id=sub.event_id,
            reason=reason,
        )
        sub = _finish(session, sub)

    logger.info(
        "Submission %d %s by %d (score=%d)",
        submission_id, status.value, actor_id, sub.score,
    )
    return sub


def approve_submission(
    engine: Engine,
    submission_id: int,
    *,
    actor_id: int,
    points: int | None = None,
    feedback: str | None = None,
) -> Submission | None:
    """Approve and score a submission.

    Without *points* the game's ``default_points`` is awarded.
    """
    return _review(
        engine, submission_id,
        actor_id=actor_id,
        action=ReviewAction.APPROVE,
        status=SubmissionStatus.APPROVED,
        score=points,
        feedback=feedback,
    )


def reject_submission(
    engine: Engine, submission_id: int, *, actor_id: int, reason: str,
) -> Submission | None:
    """Reject a submission; its score no longer counts."""
    return _review(
        engine, submission_id,
        actor_id=actor_id,
        action=ReviewAction.REJECT,
        status=SubmissionStatus.REJECTED,
        reason=_require_reason(reason, "Rejection"),
    )


def flag_submission(
    engine: Engine, submission_id: int, *, actor_id: int, reason: str,
) -> Submission | None:
    """Flag a submission for follow-up; flagged rows do not count."""
    return _review(
        engine, submission_id,
        actor_id=actor_id,
        action=ReviewAction.FLAG,
        status=SubmissionStatus.FLAGGED,
        reason=_require_reason(reason, "Flag"),
    )


def award_bonus(
    engine: Engine,
    submission_id: int,
    *,
    actor_id: int,
    points: int,
    reason: str,
) -> Submission | None:
    """Add *points* on top of an approved submission's score.

    The reason is stored as the submission's feedback.  The new score is
    still capped by the game's ``max_score``.
    """
    if isinstance(points, bool) or not isinstance(points, int) or points < 1:
        raise ValueError("Bonus points must be a positive integer")
    reason = _require_reason(reason, "Bonus", MAX_BONUS_REASON_LENGTH)

    with Session(engine, expire_on_commit=False) as session:
        sub = session.get(Submission, submission_id)
        if sub is None:
            return None
        if sub.status != SubmissionStatus.APPROVED:
            raise ValueError("Can only award bonus points to approved submissions")
        before = submission_dict(sub)

        game = session.get(Game, sub.game_id)
        sub.score = validate_score(sub.score + points, game)
        sub.feedback = reason
        sub.reviewed_by = actor_id
        sub.reviewed_at = datetime.now(UTC)
        session.flush()

        _log_review(
            session,
            actor_id=actor_id,
            action=ReviewAction.BONUS,
            before=before,
            after=submission_dict(sub),
            submission_id=sub.id,
            event_id=sub.event_id,
            reason=reason,
        )
        sub = _finish(session, sub)

    logger.info(
        "Submission %d awarded %d bonus points by %d (score=%d)",
        submission_id, points, actor_id, sub.score,
    )
    return sub


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_submission(session: Session, submission_id: int) -> Submission | None:
    return session.get(Submission, submission_id)


def list_submissions(
    session: Session,
    event_id: int,
    *,
    status: str | None = None,
    limit: int = 100,
) -> list[Submission]:
    """Most recent submissions of an event, optionally filtered by status."""
    query = select(Submission).where(Submission.event_id == event_id)
    if status is not None:
        query = query.where(Submission.status == normalize_status(status))
    query = query.order_by(Submission.submitted_at.desc(), Submission.id.desc()).limit(limit)
    return list(session.scalars(query).all())
