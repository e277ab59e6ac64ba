"""
podium.api.routes.organizer — Submission review & leaderboard operations (JWT‑protected)
==========================================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from podium.api.deps import (
    actor_id,
    get_current_organizer,
    get_engine,
    get_recompute_queue,
    get_session,
)
from podium.engine.recompute_queue import RecomputeQueue
from podium.services import leaderboard_service, reconciliation_service, submission_service

router = APIRouter(prefix="/organizer", tags=["organizer"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class SubmissionCreate(BaseModel):
    game_id: int
    user_id: int
    score: int = Field(0, ge=0)
    status: str = "pending"
    feedback: str | None = None


class SubmissionUpdate(BaseModel):
    score: int | None = Field(None, ge=0)
    status: str | None = None
    feedback: str | None = None


class ApproveBody(BaseModel):
    points: int | None = Field(None, ge=0)
    feedback: str | None = Field(None, max_length=500)


class ReasonBody(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class BonusBody(BaseModel):
    points: int = Field(..., ge=1)
    reason: str = Field(..., min_length=1, max_length=200)


class ReconcileBody(BaseModel):
    event_ids: list[int] | None = None


def _out(sub) -> dict:
    return submission_service.submission_dict(sub)


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------
@router.get("/events/{event_id}/submissions")
def list_submissions(
    event_id: int,
    status: str | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    organizer: dict = Depends(get_current_organizer),
    session: Session = Depends(get_session),
):
    try:
        rows = submission_service.list_submissions(
            session, event_id, status=status, limit=limit,
        )
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    return {"event_id": event_id, "submissions": [_out(s) for s in rows]}


@router.get("/submissions/{submission_id}")
def get_submission(
    submission_id: int,
    organizer: dict = Depends(get_current_organizer),
    session: Session = Depends(get_session),
):
    sub = submission_service.get_submission(session, submission_id)
    if sub is None:
        raise HTTPException(404, "Submission not found")
    return _out(sub)


@router.post("/submissions", status_code=201)
def create_submission(
    body: SubmissionCreate,
    organizer: dict = Depends(get_current_organizer),
    engine=Depends(get_engine),
):
    try:
        sub = submission_service.create_submission(
            engine,
            game_id=body.game_id,
            user_id=body.user_id,
            score=body.score,
            status=body.status,
            feedback=body.feedback,
            actor_id=actor_id(organizer),
        )
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    return _out(sub)


@router.patch("/submissions/{submission_id}")
def update_submission(
    submission_id: int,
    body: SubmissionUpdate,
    organizer: dict = Depends(get_current_organizer),
    engine=Depends(get_engine),
):
    kwargs = body.model_dump(exclude_none=True)
    if not kwargs:
        raise HTTPException(400, "No fields to update")
    try:
        sub = submission_service.update_submission(
            engine, submission_id, actor_id=actor_id(organizer), **kwargs,
        )
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    if sub is None:
        raise HTTPException(404, "Submission not found")
    return _out(sub)


@router.delete("/submissions/{submission_id}")
def delete_submission(
    submission_id: int,
    reason: str | None = Query(None, max_length=500),
    organizer: dict = Depends(get_current_organizer),
    engine=Depends(get_engine),
):
    if not submission_service.delete_submission(
        engine, submission_id, actor_id=actor_id(organizer), reason=reason,
    ):
        raise HTTPException(404, "Submission not found")
    return {"deleted": submission_id}


@router.post("/submissions/{submission_id}/approve")
def approve_submission(
    submission_id: int,
    body: ApproveBody,
    organizer: dict = Depends(get_current_organizer),
    engine=Depends(get_engine),
):
    try:
        sub = submission_service.approve_submission(
            engine, submission_id,
            actor_id=actor_id(organizer),
            points=body.points,
            feedback=body.feedback,
        )
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    if sub is None:
        raise HTTPException(404, "Submission not found")
    return _out(sub)


@router.post("/submissions/{submission_id}/reject")
def reject_submission(
    submission_id: int,
    body: ReasonBody,
    organizer: dict = Depends(get_current_organizer),
    engine=Depends(get_engine),
):
    try:
        sub = submission_service.reject_submission(
            engine, submission_id, actor_id=actor_id(organizer), reason=body.reason,
        )
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    if sub is None:
        raise HTTPException(404, "Submission not found")
    return _out(sub)


@router.post("/submissions/{submission_id}/flag")
def flag_submission(
    submission_id: int,
    body: ReasonBody,
    organizer: dict = Depends(get_current_organizer),
    engine=Depends(get_engine),
):
    try:
        sub = submission_service.flag_submission(
            engine, submission_id, actor_id=actor_id(organizer), reason=body.reason,
        )
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    if sub is None:
        raise HTTPException(404, "Submission not found")
    return _out(sub)


@router.post("/submissions/{submission_id}/bonus")
def award_bonus(
    submission_id: int,
    body: BonusBody,
    organizer: dict = Depends(get_current_organizer),
    engine=Depends(get_engine),
):
    try:
        sub = submission_service.award_bonus(
            engine, submission_id,
            actor_id=actor_id(organizer),
            points=body.points,
            reason=body.reason,
        )
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    if sub is None:
        raise HTTPException(404, "Submission not found")
    return _out(sub)


# ---------------------------------------------------------------------------
# Leaderboard operations
# ---------------------------------------------------------------------------
@router.post("/events/{event_id}/recompute")
def recompute_event(
    event_id: int,
    background: bool = Query(False),
    organizer: dict = Depends(get_current_organizer),
    engine=Depends(get_engine),
    queue: RecomputeQueue = Depends(get_recompute_queue),
):
    """Rebuild one event's standing now, or hand it to the background worker."""
    if background:
        queued = queue.request(event_id)
        return {"event_id": event_id, "queued": queued}
    rows = leaderboard_service.recompute_event(engine, event_id)
    return {"event_id": event_id, "entries": len(rows)}


@router.get("/recompute/status")
def recompute_status(
    organizer: dict = Depends(get_current_organizer),
    queue: RecomputeQueue = Depends(get_recompute_queue),
):
    return {
        "running": queue.running,
        "pending": queue.pending(),
        "processed": queue.processed,
        "coalesced": queue.coalesced,
        "failed_events": {str(k): v for k, v in queue.failed_snapshot().items()},
    }


@router.post("/reconcile")
def reconcile(
    body: ReconcileBody,
    organizer: dict = Depends(get_current_organizer),
    engine=Depends(get_engine),
):
    return reconciliation_service.reconcile_leaderboards(engine, body.event_ids)
