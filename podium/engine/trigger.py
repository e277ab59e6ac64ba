"""
podium.engine.trigger — Submission Mutation Observer
======================================================

Every write to ``submissions`` recomputes the leaderboard of the event it
touched, inside the same transaction, before the commit is allowed to
finish.  A submission change therefore never becomes visible without the
matching leaderboard replace having run alongside it.

How it hooks in (SQLAlchemy session events on :class:`Session`):

    before_flush      collect affected event ids from new / dirty / deleted
                      Submission objects (OLD event_id on delete, NEW on
                      insert/update, both when an update moves a row)
    do_orm_execute    collect event ids hit by bulk ``insert(Submission)`` /
                      ``update(Submission)`` / ``delete(Submission)``
                      statements (rows are matched before and after an
                      update, so a row moved between events marks both)
    before_commit     flush, then replace the standing of every collected
                      event in ascending id order
    after_soft_rollback
                      forget anything collected by the rolled-back work

Updates only count when ``status``, ``score`` or ``event_id`` changed;
editing feedback text does not recompute anything.
"""

from __future__ import annotations

import logging

from sqlalchemy import event, inspect, select
from sqlalchemy.orm import ORMExecuteState, Session

from podium.database.models import Submission

logger = logging.getLogger(__name__)

PENDING_KEY = "podium.pending_recompute"

# Columns whose change alters a leaderboard
WATCHED_ATTRS: tuple[str, ...] = ("status", "score", "event_id")


def _pending(session: Session) -> set[int]:
    return session.info.setdefault(PENDING_KEY, set())


def mark_event_dirty(session: Session, event_id: int | None) -> None:
    """Queue *event_id* for recomputation when *session* commits."""
    if event_id is not None:
        _pending(session).add(event_id)


def pending_event_ids(session: Session) -> set[int]:
    """Events the next commit of *session* will recompute."""
    return set(session.info.get(PENDING_KEY, ()))


def _previous_event_id(sub: Submission) -> int | None:
    history = inspect(sub).attrs.event_id.history
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return sub.event_id


def _changed_watched(sub: Submission) -> bool:
    state = inspect(sub)
    return any(state.attrs[name].history.has_changes() for name in WATCHED_ATTRS)


def collect_affected_events(session: Session) -> set[int]:
    """Return the event ids touched by the pending flush of *session*."""
    affected: set[int] = set()

    for obj in session.new:
        if isinstance(obj, Submission):
            affected.add(obj.event_id)

    for obj in session.deleted:
        if isinstance(obj, Submission):
            affected.add(_previous_event_id(obj))

    for obj in session.dirty:
        if not isinstance(obj, Submission) or not _changed_watched(obj):
            continue
        affected.add(obj.event_id)
        previous = _previous_event_id(obj)
        if previous != obj.event_id:
            affected.add(previous)

    affected.discard(None)
    return affected


# ---------------------------------------------------------------------------
# Session event handlers
# ---------------------------------------------------------------------------
def _before_flush(session: Session, flush_context, instances) -> None:
    affected = collect_affected_events(session)
    if affected:
        _pending(session).update(affected)
        logger.debug("Submission flush touched events %s", sorted(affected))


def _inserted_event_ids(orm_execute_state: ORMExecuteState) -> set[int]:
    """Event ids carried by a bulk ``insert(Submission)``.

    Rows arrive either as execute() parameters or inline via ``.values()``;
    multi-row ``.values()`` binds are named ``event_id_m0``, ``event_id_m1``...
    """
    params = orm_execute_state.parameters
    rows = params if isinstance(params, (list, tuple)) else [params or {}]
    found = {row.get("event_id") for row in rows}

    compiled = orm_execute_state.statement.compile().params
    for key, value in compiled.items():
        if key == "event_id" or key.startswith("event_id_m"):
            found.add(value)
    found.discard(None)
    return found


def _capture_bulk_writes(orm_execute_state: ORMExecuteState):
    state = orm_execute_state
    if not (state.is_insert or state.is_update or state.is_delete):
        return None
    mapper = state.bind_mapper
    if mapper is None or mapper.class_ is not Submission:
        return None

    session = state.session
    if state.is_insert:
        result = state.invoke_statement()
        _pending(session).update(_inserted_event_ids(state))
        return result

    where = state.statement.whereclause
    query = select(Submission.id, Submission.event_id)
    if where is not None:
        query = query.where(where)
    before = session.execute(query).all()
    touched = {event_id for _sub_id, event_id in before}

    result = state.invoke_statement()
    if state.is_update and before:
        # The update may have moved rows out of its own WHERE clause
        ids = [sub_id for sub_id, _event_id in before]
        touched.update(session.scalars(
            select(Submission.event_id).distinct().where(Submission.id.in_(ids))
        ).all())
    _pending(session).update(touched)
    return result


def _before_commit(session: Session) -> None:
    from podium.services.leaderboard_service import replace_event_standings

    session.flush()
    pending = session.info.pop(PENDING_KEY, None)
    while pending:
        for event_id in sorted(pending):
            replace_event_standings(session, event_id)
        session.flush()
        pending = session.info.pop(PENDING_KEY, None)


def _after_soft_rollback(session: Session, previous_transaction) -> None:
    if previous_transaction.parent is not None:
        # Savepoint rollback; the outer transaction still owns its events
        return
    dropped = session.info.pop(PENDING_KEY, None)
    if dropped:
        logger.debug("Rollback discarded recompute of events %s", sorted(dropped))


_HANDLERS = (
    ("before_flush", _before_flush),
    ("do_orm_execute", _capture_bulk_writes),
    ("before_commit", _before_commit),
    ("after_soft_rollback", _after_soft_rollback),
)


def install_recompute_trigger(target: type[Session] | Session = Session) -> None:
    """Attach the observer to *target* (every :class:`Session` by default).

    Calling it again for the same target is a no-op.
    """
    for identifier, handler in _HANDLERS:
        if not event.contains(target, identifier, handler):
            event.listen(target, identifier, handler)
    logger.debug("Leaderboard recompute trigger installed on %r", target)


def uninstall_recompute_trigger(target: type[Session] | Session = Session) -> None:
    """Detach the observer.  Used by maintenance scripts and tests."""
    for identifier, handler in _HANDLERS:
        if event.contains(target, identifier, handler):
            event.remove(target, identifier, handler)
