"""
podium.engine.notify — Leaderboard Change Feed over PG LISTEN/NOTIFY
======================================================================

Two PostgreSQL channels:

``leaderboard_changed``
    Emitted inside the recompute transaction (fires atomically on commit)
    with the event id as payload.  Dashboards and caches outside this
    process listen here to know when to re-fetch.

``leaderboard_recompute``
    Requests *into* this service.  Writers that cannot go through the ORM
    (imports, SQL consoles) send the event id here; a :class:`ChangeListener`
    hands it to the :class:`~podium.engine.recompute_queue.RecomputeQueue`.

Both are no-ops on non-PostgreSQL engines (tests run on SQLite).
"""

from __future__ import annotations

import logging
import random
import select as _select
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.orm import Session

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

CHANGED_CHANNEL = "leaderboard_changed"
RECOMPUTE_CHANNEL = "leaderboard_recompute"


def _is_postgres(bind) -> bool:
    return bind is not None and bind.dialect.name == "postgresql"


def notify_before_commit(session: Session, event_id: int) -> None:
    """Queue a ``leaderboard_changed`` NOTIFY in the current transaction.

    PostgreSQL delivers it only if the transaction commits, so listeners
    never hear about a replace that was rolled back.
    """
    if not _is_postgres(session.get_bind()):
        return
    session.execute(
        text("SELECT pg_notify(:channel, :payload)"),
        {"channel": CHANGED_CHANNEL, "payload": str(event_id)},
    )


def send_recompute_request(engine: Engine, event_id: int) -> None:
    """Ask the running service to recompute *event_id* (separate connection)."""
    if not _is_postgres(engine):
        logger.debug("Recompute request for event %s skipped (not PostgreSQL)", event_id)
        return
    with engine.connect() as conn:
        conn.execute(
            text("SELECT pg_notify(:channel, :payload)"),
            {"channel": RECOMPUTE_CHANNEL, "payload": str(event_id)},
        )
        conn.commit()


def parse_event_payload(payload: str) -> int | None:
    """Return the event id carried by a NOTIFY *payload*, or ``None``."""
    try:
        event_id = int(payload.strip())
    except (AttributeError, ValueError):
        logger.warning("Ignoring malformed recompute payload: %r", payload)
        return None
    if event_id <= 0:
        logger.warning("Ignoring non-positive event id in payload: %r", payload)
        return None
    return event_id


class ChangeListener:
    """Background LISTEN thread feeding recompute requests to a callback.

    Uses a raw psycopg2 connection + ``select()`` so no SQLAlchemy pool
    connection is held.  Reconnects with exponential backoff + jitter and
    gives up after ``max_reconnect_attempts`` consecutive failures.

    Usage::

        listener = ChangeListener(engine, on_event=queue.request)
        listener.start()
        ...
        listener.stop()
    """

    def __init__(
        self,
        engine: Engine,
        on_event: Callable[[int], object],
        *,
        channel: str = RECOMPUTE_CHANNEL,
        max_reconnect_attempts: int = 10,
        base_backoff: float = 1.0,
        max_backoff: float = 60.0,
    ) -> None:
        self._engine = engine
        self._on_event = on_event
        self._channel = channel
        self._max_reconnect_attempts = max_reconnect_attempts
        self._base_backoff = base_backoff
        self._max_backoff = max_backoff

        self._healthy = False
        self._failed = False
        self._thread: threading.Thread | None = None
        self._shutdown_event = threading.Event()

    @property
    def healthy(self) -> bool:
        """Return True if the LISTEN thread is alive and connected."""
        return self._healthy and not self._failed

    @property
    def failed(self) -> bool:
        """Return True if the listener exhausted reconnect attempts."""
        return self._failed

    def handle_payload(self, payload: str) -> None:
        event_id = parse_event_payload(payload)
        if event_id is None:
            return
        logger.debug("Recompute requested via NOTIFY for event %d", event_id)
        self._on_event(event_id)

    def backoff_for(self, attempt: int) -> float:
        backoff = min(self._base_backoff * (2 ** (attempt - 1)), self._max_backoff)
        return backoff + random.uniform(0, backoff * 0.5)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._shutdown_event.clear()
        thread = threading.Thread(
            target=self._listen_loop, daemon=True, name="pg-leaderboard-listener",
        )
        self._thread = thread
        thread.start()
        logger.info("PG leaderboard listener thread started")

    def stop(self) -> None:
        """Signal the listener thread to stop and wait for it to exit."""
        self._shutdown_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=5)
            logger.info("PG leaderboard listener thread stopped")

    def _listen_loop(self) -> None:
        import psycopg2

        # str(engine.url) masks the password; psycopg2 needs the real one.
        raw_url = self._engine.url.render_as_string(hide_password=False)
        dsn = raw_url.replace("postgresql+psycopg2://", "postgresql://")
        attempt = 0

        while not self._shutdown_event.is_set():
            conn = None
            try:
                conn = psycopg2.connect(dsn)
                conn.set_isolation_level(0)  # autocommit
                cur = conn.cursor()
                cur.execute(f"LISTEN {self._channel};")
                logger.info("PG LISTEN started on channel '%s'", self._channel)

                attempt = 0
                self._healthy = True

                while not self._shutdown_event.is_set():
                    if _select.select([conn], [], [], 5.0) == ([], [], []):
                        continue
                    conn.poll()
                    while conn.notifies:
                        notify = conn.notifies.pop(0)
                        try:
                            self.handle_payload(notify.payload or "")
                        except Exception:
                            logger.exception(
                                "Error handling NOTIFY on '%s': %s",
                                notify.channel, notify.payload,
                            )

            except Exception:
                self._healthy = False
                attempt += 1

                if attempt >= self._max_reconnect_attempts:
                    logger.critical(
                        "PG LISTEN exhausted %d retries. "
                        "External recompute requests disabled.",
                        self._max_reconnect_attempts,
                    )
                    self._failed = True
                    break

                wait = self.backoff_for(attempt)
                logger.exception(
                    "PG LISTEN connection lost (attempt %d/%d). "
                    "Reconnecting in %.1fs…",
                    attempt, self._max_reconnect_attempts, wait,
                )
                if self._shutdown_event.wait(timeout=wait):
                    break
            finally:
                if conn is not None:
                    try:
                        conn.close()
                    except Exception:
                        logger.debug("Error closing listener connection", exc_info=True)

        self._healthy = False
