"""
podium.engine.recompute_queue — Coalescing Recompute Worker
=============================================================

Out-of-band path for leaderboard recomputation: NOTIFY requests, operator
"recompute now" buttons, reconciliation repairs.  In-transaction
recomputation (see :mod:`podium.engine.trigger`) does not go through here.

Properties:

* **Idempotent requests** — asking for the same event twice before the
  worker reaches it yields one recompute.  Only the latest submission state
  matters, not how many mutations happened.
* **No lost updates** — an event requested *while* it is being recomputed
  is queued again, since the running computation may have read an older
  snapshot.
* **Retry, then surface** — failures retry with exponential backoff +
  jitter.  After ``max_retries`` attempts the event id lands in
  :attr:`RecomputeQueue.failed_events` and is logged at ERROR; nothing is
  dropped silently.
"""

from __future__ import annotations

import logging
import random
import threading
from collections import deque
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

RecomputeFn = Callable[["Engine", int], object]


class RecomputeQueue:
    """Thread-safe FIFO of event ids with per-event coalescing."""

    def __init__(
        self,
        engine: Engine,
        *,
        recompute: RecomputeFn | None = None,
        max_retries: int = 5,
        retry_base_seconds: float = 0.5,
        retry_max_seconds: float = 30.0,
    ) -> None:
        if recompute is None:
            from podium.services.leaderboard_service import recompute_event
            recompute = recompute_event

        self._engine = engine
        self._recompute = recompute
        self.max_retries = max(1, max_retries)
        self.retry_base_seconds = retry_base_seconds
        self.retry_max_seconds = retry_max_seconds

        self._order: deque[int] = deque()
        self._queued: set[int] = set()
        self._cond = threading.Condition()
        self._shutdown_event = threading.Event()
        self._thread: threading.Thread | None = None

        self.processed = 0
        self.coalesced = 0
        self.failed_events: dict[int, str] = {}

    # -------------------------------------------------------------------
    # Producer side
    # -------------------------------------------------------------------
    def request(self, event_id: int) -> bool:
        """Queue *event_id*.  Returns False if it was already waiting."""
        with self._cond:
            if event_id in self._queued:
                self.coalesced += 1
                return False
            self._queued.add(event_id)
            self._order.append(event_id)
            self._cond.notify()
        return True

    def pending(self) -> list[int]:
        with self._cond:
            return list(self._order)

    def __len__(self) -> int:
        with self._cond:
            return len(self._order)

    def failed_snapshot(self) -> dict[int, str]:
        """Copy of the permanently failed events, safe to read off the worker thread."""
        with self._cond:
            return dict(self.failed_events)

    # -------------------------------------------------------------------
    # Consumer side
    # -------------------------------------------------------------------
    def _pop(self, timeout: float | None) -> int | None:
        with self._cond:
            if not self._order and timeout:
                self._cond.wait(timeout=timeout)
            if not self._order:
                return None
            event_id = self._order.popleft()
            self._queued.discard(event_id)
            return event_id

    def _backoff(self, attempt: int) -> float:
        backoff = min(self.retry_base_seconds * (2 ** (attempt - 1)), self.retry_max_seconds)
        return backoff + random.uniform(0, backoff * 0.5)

    def process(self, event_id: int) -> bool:
        """Recompute one event with retries.  Returns True on success."""
        for attempt in range(1, self.max_retries + 1):
            try:
                self._recompute(self._engine, event_id)
            except Exception as exc:
                if attempt >= self.max_retries:
                    with self._cond:
                        self.failed_events[event_id] = repr(exc)
                    logger.error(
                        "Leaderboard recompute for event %d failed after %d attempts: %r",
                        event_id, attempt, exc,
                    )
                    return False
                wait = self._backoff(attempt)
                logger.warning(
                    "Leaderboard recompute for event %d failed (attempt %d/%d), "
                    "retrying in %.2fs",
                    event_id, attempt, self.max_retries, wait, exc_info=True,
                )
                if self._shutdown_event.wait(timeout=wait):
                    # Shutting down: hand the event back instead of dropping it
                    self.request(event_id)
                    return False
            else:
                with self._cond:
                    self.processed += 1
                    self.failed_events.pop(event_id, None)
                return True
        return False

    def drain(self) -> int:
        """Process everything currently queued on the calling thread.

        Returns the number of successful recomputes.
        """
        done = 0
        while (event_id := self._pop(timeout=None)) is not None:
            if self.process(event_id):
                done += 1
        return done

    # -------------------------------------------------------------------
    # Worker thread
    # -------------------------------------------------------------------
    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._shutdown_event.clear()

        def _worker() -> None:
            while not self._shutdown_event.is_set():
                event_id = self._pop(timeout=1.0)
                if event_id is None:
                    continue
                try:
                    self.process(event_id)
                except Exception:
                    logger.exception("Recompute worker error for event %d", event_id)

        thread = threading.Thread(target=_worker, daemon=True, name="leaderboard-recompute")
        self._thread = thread
        thread.start()
        logger.info("Leaderboard recompute worker started")

    def stop(self, timeout: float = 5.0) -> None:
        self._shutdown_event.set()
        with self._cond:
            self._cond.notify_all()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
            logger.info(
                "Leaderboard recompute worker stopped (%d still queued)", len(self),
            )
        self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
