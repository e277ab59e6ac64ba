"""
tests/test_recompute_queue.py — Coalescing Recompute Worker Tests
===================================================================

The recompute callable is mocked for retry/failure behaviour; one test
runs the real recompute against SQLite.
"""

from __future__ import annotations

import threading
import time
from unittest.mock import MagicMock

from podium.engine.recompute_queue import RecomputeQueue
from podium.engine.trigger import install_recompute_trigger, uninstall_recompute_trigger
from conftest import add_submission, make_event, standings_of


def _queue(recompute=None, **kwargs):
    kwargs.setdefault("retry_base_seconds", 0.0)
    return RecomputeQueue(MagicMock(), recompute=recompute or MagicMock(), **kwargs)


class TestCoalescing:
    def test_duplicate_requests_collapse(self):
        q = _queue()
        assert q.request(1) is True
        assert q.request(2) is True
        assert q.request(1) is False
        assert q.pending() == [1, 2]
        assert q.coalesced == 1
        assert len(q) == 2

    def test_drain_runs_each_event_once(self):
        recompute = MagicMock()
        q = _queue(recompute)
        for event_id in (3, 3, 4, 3):
            q.request(event_id)

        assert q.drain() == 2
        assert [c.args[1] for c in recompute.call_args_list] == [3, 4]
        assert q.processed == 2
        assert len(q) == 0

    def test_request_during_processing_requeues(self):
        q = _queue()

        def _recompute(engine, event_id):
            # A write lands while this event is being recomputed
            if q.processed == 0:
                assert q.request(event_id) is True

        q._recompute = _recompute
        q.request(9)
        assert q.drain() == 2


class TestRetries:
    def test_transient_failure_retries(self):
        recompute = MagicMock(side_effect=[RuntimeError("deadlock"), None])
        q = _queue(recompute, max_retries=3)
        assert q.process(5) is True
        assert recompute.call_count == 2
        assert q.failed_events == {}

    def test_permanent_failure_is_recorded(self):
        recompute = MagicMock(side_effect=RuntimeError("db down"))
        q = _queue(recompute, max_retries=3)
        assert q.process(5) is False
        assert recompute.call_count == 3
        assert "db down" in q.failed_events[5]

    def test_success_clears_failure(self):
        recompute = MagicMock(side_effect=[RuntimeError("db down"), None])
        q = _queue(recompute, max_retries=1)
        assert q.process(5) is False
        assert 5 in q.failed_events
        assert q.process(5) is True
        assert 5 not in q.failed_events

    def test_failed_snapshot_is_a_copy(self):
        q = _queue(MagicMock(side_effect=RuntimeError("db down")), max_retries=1)
        q.process(5)
        snapshot = q.failed_snapshot()
        snapshot.clear()
        assert 5 in q.failed_snapshot()

    def test_failed_snapshot_while_worker_records_failures(self):
        q = _queue(MagicMock(side_effect=RuntimeError("db down")), max_retries=1)
        q.start()
        try:
            for event_id in range(200):
                q.request(event_id)
                # Iterating the copy must never see the dict change size
                assert all(isinstance(k, int) for k in q.failed_snapshot())
            deadline = time.monotonic() + 5
            while len(q.failed_snapshot()) < 200 and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            q.stop()
        assert len(q.failed_snapshot()) == 200

    def test_backoff_is_capped(self):
        q = _queue(retry_base_seconds=1.0, retry_max_seconds=4.0)
        for attempt in range(1, 10):
            assert q._backoff(attempt) <= 4.0 * 1.5


class TestWorkerThread:
    def test_worker_processes_requests(self):
        done = threading.Event()
        recompute = MagicMock(side_effect=lambda engine, event_id: done.set())
        q = _queue(recompute)
        q.start()
        try:
            assert q.running
            q.request(11)
            assert done.wait(timeout=5)
        finally:
            q.stop()
        assert not q.running
        recompute.assert_called_once()

    def test_stop_during_backoff_keeps_event(self):
        started = threading.Event()

        def _fail(engine, event_id):
            started.set()
            raise RuntimeError("boom")

        q = _queue(_fail, max_retries=5, retry_base_seconds=30.0, retry_max_seconds=30.0)
        q.start()
        q.request(21)
        assert started.wait(timeout=5)
        time.sleep(0.05)
        q.stop()
        assert q.pending() == [21]
        assert 21 not in q.failed_events


class TestRealRecompute:
    def test_repairs_stale_standing(self, db_engine):
        event_id, (g1, _g2) = make_event(db_engine)
        uninstall_recompute_trigger()
        try:
            add_submission(db_engine, event_id, g1, 1, 30)
        finally:
            install_recompute_trigger()
        assert standings_of(db_engine, event_id) == []

        q = RecomputeQueue(db_engine)
        q.request(event_id)
        assert q.drain() == 1
        assert standings_of(db_engine, event_id) == [(1, 30, 1, 1)]
