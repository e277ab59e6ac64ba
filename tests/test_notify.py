"""
tests/test_notify.py — Leaderboard Change Feed Tests
======================================================

Payload parsing and listener routing without a real PG connection.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy.orm import Session

from podium.engine.notify import (
    CHANGED_CHANNEL,
    ChangeListener,
    notify_before_commit,
    parse_event_payload,
    send_recompute_request,
)


class TestParsePayload:
    @pytest.mark.parametrize("payload, expected", [("12", 12), (" 7 ", 7)])
    def test_valid(self, payload, expected):
        assert parse_event_payload(payload) == expected

    @pytest.mark.parametrize("payload", ["", "abc", "0", "-3", "1.5", None])
    def test_invalid(self, payload):
        assert parse_event_payload(payload) is None


class TestChangeListener:
    @pytest.fixture
    def listener(self):
        return ChangeListener(MagicMock(), on_event=MagicMock())

    def test_payload_routed_to_callback(self, listener):
        listener.handle_payload("42")
        listener._on_event.assert_called_once_with(42)

    def test_bad_payload_ignored(self, listener):
        listener.handle_payload("drop table")
        listener._on_event.assert_not_called()

    def test_initial_health(self, listener):
        assert listener.healthy is False
        assert listener.failed is False

    def test_failed_listener_is_unhealthy(self, listener):
        listener._healthy = True
        listener._failed = True
        assert listener.healthy is False

    def test_backoff_capped(self):
        listener = ChangeListener(MagicMock(), on_event=MagicMock(), base_backoff=1.0, max_backoff=8.0)
        for attempt in range(1, 12):
            assert 0 < listener.backoff_for(attempt) <= 8.0 * 1.5


class TestNotifyNoOpOffPostgres:
    def test_notify_before_commit_skips_sqlite(self, db_engine):
        with Session(db_engine) as session:
            session.execute = MagicMock()
            notify_before_commit(session, 1)
            session.execute.assert_not_called()

    def test_send_recompute_request_skips_sqlite(self, db_engine):
        send_recompute_request(db_engine, 1)

    def test_notify_on_postgres(self):
        session = MagicMock()
        session.get_bind.return_value.dialect.name = "postgresql"
        notify_before_commit(session, 5)
        (_stmt, params), _kw = session.execute.call_args
        assert params == {"channel": CHANGED_CHANNEL, "payload": "5"}
