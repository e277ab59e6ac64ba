"""
Podium — Event Leaderboard Computation Engine
===============================================
Turns the stream of participant submissions of an event-gamification
console into a consistent, ranked standing per event, kept correct under
concurrent writes and served to dashboards and public leaderboard views.

Package layout::

    podium/
    ├── config.py            # YAML → typed Python config
    ├── constants.py         # Rank badges
    ├── database/
    │   ├── engine.py        # SQLAlchemy engine, session helper, async bridge
    │   └── models.py        # events, games, submissions, leaderboard_entries, review_log
    ├── engine/
    │   ├── standings.py     # Aggregator: approved submissions → ranked rows
    │   ├── trigger.py       # Session events: submission write → recompute on commit
    │   ├── recompute_queue.py  # Coalescing, retrying background recompute worker
    │   └── notify.py        # PG LISTEN/NOTIFY change feed
    ├── services/
    │   ├── leaderboard_service.py     # Atomic replace + read path
    │   ├── submission_service.py      # Audited submission writes & review actions
    │   └── reconciliation_service.py  # Drift detection & repair
    └── api/
        ├── main.py          # FastAPI app
        ├── deps.py          # Engine / session / organizer JWT dependencies
        └── routes/          # Public leaderboard + organizer endpoints
"""

__version__ = "0.1.0"
