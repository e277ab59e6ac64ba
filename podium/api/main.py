"""
podium.api.main — FastAPI application entry point
===================================================

Run with::

    uvicorn podium.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from podium.api.deps import get_config, get_engine, get_recompute_queue  # noqa: E402
from podium.api.routes.organizer import router as organizer_router  # noqa: E402
from podium.api.routes.public import router as public_router  # noqa: E402
from podium.engine.notify import ChangeListener  # noqa: E402
from podium.engine.trigger import install_recompute_trigger  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Install the trigger and run the background recompute machinery."""
    install_recompute_trigger()

    cfg = get_config()
    engine = get_engine()
    queue = get_recompute_queue()
    queue.start()

    listener = None
    if cfg.listener_enabled:
        listener = ChangeListener(engine, on_event=queue.request)
        listener.start()
    app.state.listener = listener

    logger.info("%s API started — engine ready (%s)", cfg.service_name, engine.url.database)
    yield

    if listener is not None:
        listener.stop()
    queue.stop()
    logger.info("%s API shutting down", cfg.service_name)


app = FastAPI(
    title="Podium Leaderboard API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(public_router, prefix="/api")
app.include_router(organizer_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}


@app.get("/api/health/recompute")
def recompute_health():
    """Worker and listener status for uptime checks."""
    queue = get_recompute_queue()
    listener = getattr(app.state, "listener", None)
    return {
        "worker_running": queue.running,
        "queued": len(queue),
        "failed_events": len(queue.failed_snapshot()),
        "listener": None if listener is None else {
            "healthy": listener.healthy,
            "failed": listener.failed,
        },
    }
