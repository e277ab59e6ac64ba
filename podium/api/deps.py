"""
podium.api.deps — FastAPI dependency injection
================================================
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from podium.config import PodiumConfig, default_config, load_config
from podium.database.engine import create_db_engine
from podium.engine.recompute_queue import RecomputeQueue

_WEAK_SECRETS = frozenset({
    "podium-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> PodiumConfig:
    path = Path(os.getenv("PODIUM_CONFIG", "config.yaml"))
    if not path.exists():
        return default_config()
    return load_config(path)


@lru_cache(maxsize=1)
def get_recompute_queue() -> RecomputeQueue:
    cfg = get_config()
    return RecomputeQueue(
        get_engine(),
        max_retries=cfg.recompute_max_retries,
        retry_base_seconds=cfg.recompute_retry_base_seconds,
    )


def get_session(engine: Annotated[Engine, Depends(get_engine)]):
    with Session(engine) as session:
        yield session


def get_current_organizer(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Validate JWT and return the organizer payload. Raises 401/403."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if not payload.get("is_organizer"):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not an organizer")
    return payload


def actor_id(organizer: dict) -> int:
    """Numeric id of the organizer behind a validated token."""
    try:
        return int(organizer["sub"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Token has no numeric subject")
