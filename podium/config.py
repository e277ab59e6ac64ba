"""
podium.config — YAML Configuration Loader
===========================================

Reads ``config.yaml`` for service-level settings (identity, paging limits,
recompute worker tuning).  Secrets and the database URL come from the
environment (``.env`` via python-dotenv), never from this file.

Usage::

    from podium.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.service_name)      # "Podium"
    print(cfg.max_page_size)     # 100
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PodiumConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    service_name: str

    # API
    dashboard_port: int
    default_page_size: int = 20
    max_page_size: int = 100

    # Recompute worker
    recompute_max_retries: int = 5
    recompute_retry_base_seconds: float = 0.5

    # Start the PG LISTEN thread for external recompute requests
    listener_enabled: bool = False


def default_config() -> PodiumConfig:
    """Configuration used when no ``config.yaml`` is present (dev/test)."""
    return PodiumConfig(service_name="Podium", dashboard_port=8000)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> PodiumConfig:
    """Read *path* and return a :class:`PodiumConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If the paging limits are inconsistent.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    cfg = PodiumConfig(
        service_name=raw["service_name"],
        dashboard_port=int(raw["dashboard_port"]),
        default_page_size=int(raw.get("default_page_size", 20)),
        max_page_size=int(raw.get("max_page_size", 100)),
        recompute_max_retries=int(raw.get("recompute_max_retries", 5)),
        recompute_retry_base_seconds=float(raw.get("recompute_retry_base_seconds", 0.5)),
        listener_enabled=bool(raw.get("listener_enabled", False)),
    )
    if not 1 <= cfg.default_page_size <= cfg.max_page_size:
        raise ValueError(
            f"default_page_size ({cfg.default_page_size}) must be between 1 "
            f"and max_page_size ({cfg.max_page_size})"
        )
    return cfg
