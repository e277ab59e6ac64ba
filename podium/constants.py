"""
podium.constants — Shared Constants & Helpers
===============================================

Presentation constants shared by the API and anything rendering standings.
"""

from __future__ import annotations

RANK_BADGES: list[str] = ["\U0001f947", "\U0001f948", "\U0001f949"]  # 🥇🥈🥉


def rank_badge(rank: int) -> str | None:
    """Medal emoji for podium ranks 1–3, otherwise None."""
    if 1 <= rank <= len(RANK_BADGES):
        return RANK_BADGES[rank - 1]
    return None
