"""
tests/test_config.py — YAML Configuration Loader Tests
========================================================
"""

from __future__ import annotations

import pytest

from podium.config import PodiumConfig, default_config, load_config
from podium.constants import rank_badge


def _write(tmp_path, body: str):
    path = tmp_path / "config.yaml"
    path.write_text(body, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_minimal_file_uses_defaults(self, tmp_path):
        cfg = load_config(_write(tmp_path, "service_name: Arena\ndashboard_port: 9000\n"))
        assert cfg == PodiumConfig(service_name="Arena", dashboard_port=9000)

    def test_all_keys(self, tmp_path):
        cfg = load_config(_write(tmp_path, (
            "service_name: Arena\n"
            "dashboard_port: 9000\n"
            "default_page_size: 10\n"
            "max_page_size: 50\n"
            "recompute_max_retries: 2\n"
            "recompute_retry_base_seconds: 1.5\n"
            "listener_enabled: true\n"
        )))
        assert cfg.default_page_size == 10
        assert cfg.max_page_size == 50
        assert cfg.recompute_max_retries == 2
        assert cfg.recompute_retry_base_seconds == 1.5
        assert cfg.listener_enabled is True

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "nope.yaml")

    def test_missing_required_key(self, tmp_path):
        with pytest.raises(KeyError):
            load_config(_write(tmp_path, "dashboard_port: 9000\n"))

    @pytest.mark.parametrize("default, maximum", [(0, 10), (20, 10)])
    def test_inconsistent_paging(self, tmp_path, default, maximum):
        body = (
            "service_name: Arena\ndashboard_port: 9000\n"
            f"default_page_size: {default}\nmax_page_size: {maximum}\n"
        )
        with pytest.raises(ValueError, match="default_page_size"):
            load_config(_write(tmp_path, body))

    def test_config_is_frozen(self):
        cfg = default_config()
        with pytest.raises(AttributeError):
            cfg.max_page_size = 1


class TestRankBadge:
    @pytest.mark.parametrize("rank, badge", [(1, "🥇"), (2, "🥈"), (3, "🥉"), (4, None), (0, None)])
    def test_badges(self, rank, badge):
        assert rank_badge(rank) == badge
