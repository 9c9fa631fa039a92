from __future__ import annotations

import json
import logging
from unittest.mock import patch

from lyrics_sync.config import load_config
from lyrics_sync.logging_setup import setup_logging
from lyrics_sync.sync.engine import SyncSettings


def _write_config(xdg, data) -> None:
    (xdg / "lyrics-sync").mkdir(parents=True, exist_ok=True)
    (xdg / "lyrics-sync" / "config.json").write_text(json.dumps(data), encoding="utf-8")


class TestLoadConfig:
    def test_defaults(self, isolated_config):
        cfg = load_config()
        assert cfg.config_dir == isolated_config / "lyrics-sync"
        assert cfg.sync_settings() == SyncSettings()
        assert (cfg.refresh_hz, cfg.context_lines, cfg.use_alt_screen) == (30.0, 1, True)
        assert (cfg.gap_lines, cfg.gap_min_ms, cfg.lrc_last_line_ms) == (True, 7000, 5000)

    def test_env_overrides_defaults(self, monkeypatch):
        monkeypatch.setenv("LYRICS_SYNC_SCROLL_LOOKAHEAD_MS", "250")
        monkeypatch.setenv("LYRICS_SYNC_GAP_LINES", "false")
        monkeypatch.setenv("LYRICS_SYNC_REFRESH_HZ", "12.5")
        cfg = load_config()
        assert cfg.scroll_lookahead_ms == 250
        assert cfg.gap_lines is False
        assert cfg.refresh_hz == 12.5
        assert cfg.sync_settings().scroll_lookahead_ms == 250

    def test_config_file_wins_over_env(self, isolated_config, monkeypatch):
        _write_config(isolated_config, {"max_active_lines": 2, "use_alt_screen": False})
        monkeypatch.setenv("LYRICS_SYNC_MAX_ACTIVE_LINES", "5")
        cfg = load_config()
        assert cfg.max_active_lines == 2
        assert cfg.use_alt_screen is False

    def test_invalid_values_fall_back(self, isolated_config, monkeypatch, caplog):
        _write_config(isolated_config, {"seek_threshold_ms": "soon", "refresh_hz": 0})
        monkeypatch.setenv("LYRICS_SYNC_HIGHLIGHT_LOOKAHEAD_MS", "-3")
        monkeypatch.setenv("LYRICS_SYNC_REFRESH_HZ", "20")
        with caplog.at_level(logging.WARNING, logger="lyrics_sync.config"):
            cfg = load_config()
        assert cfg.seek_threshold_ms == 1000
        assert cfg.highlight_lookahead_ms == 190
        assert cfg.refresh_hz == 20.0
        assert len(caplog.records) == 3

    def test_unreadable_file_is_ignored(self, isolated_config, caplog):
        (isolated_config / "lyrics-sync").mkdir(parents=True)
        (isolated_config / "lyrics-sync" / "config.json").write_text("{oops", encoding="utf-8")
        with caplog.at_level(logging.WARNING, logger="lyrics_sync.config"):
            cfg = load_config()
        assert cfg.max_active_lines == 3
        assert "Ignoring unreadable config file" in caplog.text


class TestSetupLogging:
    def test_debug_flag(self, monkeypatch):
        with patch("lyrics_sync.logging_setup.logging.basicConfig") as basic:
            setup_logging(True)
        assert basic.call_args.kwargs["level"] == logging.DEBUG
        assert basic.call_args.kwargs["format"] == "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("LYRICS_SYNC_LOG_LEVEL", "warning")
        with patch("lyrics_sync.logging_setup.logging.basicConfig") as basic:
            setup_logging(True)
        assert basic.call_args.kwargs["level"] == logging.WARNING

    def test_unknown_env_level_ignored(self, monkeypatch):
        monkeypatch.setenv("LYRICS_SYNC_LOG_LEVEL", "chatty")
        with patch("lyrics_sync.logging_setup.logging.basicConfig") as basic:
            setup_logging(False)
        assert basic.call_args.kwargs["level"] == logging.INFO
