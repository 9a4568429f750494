"""Tests for session_monitor.services.config_manager."""

import pytest

from session_monitor.services.config_manager import (
    CUSTOM_SESSION_DIR_KEY,
    ConfigManager,
    MonitorConfig,
)


@pytest.fixture
def config(qapp, tmp_path):
    """Create a ConfigManager with isolated QSettings."""
    from PySide6.QtCore import QSettings
    QSettings.setDefaultFormat(QSettings.IniFormat)
    QSettings.setPath(QSettings.IniFormat, QSettings.UserScope, str(tmp_path / "config"))
    return ConfigManager()


# ---------------------------------------------------------------------------
# 1. Typed getters and setters
# ---------------------------------------------------------------------------

def test_default_int(config):
    assert config.get_int("monitor/discoveryIntervalMs") == 30_000


def test_set_get_string(config):
    config.set_string("paths/projectsRoot", "/custom/projects")
    assert config.get_string("paths/projectsRoot") == "/custom/projects"


def test_set_get_int(config):
    config.set_int("monitor/switchCooldownMs", 1234)
    assert config.get_int("monitor/switchCooldownMs") == 1234


def test_set_get_bool(config):
    assert config.debug_logging() is False
    config.set_bool("advanced/debugLogging", True)
    assert config.debug_logging() is True


def test_invalid_int_falls_back_to_default(config):
    config.set_string("stats/maxTimelineEvents", "lots")
    assert config.get_int("stats/maxTimelineEvents") == 100


def test_settings_changed_signal(config):
    received = []
    config.settings_changed.connect(received.append)
    config.set_int("monitor/newSessionDebounceMs", 250)
    assert received == ["monitor/newSessionDebounceMs"]


# ---------------------------------------------------------------------------
# 2. MonitorConfig
# ---------------------------------------------------------------------------

def test_defaults():
    cfg = MonitorConfig()
    assert cfg.discovery_interval_ms == 30_000
    assert cfg.fast_discovery_interval_ms == 5_000
    assert cfg.fast_discovery_duration_ms == 120_000
    assert cfg.file_change_debounce_ms == 100
    assert cfg.new_session_debounce_ms == 500
    assert cfg.switch_cooldown_ms == 5_000
    assert cfg.active_session_threshold_ms == 300_000
    assert cfg.max_timeline_events == 100
    assert cfg.max_seen_hashes == 10_000
    assert cfg.max_latency_records == 100
    assert cfg.stale_request_timeout_ms == 600_000
    assert cfg.context_window_size == 200_000
    assert cfg.projects_root.endswith("projects")


def test_load_monitor_config_overrides(config, tmp_path):
    config.set_int("monitor/switchCooldownMs", 9_000)
    config.set_int("stats/contextWindowSize", 1_000_000)
    config.set_string("paths/projectsRoot", str(tmp_path / "p"))
    cfg = config.load_monitor_config()
    assert cfg.switch_cooldown_ms == 9_000
    assert cfg.context_window_size == 1_000_000
    assert cfg.projects_root == str(tmp_path / "p")
    assert cfg.discovery_interval_ms == 30_000


def test_load_monitor_config_ignores_non_positive(config):
    config.set_int("monitor/fileChangeDebounceMs", 0)
    config.set_int("stats/maxSeenHashes", -5)
    cfg = config.load_monitor_config()
    assert cfg.file_change_debounce_ms == 100
    assert cfg.max_seen_hashes == 10_000


# ---------------------------------------------------------------------------
# 3. Custom session directory
# ---------------------------------------------------------------------------

def test_custom_session_dir_roundtrip(config):
    assert config.custom_session_dir() is None
    config.set_custom_session_dir("/data/sessions")
    assert config.custom_session_dir() == "/data/sessions"


def test_custom_session_dir_survives_new_instance(config):
    config.set_custom_session_dir("/data/sessions")
    assert ConfigManager().custom_session_dir() == "/data/sessions"


def test_clear_custom_session_dir(config):
    received = []
    config.settings_changed.connect(received.append)
    config.set_custom_session_dir("/data/sessions")
    config.clear_custom_session_dir()
    assert config.custom_session_dir() is None
    assert received == [CUSTOM_SESSION_DIR_KEY, CUSTOM_SESSION_DIR_KEY]
