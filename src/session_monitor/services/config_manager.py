"""Monitor configuration: operational knobs and the persisted custom directory."""

import logging
from dataclasses import dataclass, field, fields

from PySide6.QtCore import QObject, Signal, QSettings

from session_monitor.services.session_locator import (
    default_projects_root,
    default_scratch_root,
)

logger = logging.getLogger(__name__)

CUSTOM_SESSION_DIR_KEY = "session/customSessionDir"
DEBUG_LOGGING_KEY = "advanced/debugLogging"

# Default values
DEFAULTS = {
    "monitor/discoveryIntervalMs": 30_000,
    "monitor/fastDiscoveryIntervalMs": 5_000,
    "monitor/fastDiscoveryDurationMs": 120_000,
    "monitor/fileChangeDebounceMs": 100,
    "monitor/newSessionDebounceMs": 500,
    "monitor/switchCooldownMs": 5_000,
    "monitor/activeSessionThresholdMs": 300_000,
    "monitor/activityPollIntervalMs": 2_000,
    "stats/maxTimelineEvents": 100,
    "stats/maxSeenHashes": 10_000,
    "stats/maxLatencyRecords": 100,
    "stats/staleRequestTimeoutMs": 600_000,
    "stats/contextWindowSize": 200_000,
    "stats/usageWindowMs": 300_000,
    "stats/maxErrorDetails": 50,
    "paths/projectsRoot": "",
    "paths/scratchRoot": "",
    CUSTOM_SESSION_DIR_KEY: "",
    DEBUG_LOGGING_KEY: False,
}


@dataclass
class MonitorConfig:
    """Every timing and capacity knob of the monitor, with its default."""
    discovery_interval_ms: int = 30_000
    fast_discovery_interval_ms: int = 5_000
    fast_discovery_duration_ms: int = 120_000
    file_change_debounce_ms: int = 100
    new_session_debounce_ms: int = 500
    switch_cooldown_ms: int = 5_000
    active_session_threshold_ms: int = 300_000
    activity_poll_interval_ms: int = 2_000
    max_timeline_events: int = 100
    max_seen_hashes: int = 10_000
    max_latency_records: int = 100
    stale_request_timeout_ms: int = 600_000
    context_window_size: int = 200_000
    usage_window_ms: int = 300_000
    max_error_details: int = 50
    projects_root: str = field(default_factory=lambda: str(default_projects_root()))
    scratch_root: str = field(default_factory=lambda: str(default_scratch_root()))


# MonitorConfig field → settings key
_FIELD_KEYS = {
    "discovery_interval_ms": "monitor/discoveryIntervalMs",
    "fast_discovery_interval_ms": "monitor/fastDiscoveryIntervalMs",
    "fast_discovery_duration_ms": "monitor/fastDiscoveryDurationMs",
    "file_change_debounce_ms": "monitor/fileChangeDebounceMs",
    "new_session_debounce_ms": "monitor/newSessionDebounceMs",
    "switch_cooldown_ms": "monitor/switchCooldownMs",
    "active_session_threshold_ms": "monitor/activeSessionThresholdMs",
    "activity_poll_interval_ms": "monitor/activityPollIntervalMs",
    "max_timeline_events": "stats/maxTimelineEvents",
    "max_seen_hashes": "stats/maxSeenHashes",
    "max_latency_records": "stats/maxLatencyRecords",
    "stale_request_timeout_ms": "stats/staleRequestTimeoutMs",
    "context_window_size": "stats/contextWindowSize",
    "usage_window_ms": "stats/usageWindowMs",
    "max_error_details": "stats/maxErrorDetails",
    "projects_root": "paths/projectsRoot",
    "scratch_root": "paths/scratchRoot",
}


class ConfigManager(QObject):
    """QSettings-backed configuration for the monitor."""

    settings_changed = Signal(str)  # key

    def __init__(self, parent=None, settings: QSettings | None = None):
        super().__init__(parent)
        self._settings = settings if settings is not None else QSettings()

    def get_string(self, key: str) -> str:
        val = self._settings.value(key, DEFAULTS.get(key, ""))
        return "" if val is None else str(val)

    def get_int(self, key: str) -> int:
        val = self._settings.value(key, DEFAULTS.get(key, 0))
        try:
            return int(val)
        except (ValueError, TypeError):
            return DEFAULTS.get(key, 0)

    def get_bool(self, key: str) -> bool:
        val = self._settings.value(key, DEFAULTS.get(key, False))
        if isinstance(val, bool):
            return val
        if isinstance(val, str):
            return val.lower() in ("true", "1", "yes")
        return bool(val)

    def set_string(self, key: str, value: str):
        self._settings.setValue(key, value)
        self.settings_changed.emit(key)

    def set_int(self, key: str, value: int):
        self._settings.setValue(key, value)
        self.settings_changed.emit(key)

    def set_bool(self, key: str, value: bool):
        self._settings.setValue(key, value)
        self.settings_changed.emit(key)

    def load_monitor_config(self) -> MonitorConfig:
        """Build a MonitorConfig from stored values, falling back to defaults."""
        config = MonitorConfig()
        for f in fields(MonitorConfig):
            key = _FIELD_KEYS[f.name]
            if f.type in (int, "int"):
                value = self.get_int(key)
                if value <= 0:
                    logger.warning("Ignoring non-positive setting %s=%s", key, value)
                    continue
                setattr(config, f.name, value)
            else:
                value = self.get_string(key)
                if value:
                    setattr(config, f.name, value)
        return config

    def debug_logging(self) -> bool:
        return self.get_bool(DEBUG_LOGGING_KEY)

    # Custom session directory persistence
    def custom_session_dir(self) -> str | None:
        value = self.get_string(CUSTOM_SESSION_DIR_KEY)
        return value or None

    def set_custom_session_dir(self, path: str):
        self.set_string(CUSTOM_SESSION_DIR_KEY, path)
        self._settings.sync()

    def clear_custom_session_dir(self):
        self._settings.remove(CUSTOM_SESSION_DIR_KEY)
        self._settings.sync()
        self.settings_changed.emit(CUSTOM_SESSION_DIR_KEY)
