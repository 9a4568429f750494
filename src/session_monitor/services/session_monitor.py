"""Top-level session monitor: locate, attach, follow and switch sessions."""

import logging
import os
import time
from datetime import datetime, timezone
from typing import Callable

from PySide6.QtCore import QObject, Signal

from session_monitor.services.config_manager import ConfigManager, MonitorConfig
from session_monitor.services.file_watcher import DirectoryWatcher
from session_monitor.services.lifecycle import Lifecycle, MonitorState
from session_monitor.services.session_locator import (
    extract_session_label,
    find_active_session,
    find_all_sessions,
    find_sessions_in_directory,
    get_session_diagnostics,
    get_session_directory,
    is_session_file,
    list_project_folders,
    resolve_session_directory,
    session_id_from_path,
)
from session_monitor.services.session_reader import IncrementalReader
from session_monitor.services.stats_engine import CostCalculator, StatsEngine
from session_monitor.services.subagent_resolver import scan_subagents
from session_monitor.types.sessions import ProjectFolder, SessionDiagnostics, SessionInfo
from session_monitor.types.stats import SessionStats, SessionSummary, SubagentStats
from session_monitor.utils.burn_rate import calculate_burn_rate

logger = logging.getLogger(__name__)

# Sessions modified this recently are flagged active in listings
LISTING_ACTIVE_THRESHOLD_S = 2 * 60


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionMonitor(QObject):
    """Follows the live session of one workspace (or custom directory).

    Discovery, attach, incremental reads and switching are driven by a
    Lifecycle state machine; aggregation is delegated to a StatsEngine whose
    channels are re-published here, next to the session lifecycle channels.
    """

    token_usage = Signal(object)             # TokenUsage
    tool_call = Signal(object)               # ToolCall
    tool_analytics_updated = Signal(object)  # ToolAnalytics
    timeline_event = Signal(object)          # TimelineEvent
    latency_updated = Signal(object)         # LatencyStats
    compaction_detected = Signal(object)     # CompactionEvent
    session_started = Signal(str)            # session file path
    session_ended = Signal()
    discovery_mode_changed = Signal(bool)    # True while waiting for a session

    def __init__(self, config: MonitorConfig | None = None,
                 config_manager: ConfigManager | None = None,
                 clock: Callable[[], datetime] | None = None,
                 monotonic: Callable[[], float] | None = None,
                 parent=None):
        super().__init__(parent)
        self._config_manager = config_manager
        if config is None:
            config = config_manager.load_monitor_config() if config_manager else MonitorConfig()
        self._config = config
        self._clock = clock or _utcnow

        self._workspace_path: str | None = None
        self._custom_dir: str | None = config_manager.custom_session_dir() if config_manager else None
        self._session_path: str | None = None
        self._reader: IncrementalReader | None = None
        self._disposed = False

        self._engine = StatsEngine(config, clock=self._clock, parent=self)
        self._watcher = DirectoryWatcher(config.activity_poll_interval_ms, parent=self)
        self._lifecycle = Lifecycle(
            config,
            on_file_change=self.process_file_change,
            on_new_session_timer=self._on_new_session_timer,
            on_discovery_poll=self.perform_session_discovery,
            clock=monotonic or time.monotonic,
            parent=self,
        )

        self._engine.token_usage.connect(self.token_usage)
        self._engine.tool_call.connect(self.tool_call)
        self._engine.tool_analytics_updated.connect(self.tool_analytics_updated)
        self._engine.timeline_event.connect(self.timeline_event)
        self._engine.latency_updated.connect(self.latency_updated)
        self._engine.compaction_detected.connect(self.compaction_detected)
        self._lifecycle.discovery_mode_changed.connect(self.discovery_mode_changed)
        self._watcher.directory_activity.connect(self.on_directory_activity)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> MonitorConfig:
        return self._config

    @property
    def engine(self) -> StatsEngine:
        return self._engine

    @property
    def lifecycle(self) -> Lifecycle:
        return self._lifecycle

    @property
    def watcher(self) -> DirectoryWatcher:
        return self._watcher

    @property
    def workspace_path(self) -> str | None:
        return self._workspace_path

    @property
    def session_path(self) -> str | None:
        return self._session_path

    @property
    def session_id(self) -> str | None:
        return session_id_from_path(self._session_path) if self._session_path else None

    @property
    def state(self) -> MonitorState:
        return self._lifecycle.state

    @property
    def is_pinned(self) -> bool:
        return self._lifecycle.is_pinned

    @property
    def custom_session_dir(self) -> str | None:
        return self._custom_dir

    # ------------------------------------------------------------------
    # Start / attach / detach
    # ------------------------------------------------------------------

    def start(self, workspace_path: str) -> bool:
        """Begin monitoring a workspace. Returns True if a session was attached."""
        self._workspace_path = workspace_path
        session_dir = self._session_directory()
        logger.info("Starting session monitor for %s (session dir %s)",
                    self._custom_dir or workspace_path, session_dir)
        self._watcher.start(session_dir)

        candidate = self._find_candidate(session_dir)
        if candidate and self.attach(candidate):
            return True
        if not self._lifecycle.is_discovering():
            logger.info("No active session found, waiting for one")
            self._lifecycle.enter_discovery()
        return False

    def attach(self, session_path: str) -> bool:
        """Make ``session_path`` the attached session, starting from empty aggregates."""
        self._lifecycle.cancel_debounces()
        self._engine.reset()
        self._session_path = None
        self._reader = None

        reader = IncrementalReader(session_path)
        try:
            if not reader.exists():
                raise FileNotFoundError(session_path)
            events = reader.read_all()
        except OSError as e:
            logger.warning("Failed to attach to session %s: %s", session_path, e)
            self._watcher.watch_session("")
            if not self._lifecycle.is_discovering():
                self._lifecycle.enter_discovery()
            return False

        session_dir = os.path.dirname(session_path)
        if self._watcher.directory != session_dir and not self._custom_dir:
            self._watcher.start(session_dir)
        self._watcher.watch_session(session_path)

        self._session_path = session_path
        self._reader = reader
        self._lifecycle.enter_active()
        logger.info("Attached to session %s (%d events, %d bytes)",
                    session_path, len(events), reader.position)
        self.session_started.emit(session_path)
        self._engine.handle_events(events)
        return True

    def _detach(self):
        if self._session_path is None:
            return
        logger.info("Session ended: %s", self._session_path)
        self.session_ended.emit()
        self._session_path = None
        self._reader = None
        self._watcher.watch_session("")
        self._engine.reset()

    def _end_session(self):
        self._detach()
        self._lifecycle.enter_fast_discovery()

    def _switch_to(self, session_path: str):
        self._lifecycle.mark_switched()
        logger.info("Switching session: %s -> %s", self._session_path, session_path)
        self._detach()
        self.attach(session_path)

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def _session_directory(self) -> str:
        if self._custom_dir:
            return self._custom_dir
        workspace = self._workspace_path or ""
        return (resolve_session_directory(workspace, self._config.projects_root,
                                          self._config.scratch_root)
                or get_session_directory(workspace, self._config.projects_root))

    def _find_candidate(self, session_dir: str) -> str | None:
        if self._custom_dir:
            sessions = find_sessions_in_directory(self._custom_dir)
            return sessions[0] if sessions else None
        return find_active_session(session_dir, self._config.active_session_threshold_ms)

    def _has_target(self) -> bool:
        return bool(self._custom_dir or self._workspace_path)

    def perform_session_discovery(self):
        """One discovery attempt: attach to a session if one has appeared."""
        if not self._has_target():
            return
        session_dir = self._session_directory()
        if not os.path.isdir(session_dir):
            logger.debug("Session directory does not exist yet: %s", session_dir)
            return
        if self._watcher.directory != session_dir:
            self._watcher.start(session_dir)

        candidate = self._find_candidate(session_dir)
        if candidate:
            logger.info("Discovery found session %s", candidate)
            self.attach(candidate)

    def perform_new_session_check(self):
        """Switch to a newer session, or end the current one if none remains."""
        if not self._has_target():
            return
        if not self._lifecycle.should_check_for_new_session():
            return

        candidate = self._find_candidate(self._session_directory())
        if candidate and candidate != self._session_path:
            self._switch_to(candidate)
        elif candidate is None and self._session_path:
            logger.info("Current session ended, entering fast discovery")
            self._end_session()

    def _on_new_session_timer(self):
        if self._lifecycle.is_discovering():
            self.perform_session_discovery()
        else:
            self.perform_new_session_check()

    def on_directory_activity(self, filename: str):
        """A session file in the watched directory was created, changed or removed."""
        if not is_session_file(filename):
            return
        if self._lifecycle.is_discovering():
            self._lifecycle.schedule_new_session_check()
        elif self._session_path and filename == os.path.basename(self._session_path):
            self._lifecycle.schedule_file_change()
        else:
            self._lifecycle.schedule_new_session_check()

    def process_file_change(self):
        """Read whatever was appended to the attached session file."""
        reader = self._reader
        if reader is None:
            return
        if not reader.exists():
            logger.info("Session file deleted, entering fast discovery")
            self._end_session()
            return

        try:
            events = reader.read_new()
        except OSError as e:
            logger.warning("Error reading session file changes: %s", e)
            return

        if reader.was_truncated():
            self._engine.handle_truncation()
        self._engine.handle_events(events)

    # ------------------------------------------------------------------
    # Manual operations
    # ------------------------------------------------------------------

    def switch_to_session(self, session_path: str) -> bool:
        """Explicitly attach to a session chosen by the user; unpins."""
        if not os.path.isfile(session_path):
            logger.warning("Cannot switch to session, file not found: %s", session_path)
            return False
        self._lifecycle.set_pinned(False)
        self._switch_to(session_path)
        return True

    def start_with_custom_path(self, session_dir: str, persist: bool = True) -> bool:
        """Monitor an explicit session directory instead of the workspace's."""
        if not os.path.isdir(session_dir):
            logger.warning("Custom session directory not found: %s", session_dir)
            return False

        logger.info("Starting with custom session directory %s", session_dir)
        self._custom_dir = session_dir
        if persist and self._config_manager is not None:
            self._config_manager.set_custom_session_dir(session_dir)
        self._watcher.start(session_dir)

        sessions = find_sessions_in_directory(session_dir)
        if not sessions:
            self._detach()
            if not self._lifecycle.is_discovering():
                self._lifecycle.enter_discovery()
            return False
        if sessions[0] != self._session_path:
            self._detach()
            return self.attach(sessions[0])
        return True

    def clear_custom_path(self):
        logger.info("Clearing custom session directory")
        self._custom_dir = None
        if self._config_manager is not None:
            self._config_manager.clear_custom_session_dir()

    def toggle_pin(self) -> bool:
        return self._lifecycle.toggle_pin()

    def refresh_session(self) -> bool:
        """Look for the most relevant session right now, ignoring pin and cooldown."""
        if not self._has_target():
            return False
        candidate = self._find_candidate(self._session_directory())
        if candidate and candidate != self._session_path:
            self._detach()
            return self.attach(candidate)
        if candidate:
            logger.debug("Already monitoring the most recent session")
            return True
        logger.info("No active session found during refresh")
        if not self._lifecycle.is_discovering():
            self._detach()
            self._lifecycle.enter_discovery()
        return False

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_stats(self) -> SessionStats:
        return self._engine.get_stats()

    def get_available_sessions(self) -> list[SessionInfo]:
        """Every session in the monitored directory, newest first."""
        if not self._has_target():
            return []
        now = time.time()
        sessions = []
        for path in find_all_sessions(self._session_directory()):
            try:
                mtime = os.stat(path).st_mtime
            except OSError:
                continue
            sessions.append(SessionInfo(
                path=path,
                session_id=session_id_from_path(path),
                modified_time=datetime.fromtimestamp(mtime, tz=timezone.utc),
                is_current=path == self._session_path,
                label=extract_session_label(path),
                is_active=(now - mtime) < LISTING_ACTIVE_THRESHOLD_S,
            ))
        return sessions

    def get_subagent_stats(self) -> list[SubagentStats]:
        if not self._session_path:
            return []
        return scan_subagents(os.path.dirname(self._session_path), self.session_id)

    def get_session_summary(self, cost_calculator: CostCalculator | None = None) -> SessionSummary | None:
        return self._engine.summarize(self.session_id or "", cost_calculator)

    def get_burn_rate(self) -> float:
        """Tokens per minute over the recent usage window."""
        return calculate_burn_rate(self._engine.get_recent_usage(), self._clock(),
                                   self._config.usage_window_ms)

    def list_project_folders(self) -> list[ProjectFolder]:
        return list_project_folders(self._config.projects_root, self._workspace_path)

    def get_session_diagnostics(self) -> SessionDiagnostics | None:
        if not self._workspace_path:
            return None
        return get_session_diagnostics(self._workspace_path, self._config.projects_root,
                                       self._config.scratch_root)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def dispose(self):
        """Stop timers and watchers, drop state, release all channels."""
        if self._disposed:
            return
        self._disposed = True

        self._lifecycle.enter_idle()
        self._watcher.stop()
        self._engine.reset()
        self._session_path = None
        self._reader = None
        self._workspace_path = None

        for signal in (self.token_usage, self.tool_call, self.tool_analytics_updated,
                       self.timeline_event, self.latency_updated, self.compaction_detected,
                       self.session_started, self.session_ended, self.discovery_mode_changed):
            try:
                signal.disconnect()
            except (RuntimeError, TypeError):
                pass
        logger.info("Session monitor disposed")
