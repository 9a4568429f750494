"""Discovery / Active / FastDiscovery state machine and its timers."""

import logging
import time
from enum import Enum
from typing import Callable

from PySide6.QtCore import QObject, Signal, QTimer

from session_monitor.services.config_manager import MonitorConfig

logger = logging.getLogger(__name__)


class MonitorState(str, Enum):
    IDLE = "idle"
    DISCOVERY = "discovery"
    ACTIVE = "active"
    FAST_DISCOVERY = "fast_discovery"


class Lifecycle(QObject):
    """Owns the monitor state, the pinned flag, and every debounce/poll timer.

    Each timer is single-shot and restarted on every trigger, so at most one
    callback of each kind is ever scheduled. The callbacks themselves live on
    the owner; this class only decides *when* they run.
    """

    discovery_mode_changed = Signal(bool)

    def __init__(self, config: MonitorConfig,
                 on_file_change: Callable[[], None],
                 on_new_session_timer: Callable[[], None],
                 on_discovery_poll: Callable[[], None],
                 clock: Callable[[], float] = time.monotonic,
                 parent=None):
        super().__init__(parent)
        self._config = config
        self._clock = clock
        self._on_file_change = on_file_change
        self._on_new_session_timer = on_new_session_timer
        self._on_discovery_poll = on_discovery_poll

        self._state = MonitorState.IDLE
        self._pinned = False
        self._fast_deadline: float | None = None
        self._last_switch: float | None = None

        self._file_change_timer = QTimer(self)
        self._file_change_timer.setSingleShot(True)
        self._file_change_timer.timeout.connect(self._fire_file_change)

        self._new_session_timer = QTimer(self)
        self._new_session_timer.setSingleShot(True)
        self._new_session_timer.timeout.connect(self._fire_new_session_check)

        self._poll_timer = QTimer(self)
        self._poll_timer.setSingleShot(True)
        self._poll_timer.timeout.connect(self._fire_discovery_poll)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def is_pinned(self) -> bool:
        return self._pinned

    def is_discovering(self) -> bool:
        return self._state in (MonitorState.DISCOVERY, MonitorState.FAST_DISCOVERY)

    def toggle_pin(self) -> bool:
        self._pinned = not self._pinned
        logger.info("Session %s", "pinned" if self._pinned else "unpinned")
        return self._pinned

    def set_pinned(self, pinned: bool):
        self._pinned = pinned

    def enter_active(self):
        was_discovering = self.is_discovering()
        self._state = MonitorState.ACTIVE
        self._fast_deadline = None
        self._poll_timer.stop()
        if was_discovering:
            self.discovery_mode_changed.emit(False)

    def enter_discovery(self):
        """Start normal-interval polling for a session."""
        was_discovering = self.is_discovering()
        self._state = MonitorState.DISCOVERY
        self._fast_deadline = None
        logger.info("Entering discovery mode (interval %dms)",
                    self._config.discovery_interval_ms)
        self.schedule_next_poll()
        if not was_discovering:
            self.discovery_mode_changed.emit(True)

    def enter_fast_discovery(self):
        """Poll at the short interval for a bounded window after a session ends."""
        was_discovering = self.is_discovering()
        self._state = MonitorState.FAST_DISCOVERY
        self._fast_deadline = self._clock() + self._config.fast_discovery_duration_ms / 1000
        logger.info("Entering fast discovery mode (interval %dms for %dms)",
                    self._config.fast_discovery_interval_ms,
                    self._config.fast_discovery_duration_ms)
        self.schedule_next_poll()
        if not was_discovering:
            self.discovery_mode_changed.emit(True)

    def enter_idle(self):
        was_discovering = self.is_discovering()
        self.cancel_all()
        self._state = MonitorState.IDLE
        self._fast_deadline = None
        self._pinned = False
        self._last_switch = None
        if was_discovering:
            self.discovery_mode_changed.emit(False)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule_file_change(self):
        self._file_change_timer.start(self._config.file_change_debounce_ms)

    def schedule_new_session_check(self):
        self._new_session_timer.start(self._config.new_session_debounce_ms)

    def mark_switched(self):
        self._last_switch = self._clock()

    def in_cooldown(self) -> bool:
        if self._last_switch is None:
            return False
        elapsed_ms = (self._clock() - self._last_switch) * 1000
        return elapsed_ms < self._config.switch_cooldown_ms

    def should_check_for_new_session(self) -> bool:
        if self._pinned:
            logger.debug("New session check skipped: pinned")
            return False
        if self.is_discovering():
            logger.debug("New session check skipped: already discovering")
            return False
        if self.in_cooldown():
            logger.debug("New session check skipped: switch cooldown")
            return False
        return True

    def next_poll_interval(self) -> int:
        """Milliseconds until the next discovery poll.

        Fast discovery falls back to the normal interval once its window ends.
        """
        if self._state == MonitorState.FAST_DISCOVERY and self._fast_deadline is not None:
            if self._clock() < self._fast_deadline:
                return self._config.fast_discovery_interval_ms
            logger.info("Fast discovery period ended, switching to normal polling")
            self._state = MonitorState.DISCOVERY
            self._fast_deadline = None
        return self._config.discovery_interval_ms

    def schedule_next_poll(self):
        self._poll_timer.start(self.next_poll_interval())

    def cancel_debounces(self):
        self._file_change_timer.stop()
        self._new_session_timer.stop()

    def cancel_all(self):
        self.cancel_debounces()
        self._poll_timer.stop()

    # ------------------------------------------------------------------
    # Timer slots
    # ------------------------------------------------------------------

    def _fire_file_change(self):
        try:
            self._on_file_change()
        except Exception:
            logger.exception("Error processing session file change")

    def _fire_new_session_check(self):
        try:
            self._on_new_session_timer()
        except Exception:
            logger.exception("Error checking for new session")

    def _fire_discovery_poll(self):
        try:
            self._on_discovery_poll()
        except Exception:
            logger.exception("Error during session discovery")
        # Polling only stops when a session gets attached
        if self.is_discovering():
            self.schedule_next_poll()
