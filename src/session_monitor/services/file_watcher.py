"""Directory activity notifications from OS file watching plus polling."""

import logging
import os

from PySide6.QtCore import QObject, Signal, QFileSystemWatcher, QTimer

from session_monitor.services.session_locator import is_session_file

logger = logging.getLogger(__name__)


class DirectoryWatcher(QObject):
    """Reports which session file in a directory was created, changed or removed.

    OS notifications only say that *something* in the directory changed, and
    are unreliable on some file systems, so every trigger (and a periodic
    poll) diffs an mtime/size snapshot of the session files.
    """

    directory_activity = Signal(str)  # filename

    def __init__(self, poll_interval_ms: int = 2000, parent=None):
        super().__init__(parent)
        self._watcher = QFileSystemWatcher(self)
        self._directory = ""
        self._session_path = ""
        self._snapshot: dict[str, tuple[int, int]] = {}

        self._poll_timer = QTimer(self)
        self._poll_timer.setInterval(poll_interval_ms)
        self._poll_timer.timeout.connect(self._poll)

        self._watcher.fileChanged.connect(self._on_file_changed)
        self._watcher.directoryChanged.connect(self._on_directory_changed)

    @property
    def directory(self) -> str:
        return self._directory

    @property
    def is_active(self) -> bool:
        return bool(self._directory)

    def start(self, directory: str):
        """Start watching a session directory (replaces any previous one)."""
        self.stop()
        self._directory = directory
        self._snapshot = self._scan()
        if os.path.isdir(directory):
            if not self._watcher.addPath(directory):
                logger.warning("OS watcher unavailable for %s, polling only", directory)
        else:
            logger.debug("Directory does not exist yet, polling: %s", directory)
        self._poll_timer.start()

    def stop(self):
        """Stop all file watching."""
        if self._watcher.files():
            self._watcher.removePaths(self._watcher.files())
        if self._watcher.directories():
            self._watcher.removePaths(self._watcher.directories())
        self._poll_timer.stop()
        self._directory = ""
        self._session_path = ""
        self._snapshot = {}

    def watch_session(self, file_path: str):
        """Also watch the attached session file itself."""
        if self._session_path and self._session_path in self._watcher.files():
            self._watcher.removePath(self._session_path)
        self._session_path = file_path
        if file_path and os.path.exists(file_path):
            self._watcher.addPath(file_path)

    def _on_file_changed(self, path: str):
        # Qt drops a file from the watch list when it is replaced; re-add it
        if path == self._session_path and os.path.exists(path) \
                and path not in self._watcher.files():
            self._watcher.addPath(path)
        self._emit_changes(force=os.path.basename(path))

    def _on_directory_changed(self, path: str):
        self._emit_changes()

    def _poll(self):
        if self._directory and os.path.isdir(self._directory) \
                and self._directory not in self._watcher.directories():
            # Directory appeared after start()
            self._watcher.addPath(self._directory)
        self._emit_changes()

    def _scan(self) -> dict[str, tuple[int, int]]:
        snapshot = {}
        try:
            entries = list(os.scandir(self._directory))
        except OSError:
            return {}
        for entry in entries:
            if not is_session_file(entry.name):
                continue
            try:
                st = entry.stat()
            except OSError:
                continue
            snapshot[entry.name] = (st.st_mtime_ns, st.st_size)
        return snapshot

    def _emit_changes(self, force: str = ""):
        if not self._directory:
            return
        current = self._scan()
        changed = [name for name, sig in current.items() if self._snapshot.get(name) != sig]
        removed = [name for name in self._snapshot if name not in current]
        self._snapshot = current

        names = sorted(set(changed) | set(removed))
        if force and force not in names and is_session_file(force):
            names.append(force)
        for name in names:
            self.directory_activity.emit(name)
