"""Incremental, truncation-aware reader over a growing session file."""

import logging
from pathlib import Path

from session_monitor.services.jsonl_parser import StreamingJsonlParser
from session_monitor.types.events import SessionEvent

logger = logging.getLogger(__name__)


class IncrementalReader:
    """Byte cursor over one session file.

    ``read_new()`` returns only the events appended since the previous call.
    A file that shrank below the cursor is treated as truncated: the cursor
    and the parser buffer restart from zero and ``was_truncated()`` reports
    True until the next read.
    """

    def __init__(self, file_path: str | Path):
        self._path = Path(file_path)
        self._position = 0
        self._truncated = False
        self._pending: list[SessionEvent] = []
        self.malformed_lines = 0
        self._parser = StreamingJsonlParser(self._pending.append, self._on_parse_error)

    @property
    def path(self) -> str:
        return str(self._path)

    @property
    def position(self) -> int:
        return self._position

    def exists(self) -> bool:
        return self._path.is_file()

    def was_truncated(self) -> bool:
        return self._truncated

    def read_new(self) -> list[SessionEvent]:
        """Decode everything appended since the last read.

        Returns [] when the file is gone. Other OSErrors propagate to the
        caller.
        """
        self._truncated = False
        try:
            size = self._path.stat().st_size
        except FileNotFoundError:
            return []

        if size < self._position:
            logger.info("Session file truncated: %s (%d -> %d bytes)",
                        self._path.name, self._position, size)
            self._truncated = True
            self._position = 0
            self._parser.reset()

        if size == self._position:
            return []

        with open(self._path, "rb") as f:
            f.seek(self._position)
            data = f.read(size - self._position)

        self._position += len(data)
        self._parser.process_chunk(data)
        return self._drain()

    def read_all(self) -> list[SessionEvent]:
        """Re-read the file from the start (initial attach batch)."""
        self.reset()
        return self.read_new()

    def flush(self) -> list[SessionEvent]:
        """Decode a trailing fragment that never got its newline."""
        self._parser.flush()
        return self._drain()

    def reset(self):
        self._position = 0
        self._truncated = False
        self._pending.clear()
        self._parser.reset()

    def _drain(self) -> list[SessionEvent]:
        events = list(self._pending)
        self._pending.clear()
        return events

    def _on_parse_error(self, error: Exception, line: str):
        self.malformed_lines += 1
        logger.debug("Malformed line in %s: %s (%.100s)", self._path.name, error, line)
