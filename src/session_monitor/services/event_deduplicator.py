"""Bounded recency set that filters re-read transcript events."""

import hashlib
import logging

from session_monitor.types.events import SessionEvent

logger = logging.getLogger(__name__)

MAX_SEEN_HASHES = 10_000


def event_hash(event: SessionEvent) -> str:
    """Content key: type, raw timestamp, message id, request id and uuid."""
    message_id = event.message.id if event.message else ""
    key = "\x1f".join((event.type, event.raw_timestamp, message_id,
                       event.request_id, event.uuid))
    return hashlib.sha1(key.encode("utf-8")).hexdigest()


class EventDeduplicator:
    """Insertion-ordered set of event hashes.

    When full, the oldest quarter of the entries is dropped before the new
    hash is added.
    """

    def __init__(self, capacity: int = MAX_SEEN_HASHES):
        self._capacity = max(1, capacity)
        self._seen: dict[str, None] = {}

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, event_key: str) -> bool:
        return event_key in self._seen

    @property
    def capacity(self) -> int:
        return self._capacity

    def is_duplicate(self, event: SessionEvent) -> bool:
        """Check an event and remember it if new."""
        key = event_hash(event)
        if key in self._seen:
            logger.debug("Duplicate event skipped: %s @ %s", event.type, event.raw_timestamp)
            return True
        if len(self._seen) >= self._capacity:
            self._prune()
        self._seen[key] = None
        return False

    def clear(self):
        self._seen.clear()

    def _prune(self):
        drop = max(1, len(self._seen) // 4)
        for key in list(self._seen)[:drop]:
            del self._seen[key]
