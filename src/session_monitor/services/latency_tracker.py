"""Request → first token → completion latency cycles."""

import logging
from collections import deque
from datetime import datetime

from session_monitor.types.stats import LatencyStats, PendingUserRequest, ResponseLatency

logger = logging.getLogger(__name__)


def _ms(later: datetime, earlier: datetime) -> float:
    return (later - earlier).total_seconds() * 1000


class LatencyTracker:
    """At most one open request at a time, judged in event time.

    A request left open longer than the stale timeout is dropped without
    producing a record.
    """

    def __init__(self, max_records: int = 100, stale_timeout_ms: int = 600_000):
        self._stale_timeout_ms = stale_timeout_ms
        self.pending: PendingUserRequest | None = None
        self.records: deque[ResponseLatency] = deque(maxlen=max_records)

    def _drop_if_stale(self, now: datetime):
        if self.pending is None:
            return
        elapsed = _ms(now, self.pending.timestamp)
        if elapsed > self._stale_timeout_ms:
            logger.debug("Discarding stale pending request after %.0fms", elapsed)
            self.pending = None

    def on_user_prompt(self, timestamp: datetime):
        self._drop_if_stale(timestamp)
        self.pending = PendingUserRequest(timestamp=timestamp)

    def on_assistant_text(self, timestamp: datetime):
        self._drop_if_stale(timestamp)
        if self.pending is None or self.pending.first_response_received:
            return
        self.pending.first_response_received = True
        self.pending.first_response_timestamp = timestamp
        self.pending.first_token_latency_ms = _ms(timestamp, self.pending.timestamp)

    def on_usage(self, timestamp: datetime) -> ResponseLatency | None:
        """Close the open cycle, if its first token has been seen."""
        self._drop_if_stale(timestamp)
        pending = self.pending
        if pending is None or not pending.first_response_received:
            return None
        record = ResponseLatency(
            first_token_latency_ms=pending.first_token_latency_ms or 0.0,
            total_response_time_ms=_ms(timestamp, pending.timestamp),
            request_timestamp=pending.timestamp,
        )
        self.records.append(record)
        self.pending = None
        return record

    def stats(self) -> LatencyStats:
        if not self.records:
            return LatencyStats()
        first_token = [r.first_token_latency_ms for r in self.records]
        totals = [r.total_response_time_ms for r in self.records]
        return LatencyStats(
            recent_latencies=tuple(self.records),
            avg_first_token_latency_ms=sum(first_token) / len(first_token),
            max_first_token_latency_ms=max(first_token),
            avg_total_response_time_ms=sum(totals) / len(totals),
            last_first_token_latency_ms=first_token[-1],
            completed_cycles=len(self.records),
        )
