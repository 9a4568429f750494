"""Link tool_use blocks with their tool_result blocks as the stream arrives."""

import logging
from collections import deque
from datetime import datetime

from session_monitor.types.events import ToolResultBlock, ToolUseBlock
from session_monitor.types.stats import PendingToolCall, ToolAnalytics, ToolCall
from session_monitor.utils.content_sanitizer import clean_error_message
from session_monitor.utils.token_estimator import result_text

logger = logging.getLogger(__name__)


def categorize_error(output) -> str:
    """Bucket a failed tool's output into a small fixed taxonomy."""
    text = (result_text(output) if output else "").lower()
    if "permission denied" in text:
        return "permission"
    if "not found" in text or "no such file" in text:
        return "not_found"
    if "timeout" in text:
        return "timeout"
    if "syntax error" in text:
        return "syntax"
    if "exit code" in text:
        return "exit_code"
    if "tool_use_error" in text:
        return "tool_error"
    return "other"


def extract_error_message(output, tool_name: str) -> str:
    return clean_error_message(result_text(output) if output else "", tool_name)


class ToolCallTracker:
    """Pending tool calls keyed by tool-use id, plus per-tool rollups.

    A result whose id is not pending (never seen, or already resolved) is
    ignored.
    """

    def __init__(self, max_error_details: int = 50):
        self._max_error_details = max_error_details
        self.pending: dict[str, PendingToolCall] = {}
        self.calls: list[ToolCall] = []
        self.analytics: dict[str, ToolAnalytics] = {}
        self.error_details: dict[str, deque[str]] = {}

    def register(self, block: ToolUseBlock, timestamp: datetime) -> ToolCall:
        call = ToolCall(
            name=block.name,
            input=dict(block.input),
            timestamp=timestamp,
            tool_use_id=block.id,
        )
        if block.id:
            self.pending[block.id] = PendingToolCall(
                tool_use_id=block.id,
                name=block.name,
                start_time=timestamp,
                call=call,
            )
        analytics = self.analytics.setdefault(block.name, ToolAnalytics(name=block.name))
        analytics.pending_count += 1
        self.calls.append(call)
        return call

    def pending_name(self, tool_use_id: str) -> str | None:
        pending = self.pending.get(tool_use_id)
        return pending.name if pending else None

    def resolve(self, block: ToolResultBlock, timestamp: datetime) -> ToolCall | None:
        """Finalize the pending call a result refers to.

        Returns the updated ToolCall, or None for an unmatched result.
        """
        pending = self.pending.pop(block.tool_use_id, None)
        if pending is None:
            logger.debug("Unmatched tool_result %s", block.tool_use_id)
            return None

        duration_ms = max(0.0, (timestamp - pending.start_time).total_seconds() * 1000)
        call = pending.call
        if call is None:
            call = ToolCall(name=pending.name, input={}, timestamp=pending.start_time,
                            tool_use_id=pending.tool_use_id)
        call.is_error = block.is_error
        call.duration_ms = duration_ms
        if block.is_error and block.content:
            call.error_message = extract_error_message(block.content, pending.name)
            call.error_category = categorize_error(block.content)

        analytics = self.analytics.setdefault(pending.name, ToolAnalytics(name=pending.name))
        analytics.pending_count = max(0, analytics.pending_count - 1)
        analytics.completed_count += 1
        analytics.total_duration_ms += duration_ms
        if block.is_error:
            analytics.failure_count += 1
            category = categorize_error(block.content)
            details = self.error_details.setdefault(
                category, deque(maxlen=self._max_error_details))
            details.append(extract_error_message(block.content, pending.name))
        else:
            analytics.success_count += 1
        return call
