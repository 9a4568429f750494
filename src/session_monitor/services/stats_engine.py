"""Stateful metrics aggregation over the deduplicated event stream."""

import logging
from copy import copy, deepcopy
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable

from PySide6.QtCore import QObject, Signal

from session_monitor.services.config_manager import MonitorConfig
from session_monitor.services.context_analyzer import attribute_event
from session_monitor.services.event_deduplicator import EventDeduplicator
from session_monitor.services.jsonl_parser import extract_token_usage
from session_monitor.services.latency_tracker import LatencyTracker
from session_monitor.services.task_tracker import TASK_TOOLS, TaskTracker
from session_monitor.services.timeline import (
    Timeline,
    compaction_entry,
    event_entry,
    tool_call_entry,
    tool_result_entry,
)
from session_monitor.services.tool_linker import ToolCallTracker
from session_monitor.types.events import EventType, SessionEvent, ToolResultBlock, ToolUseBlock
from session_monitor.types.stats import (
    CompactionEvent,
    ContextAttribution,
    LatencyStats,
    ModelUsage,
    ModelUsageRecord,
    SessionStats,
    SessionSummary,
    TaskState,
    TimelineEvent,
    TokenUsage,
    ToolUsageRecord,
    UsageSample,
)
from session_monitor.utils.burn_rate import prune_samples
from session_monitor.utils.message_classifier import has_text_content

logger = logging.getLogger(__name__)

# A drop below this fraction of the previous context size is a compaction
COMPACTION_THRESHOLD = 0.8

CostCalculator = Callable[[str, ModelUsage], float]


def compute_context_size(usage: TokenUsage) -> int:
    """Tokens occupying the context window for one turn."""
    return usage.input_tokens + usage.cache_write_tokens + usage.cache_read_tokens


def burn_tokens(usage: TokenUsage) -> int:
    """Tokens counted toward quota: cache writes count, cache reads do not."""
    return usage.input_tokens + usage.output_tokens + usage.cache_write_tokens


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionState:
    """All aggregate state for one attached session.

    Built fresh on attach, detach and reset; truncation clears only the
    counters that a re-scan re-derives.
    """

    def __init__(self, config: MonitorConfig):
        self.dedup = EventDeduplicator(config.max_seen_hashes)
        self.tools = ToolCallTracker(config.max_error_details)
        self.tasks = TaskTracker()
        self.latency = LatencyTracker(config.max_latency_records,
                                      config.stale_request_timeout_ms)
        self.timeline = Timeline(config.max_timeline_events)
        self.attribution = ContextAttribution()
        self.compactions: list[CompactionEvent] = []
        self.reset_counters()

    def reset_counters(self):
        self.total_input_tokens = 0
        self.total_output_tokens = 0
        self.total_cache_write_tokens = 0
        self.total_cache_read_tokens = 0
        self.message_count = 0
        self.model_usage: dict[str, ModelUsage] = {}
        self.current_context_size = 0
        self.previous_context_size = 0
        self.recent_usage: list[UsageSample] = []
        self.total_reported_cost = 0.0
        self.session_start: datetime | None = None
        self.last_updated: datetime | None = None


class StatsEngine(QObject):
    """Consumes session events in arrival order and publishes derived events.

    Every payload emitted is a frozen value or a fresh copy; ``get_stats()``
    returns a deep copy, so consumers never share state with the engine.
    """

    token_usage = Signal(object)             # TokenUsage
    tool_call = Signal(object)               # ToolCall
    tool_analytics_updated = Signal(object)  # ToolAnalytics
    timeline_event = Signal(object)          # TimelineEvent
    latency_updated = Signal(object)         # LatencyStats
    compaction_detected = Signal(object)     # CompactionEvent

    def __init__(self, config: MonitorConfig | None = None,
                 clock: Callable[[], datetime] | None = None, parent=None):
        super().__init__(parent)
        self._config = config or MonitorConfig()
        self._clock = clock or _utcnow
        self._state = SessionState(self._config)

    @property
    def state(self) -> SessionState:
        return self._state

    def reset(self):
        """Discard every aggregate (attach, switch, detach)."""
        self._state = SessionState(self._config)

    def handle_truncation(self):
        """Reset counters a replay of the rewritten file will rebuild.

        Timeline, tool calls, analytics and the task graph are append-style
        views and stay as they are.
        """
        state = self._state
        state.reset_counters()
        state.dedup.clear()
        state.latency.pending = None
        logger.info("Counters reset after truncation")

    def handle_events(self, events: list[SessionEvent]) -> int:
        """Feed events in order; returns how many were new."""
        return sum(1 for event in events if self.handle_event(event))

    def handle_event(self, event: SessionEvent) -> bool:
        """Apply one event. Returns False for a duplicate."""
        state = self._state
        if state.dedup.is_duplicate(event):
            return False

        state.message_count += 1
        state.last_updated = self._clock()
        if state.session_start is None:
            state.session_start = event.timestamp

        if event.type == EventType.USER and has_text_content(event):
            state.latency.on_user_prompt(event.timestamp)
        elif event.type == EventType.ASSISTANT and has_text_content(event):
            state.latency.on_assistant_text(event.timestamp)

        usage = extract_token_usage(event)
        if usage is not None:
            self._apply_usage(event, usage)

        if event.type == EventType.ASSISTANT:
            for block in event.blocks():
                if isinstance(block, ToolUseBlock):
                    self._apply_tool_use(event, block)
        elif event.type == EventType.USER:
            for block in event.blocks():
                if isinstance(block, ToolResultBlock):
                    self._apply_tool_result(event, block)

        attribute_event(event, state.attribution)

        pending_name = None
        if event.type == EventType.TOOL_RESULT and event.result is not None:
            pending_name = state.tools.pending_name(event.result.tool_use_id)
        entry = event_entry(event, pending_name)
        if entry is not None:
            self._add_timeline(entry)
        return True

    def _add_timeline(self, entry: TimelineEvent):
        self._state.timeline.add(entry)
        self.timeline_event.emit(entry)

    def _apply_usage(self, event: SessionEvent, usage: TokenUsage):
        state = self._state

        record = state.latency.on_usage(event.timestamp)
        if record is not None:
            self.latency_updated.emit(state.latency.stats())

        state.total_input_tokens += usage.input_tokens
        state.total_output_tokens += usage.output_tokens
        state.total_cache_write_tokens += usage.cache_write_tokens
        state.total_cache_read_tokens += usage.cache_read_tokens

        model = state.model_usage.setdefault(usage.model, ModelUsage())
        model.calls += 1
        model.tokens += usage.input_tokens + usage.output_tokens
        model.input_tokens += usage.input_tokens
        model.output_tokens += usage.output_tokens
        model.cache_write_tokens += usage.cache_write_tokens
        model.cache_read_tokens += usage.cache_read_tokens

        context_size = compute_context_size(usage)
        previous = state.previous_context_size
        if previous > 0 and context_size < previous * COMPACTION_THRESHOLD:
            compaction = CompactionEvent(
                timestamp=event.timestamp,
                context_before=previous,
                context_after=context_size,
                tokens_reclaimed=previous - context_size,
            )
            state.compactions.append(compaction)
            logger.info("Compaction detected: %d -> %d (reclaimed %d tokens)",
                        previous, context_size, compaction.tokens_reclaimed)
            self.compaction_detected.emit(compaction)
            self._add_timeline(compaction_entry(compaction, event.raw_timestamp))
        state.previous_context_size = context_size
        state.current_context_size = context_size

        state.recent_usage.append(UsageSample(timestamp=event.timestamp,
                                              tokens=burn_tokens(usage)))
        state.recent_usage = prune_samples(state.recent_usage, self._clock(),
                                           self._config.usage_window_ms)

        if usage.reported_cost is not None and usage.reported_cost > 0:
            state.total_reported_cost += usage.reported_cost

        self.token_usage.emit(usage)

    def _apply_tool_use(self, event: SessionEvent, block: ToolUseBlock):
        state = self._state
        call = state.tools.register(block, event.timestamp)
        state.tasks.on_tool_use(block, event.timestamp)

        self.tool_analytics_updated.emit(copy(state.tools.analytics[block.name]))
        self._add_timeline(tool_call_entry(block.name, block.input, event))

        if block.name not in TASK_TOOLS:
            state.tasks.associate(call)
        self.tool_call.emit(replace(call, input=dict(call.input)))

    def _apply_tool_result(self, event: SessionEvent, block: ToolResultBlock):
        state = self._state
        call = state.tools.resolve(block, event.timestamp)
        if call is None:
            return

        task_changed = False
        if call.name in TASK_TOOLS:
            task_changed = state.tasks.on_tool_result(call.name, block, event.timestamp)

        self.tool_analytics_updated.emit(copy(state.tools.analytics[call.name]))
        self._add_timeline(tool_result_entry(call.name, block.is_error, event))

        # Subagent completion: republish so task views refresh
        if call.name == "Task" and task_changed:
            self.tool_call.emit(replace(call, input=dict(call.input)))

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def get_stats(self) -> SessionStats:
        state = self._state
        state.recent_usage = prune_samples(state.recent_usage, self._clock(),
                                           self._config.usage_window_ms)
        stats = SessionStats(
            total_input_tokens=state.total_input_tokens,
            total_output_tokens=state.total_output_tokens,
            total_cache_write_tokens=state.total_cache_write_tokens,
            total_cache_read_tokens=state.total_cache_read_tokens,
            message_count=state.message_count,
            tool_calls=state.tools.calls,
            model_usage=state.model_usage,
            tool_analytics=state.tools.analytics,
            timeline=state.timeline.snapshot(),
            error_details={k: list(v) for k, v in state.tools.error_details.items()},
            current_context_size=state.current_context_size,
            context_window_size=self._config.context_window_size,
            recent_usage=state.recent_usage,
            session_start_time=state.session_start,
            last_updated=state.last_updated,
            task_state=state.tasks.state if state.tasks.state.tasks else None,
            latency_stats=state.latency.stats(),
            compaction_events=state.compactions,
            context_attribution=state.attribution,
            total_reported_cost=state.total_reported_cost or None,
        )
        return deepcopy(stats)

    def get_latency_stats(self) -> LatencyStats:
        return self._state.latency.stats()

    def get_compaction_events(self) -> list[CompactionEvent]:
        return list(self._state.compactions)

    def get_context_attribution(self) -> ContextAttribution:
        return copy(self._state.attribution)

    def get_task_state(self) -> TaskState:
        return deepcopy(self._state.tasks.state)

    def get_recent_usage(self) -> list[UsageSample]:
        return prune_samples(self._state.recent_usage, self._clock(),
                             self._config.usage_window_ms)

    def summarize(self, session_id: str,
                  cost_calculator: CostCalculator | None = None) -> SessionSummary | None:
        """Per-model and per-tool rollup of the session so far.

        Costs come from ``cost_calculator(model, usage)``; without one they
        are reported as 0.
        """
        state = self._state
        if not session_id or state.session_start is None:
            return None

        model_records = []
        for model, usage in state.model_usage.items():
            cost = cost_calculator(model, copy(usage)) if cost_calculator else 0.0
            model_records.append(ModelUsageRecord(
                model=model, calls=usage.calls, tokens=usage.tokens, cost=cost))

        tool_records = [
            ToolUsageRecord(
                tool=name,
                calls=a.success_count + a.failure_count,
                success_count=a.success_count,
                failure_count=a.failure_count,
            )
            for name, a in state.tools.analytics.items()
        ]

        return SessionSummary(
            session_id=session_id,
            start_time=state.session_start,
            end_time=state.last_updated or self._clock(),
            input_tokens=state.total_input_tokens,
            output_tokens=state.total_output_tokens,
            cache_write_tokens=state.total_cache_write_tokens,
            cache_read_tokens=state.total_cache_read_tokens,
            total_cost=sum(r.cost for r in model_records),
            message_count=state.message_count,
            model_usage=model_records,
            tool_usage=tool_records,
        )
