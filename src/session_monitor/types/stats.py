"""Aggregate metric types owned by the stats engine."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_write_tokens: int = 0
    cache_read_tokens: int = 0
    model: str = "unknown"
    timestamp: Optional[datetime] = None
    reported_cost: Optional[float] = None
    reasoning_tokens: int = 0

    @property
    def total(self) -> int:
        return (self.input_tokens + self.output_tokens +
                self.cache_write_tokens + self.cache_read_tokens)


@dataclass
class ToolCall:
    name: str
    input: dict
    timestamp: datetime
    tool_use_id: str = ""
    is_error: Optional[bool] = None
    duration_ms: Optional[float] = None
    error_message: str = ""
    error_category: str = ""

    @property
    def is_pending(self) -> bool:
        return self.duration_ms is None


@dataclass
class PendingToolCall:
    tool_use_id: str
    name: str
    start_time: datetime
    call: Optional[ToolCall] = None


@dataclass
class ToolAnalytics:
    name: str
    success_count: int = 0
    failure_count: int = 0
    total_duration_ms: float = 0.0
    completed_count: int = 0
    pending_count: int = 0

    @property
    def average_duration_ms(self) -> float:
        if not self.completed_count:
            return 0.0
        return self.total_duration_ms / self.completed_count


class TimelineEventType(str, Enum):
    USER_PROMPT = "user_prompt"
    ASSISTANT_RESPONSE = "assistant_response"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    ERROR = "error"
    COMPACTION = "compaction"


class NoiseLevel(str, Enum):
    USER = "user"
    AI = "ai"
    SYSTEM = "system"
    NOISE = "noise"


@dataclass(frozen=True)
class TimelineEvent:
    type: TimelineEventType
    timestamp: str
    description: str
    noise_level: NoiseLevel
    is_sidechain: bool = False
    metadata: dict = field(default_factory=dict)


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DELETED = "deleted"


@dataclass
class TrackedTask:
    task_id: str
    subject: str
    status: TaskStatus
    created_at: datetime
    updated_at: datetime
    description: str = ""
    active_form: str = ""
    blocked_by: list[str] = field(default_factory=list)
    blocks: list[str] = field(default_factory=list)
    associated_tool_calls: list[ToolCall] = field(default_factory=list)
    is_subagent: bool = False
    subagent_type: str = ""
    tool_use_id: str = ""


@dataclass
class TaskState:
    tasks: dict[str, TrackedTask] = field(default_factory=dict)
    active_task_id: Optional[str] = None


@dataclass
class PendingUserRequest:
    timestamp: datetime
    first_response_received: bool = False
    first_response_timestamp: Optional[datetime] = None
    first_token_latency_ms: Optional[float] = None


@dataclass(frozen=True)
class ResponseLatency:
    first_token_latency_ms: float
    total_response_time_ms: float
    request_timestamp: datetime


@dataclass(frozen=True)
class LatencyStats:
    recent_latencies: tuple[ResponseLatency, ...] = ()
    avg_first_token_latency_ms: float = 0.0
    max_first_token_latency_ms: float = 0.0
    avg_total_response_time_ms: float = 0.0
    last_first_token_latency_ms: Optional[float] = None
    completed_cycles: int = 0


@dataclass(frozen=True)
class CompactionEvent:
    timestamp: datetime
    context_before: int
    context_after: int
    tokens_reclaimed: int


@dataclass
class ContextAttribution:
    system_prompt: int = 0
    user_messages: int = 0
    assistant_responses: int = 0
    tool_inputs: int = 0
    tool_outputs: int = 0
    thinking: int = 0
    other: int = 0

    @property
    def total(self) -> int:
        return (self.system_prompt + self.user_messages + self.assistant_responses +
                self.tool_inputs + self.tool_outputs + self.thinking + self.other)


@dataclass
class ModelUsage:
    calls: int = 0
    tokens: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cache_write_tokens: int = 0
    cache_read_tokens: int = 0


@dataclass(frozen=True)
class UsageSample:
    """One entry of the trailing burn-rate window."""
    timestamp: datetime
    tokens: int


@dataclass
class SessionStats:
    """Snapshot handed to consumers; every container is a fresh copy."""
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cache_write_tokens: int = 0
    total_cache_read_tokens: int = 0
    message_count: int = 0
    tool_calls: list[ToolCall] = field(default_factory=list)
    model_usage: dict[str, ModelUsage] = field(default_factory=dict)
    tool_analytics: dict[str, ToolAnalytics] = field(default_factory=dict)
    timeline: list[TimelineEvent] = field(default_factory=list)
    error_details: dict[str, list[str]] = field(default_factory=dict)
    current_context_size: int = 0
    context_window_size: int = 200_000
    recent_usage: list[UsageSample] = field(default_factory=list)
    session_start_time: Optional[datetime] = None
    last_updated: Optional[datetime] = None
    task_state: Optional[TaskState] = None
    latency_stats: Optional[LatencyStats] = None
    compaction_events: list[CompactionEvent] = field(default_factory=list)
    context_attribution: ContextAttribution = field(default_factory=ContextAttribution)
    total_reported_cost: Optional[float] = None

    @property
    def total_tokens(self) -> int:
        return (self.total_input_tokens + self.total_output_tokens +
                self.total_cache_write_tokens + self.total_cache_read_tokens)

    @property
    def context_usage_percent(self) -> float:
        if self.context_window_size <= 0:
            return 0.0
        return 100.0 * self.current_context_size / self.context_window_size


@dataclass
class SubagentStats:
    agent_id: str
    agent_type: str = ""
    description: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)


@dataclass(frozen=True)
class ModelUsageRecord:
    model: str
    calls: int
    tokens: int
    cost: float


@dataclass(frozen=True)
class ToolUsageRecord:
    tool: str
    calls: int
    success_count: int
    failure_count: int


@dataclass
class SessionSummary:
    session_id: str
    start_time: datetime
    end_time: datetime
    input_tokens: int = 0
    output_tokens: int = 0
    cache_write_tokens: int = 0
    cache_read_tokens: int = 0
    total_cost: float = 0.0
    message_count: int = 0
    model_usage: list[ModelUsageRecord] = field(default_factory=list)
    tool_usage: list[ToolUsageRecord] = field(default_factory=list)
