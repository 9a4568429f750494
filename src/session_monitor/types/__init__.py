"""Type definitions for the agent session monitor."""

from session_monitor.types.events import (
    BlockType,
    ContentBlock,
    EventMessage,
    EventType,
    FlatToolResult,
    FlatToolUse,
    SessionEvent,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from session_monitor.types.stats import (
    CompactionEvent,
    ContextAttribution,
    LatencyStats,
    ModelUsage,
    ModelUsageRecord,
    NoiseLevel,
    PendingToolCall,
    PendingUserRequest,
    ResponseLatency,
    SessionStats,
    SessionSummary,
    SubagentStats,
    TaskState,
    TaskStatus,
    TimelineEvent,
    TimelineEventType,
    TokenUsage,
    ToolAnalytics,
    ToolCall,
    ToolUsageRecord,
    TrackedTask,
    UsageSample,
)
from session_monitor.types.sessions import ProjectFolder, SessionDiagnostics, SessionInfo

__all__ = [
    "BlockType",
    "ContentBlock",
    "EventMessage",
    "EventType",
    "FlatToolResult",
    "FlatToolUse",
    "SessionEvent",
    "TextBlock",
    "ThinkingBlock",
    "ToolResultBlock",
    "ToolUseBlock",
    "CompactionEvent",
    "ContextAttribution",
    "LatencyStats",
    "ModelUsage",
    "ModelUsageRecord",
    "NoiseLevel",
    "PendingToolCall",
    "PendingUserRequest",
    "ResponseLatency",
    "SessionStats",
    "SessionSummary",
    "SubagentStats",
    "TaskState",
    "TaskStatus",
    "TimelineEvent",
    "TimelineEventType",
    "TokenUsage",
    "ToolAnalytics",
    "ToolCall",
    "ToolUsageRecord",
    "TrackedTask",
    "UsageSample",
    "ProjectFolder",
    "SessionDiagnostics",
    "SessionInfo",
]
