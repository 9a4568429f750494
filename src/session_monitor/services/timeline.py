"""Capped, most-recent-first activity timeline and its entry builders."""

import math
from collections import deque
from urllib.parse import urlparse

from session_monitor.types.events import EventType, SessionEvent
from session_monitor.types.stats import (
    CompactionEvent,
    NoiseLevel,
    TimelineEvent,
    TimelineEventType,
)
from session_monitor.utils.content_sanitizer import (
    extract_assistant_text,
    extract_user_prompt_text,
    truncate,
)
from session_monitor.utils.message_classifier import classify_user_noise

MAX_TIMELINE_EVENTS = 100


def _last_segment(path: str) -> str:
    return path.rstrip("/").rsplit("/", 1)[-1] or path


def describe_tool_call(name: str, tool_input: dict) -> str:
    """'Name: context' with the most telling input for the tool, or just 'Name'."""
    context = ""
    if name in ("Read", "Write", "Edit"):
        if tool_input.get("file_path"):
            context = _last_segment(str(tool_input["file_path"]))
    elif name == "Glob":
        if tool_input.get("pattern"):
            context = str(tool_input["pattern"])
            if tool_input.get("path"):
                short = "/".join(str(tool_input["path"]).split("/")[-2:])
                context += f" in {short}"
    elif name == "Grep":
        if tool_input.get("pattern"):
            context = truncate(str(tool_input["pattern"]), 30)
    elif name == "Bash":
        if tool_input.get("command"):
            context = truncate(str(tool_input["command"]), 40)
    elif name == "Task":
        if tool_input.get("description"):
            context = f"Subagent spawned: {tool_input['description']}"
        elif tool_input.get("subagent_type"):
            context = f"Subagent spawned ({tool_input['subagent_type']})"
        else:
            context = "Subagent spawned"
    elif name in ("WebFetch", "WebSearch"):
        if tool_input.get("url"):
            url = str(tool_input["url"])
            try:
                context = urlparse(url).hostname or url[:30]
            except ValueError:
                context = url[:30]
        elif tool_input.get("query"):
            context = str(tool_input["query"])
    else:
        if tool_input.get("file_path"):
            context = _last_segment(str(tool_input["file_path"]))
        elif tool_input.get("path"):
            context = _last_segment(str(tool_input["path"]))
        elif tool_input.get("command"):
            context = str(tool_input["command"])[:30]

    return f"{name}: {context}" if context else name


def _thousands(tokens: int) -> int:
    return math.floor(tokens / 1000 + 0.5)


def tool_call_entry(name: str, tool_input: dict, event: SessionEvent) -> TimelineEvent:
    return TimelineEvent(
        type=TimelineEventType.TOOL_CALL,
        timestamp=event.raw_timestamp,
        description=describe_tool_call(name, tool_input),
        noise_level=NoiseLevel.NOISE if event.is_sidechain else NoiseLevel.AI,
        is_sidechain=event.is_sidechain,
        metadata={"toolName": name},
    )


def tool_result_entry(name: str, is_error: bool, event: SessionEvent) -> TimelineEvent:
    return TimelineEvent(
        type=TimelineEventType.ERROR if is_error else TimelineEventType.TOOL_RESULT,
        timestamp=event.raw_timestamp,
        description=f"{name} failed" if is_error else f"{name} completed",
        noise_level=NoiseLevel.SYSTEM if is_error else NoiseLevel.AI,
        is_sidechain=event.is_sidechain,
        metadata={"isError": is_error, "toolName": name},
    )


def compaction_entry(compaction: CompactionEvent, raw_timestamp: str) -> TimelineEvent:
    before, after = compaction.context_before, compaction.context_after
    return TimelineEvent(
        type=TimelineEventType.COMPACTION,
        timestamp=raw_timestamp,
        description=(
            f"Context compacted: {_thousands(before)}K -> {_thousands(after)}K tokens "
            f"(reclaimed {_thousands(compaction.tokens_reclaimed)}K)"
        ),
        noise_level=NoiseLevel.SYSTEM,
        metadata={
            "contextBefore": before,
            "contextAfter": after,
            "tokensReclaimed": compaction.tokens_reclaimed,
        },
    )


def event_entry(event: SessionEvent, pending_name: str | None = None) -> TimelineEvent | None:
    """Timeline projection of a whole event; None when it has nothing to show.

    ``pending_name`` is the tool name a legacy flat tool_result refers to.
    """
    if event.type == EventType.USER:
        text = extract_user_prompt_text(event.content)
        if not text:
            return None
        return TimelineEvent(
            type=TimelineEventType.USER_PROMPT,
            timestamp=event.raw_timestamp,
            description=text,
            noise_level=classify_user_noise(event),
            is_sidechain=event.is_sidechain,
        )

    if event.type == EventType.ASSISTANT:
        truncated, full = extract_assistant_text(event.content)
        if not truncated:
            return None
        metadata = {"model": event.message.model if event.message else ""}
        if full != truncated:
            metadata["fullText"] = full
        return TimelineEvent(
            type=TimelineEventType.ASSISTANT_RESPONSE,
            timestamp=event.raw_timestamp,
            description=truncated,
            noise_level=NoiseLevel.NOISE if event.is_sidechain else NoiseLevel.AI,
            is_sidechain=event.is_sidechain,
            metadata=metadata,
        )

    if event.type == EventType.TOOL_USE:
        name = event.tool.name if event.tool and event.tool.name else "unknown"
        return TimelineEvent(
            type=TimelineEventType.TOOL_CALL,
            timestamp=event.raw_timestamp,
            description=f"Called {name}",
            noise_level=NoiseLevel.NOISE if event.is_sidechain else NoiseLevel.AI,
            is_sidechain=event.is_sidechain,
            metadata={"toolName": name},
        )

    if event.type == EventType.TOOL_RESULT:
        is_error = bool(event.result and event.result.is_error)
        return tool_result_entry(pending_name or "Tool", is_error, event)

    if event.type == EventType.SUMMARY:
        return TimelineEvent(
            type=TimelineEventType.COMPACTION,
            timestamp=event.raw_timestamp,
            description="Context compacted (summary event)",
            noise_level=NoiseLevel.SYSTEM,
        )

    return None


class Timeline:
    """Fixed-capacity ring; adding to a full timeline drops the oldest entry."""

    def __init__(self, capacity: int = MAX_TIMELINE_EVENTS):
        self._entries: deque[TimelineEvent] = deque(maxlen=max(1, capacity))

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, entry: TimelineEvent) -> TimelineEvent:
        self._entries.appendleft(entry)
        return entry

    def latest(self) -> TimelineEvent | None:
        return self._entries[0] if self._entries else None

    def snapshot(self) -> list[TimelineEvent]:
        """Entries most-recent-first, as a new list."""
        return list(self._entries)

    def clear(self):
        self._entries.clear()
