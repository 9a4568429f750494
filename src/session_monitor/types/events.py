"""Parsed transcript records and their content blocks."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union


class EventType(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_USE = "tool_use"
    TOOL_RESULT = "tool_result"
    SUMMARY = "summary"


class BlockType(str, Enum):
    TEXT = "text"
    THINKING = "thinking"
    TOOL_USE = "tool_use"
    TOOL_RESULT = "tool_result"


@dataclass(frozen=True)
class TextBlock:
    text: str
    type: BlockType = BlockType.TEXT


@dataclass(frozen=True)
class ThinkingBlock:
    thinking: str
    type: BlockType = BlockType.THINKING


@dataclass(frozen=True)
class ToolUseBlock:
    id: str
    name: str
    input: dict = field(default_factory=dict)
    type: BlockType = BlockType.TOOL_USE


@dataclass(frozen=True)
class ToolResultBlock:
    tool_use_id: str
    content: Any = ""  # str or list of result parts
    is_error: bool = False
    type: BlockType = BlockType.TOOL_RESULT


ContentBlock = Union[TextBlock, ThinkingBlock, ToolUseBlock, ToolResultBlock]

# Plain text, or an ordered sequence of typed blocks
MessageContent = Union[str, tuple[ContentBlock, ...], None]


@dataclass(frozen=True)
class EventMessage:
    role: str = ""
    content: MessageContent = None
    model: str = ""
    id: str = ""
    usage: Optional[dict] = None


@dataclass(frozen=True)
class FlatToolUse:
    """Top-level ``tool`` field of a legacy flat tool_use record."""
    name: str
    input: dict = field(default_factory=dict)


@dataclass(frozen=True)
class FlatToolResult:
    """Top-level ``result`` field of a legacy flat tool_result record."""
    tool_use_id: str
    is_error: bool = False


@dataclass(frozen=True)
class SessionEvent:
    """One decoded transcript line.

    ``type`` keeps the raw discriminator string so unknown record kinds flow
    through the pipeline untouched; compare against ``EventType`` members.
    """
    type: str
    timestamp: datetime
    raw_timestamp: str = ""
    message: Optional[EventMessage] = None
    tool: Optional[FlatToolUse] = None
    result: Optional[FlatToolResult] = None
    uuid: str = ""
    request_id: str = ""
    is_sidechain: bool = False

    @property
    def content(self) -> MessageContent:
        return self.message.content if self.message else None

    def blocks(self) -> tuple[ContentBlock, ...]:
        """Content blocks, or an empty tuple for plain-text/no content."""
        content = self.content
        if isinstance(content, tuple):
            return content
        return ()
