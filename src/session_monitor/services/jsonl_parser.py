"""Streaming JSONL parser for agent session transcripts."""

import codecs
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator

import orjson

from session_monitor.types.events import (
    ContentBlock,
    EventMessage,
    EventType,
    FlatToolResult,
    FlatToolUse,
    MessageContent,
    SessionEvent,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from session_monitor.types.stats import TokenUsage

logger = logging.getLogger(__name__)


class MalformedLineError(ValueError):
    """A transcript line that could not be decoded into an event."""

    def __init__(self, message: str, line: str = ""):
        super().__init__(message)
        self.line = line


EventCallback = Callable[[SessionEvent], None]
ErrorCallback = Callable[[Exception, str], None]


class StreamingJsonlParser:
    """Line-buffering decoder fed with arbitrary chunks of a transcript.

    Complete lines are decoded as soon as their newline arrives; the trailing
    fragment stays buffered until more data or ``flush()``. Byte chunks may
    split multi-byte characters anywhere.
    """

    def __init__(self, on_event: EventCallback, on_error: ErrorCallback | None = None):
        self._on_event = on_event
        self._on_error = on_error
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def buffered(self) -> str:
        """The pending, not yet terminated fragment."""
        return self._buffer

    def process_chunk(self, chunk: str | bytes):
        if isinstance(chunk, (bytes, bytearray)):
            chunk = self._decoder.decode(bytes(chunk))
        self._buffer += chunk
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        for line in lines:
            self._parse_line(line)

    def flush(self):
        """Decode whatever is left in the buffer (end of stream)."""
        tail = self._decoder.decode(b"", final=True)
        if tail:
            self._buffer += tail
        remaining = self._buffer
        self._buffer = ""
        # The tail may still hold several lines when it came from the decoder
        for line in remaining.split("\n"):
            self._parse_line(line)

    def reset(self):
        self._buffer = ""
        self._decoder.reset()

    def _parse_line(self, line: str):
        if not line.strip():
            return
        try:
            event = decode_line(line)
        except ValueError as e:
            if self._on_error is not None:
                self._on_error(e, line)
            else:
                logger.debug("Skipping malformed line: %s (%.100s)", e, line)
            return
        self._on_event(event)


def decode_line(line: str) -> SessionEvent:
    """Decode one transcript line.

    Raises MalformedLineError (a ValueError) for anything that is not a JSON
    object; lines not starting with '{' are rejected before JSON decoding.
    """
    stripped = line.strip()
    if not stripped.startswith("{"):
        raise MalformedLineError("Line does not start with '{'", line)
    try:
        raw = orjson.loads(stripped)
    except orjson.JSONDecodeError as e:
        raise MalformedLineError(f"Invalid JSON: {e}", line) from e
    if not isinstance(raw, dict):
        raise MalformedLineError("Line is not a JSON object", line)
    return parse_event(raw)


def parse_event(raw: dict) -> SessionEvent:
    """Build a SessionEvent from a decoded record. Unknown fields are ignored."""
    raw_ts = raw.get("timestamp", "")
    message = raw.get("message")
    tool = raw.get("tool")
    result = raw.get("result")

    return SessionEvent(
        type=str(raw.get("type", "")),
        timestamp=_parse_timestamp(raw_ts),
        raw_timestamp=raw_ts if isinstance(raw_ts, str) else str(raw_ts),
        message=_parse_message(message) if isinstance(message, dict) else None,
        tool=FlatToolUse(
            name=str(tool.get("name", "")),
            input=tool.get("input") if isinstance(tool.get("input"), dict) else {},
        ) if isinstance(tool, dict) else None,
        result=FlatToolResult(
            tool_use_id=str(result.get("tool_use_id", "")),
            is_error=bool(result.get("is_error", False)),
        ) if isinstance(result, dict) else None,
        uuid=str(raw.get("uuid", "") or ""),
        request_id=str(raw.get("requestId", "") or ""),
        is_sidechain=bool(raw.get("isSidechain", False)),
    )


def _parse_message(message: dict) -> EventMessage:
    usage = message.get("usage")
    return EventMessage(
        role=str(message.get("role", "") or ""),
        content=_parse_content(message.get("content")),
        model=str(message.get("model", "") or ""),
        id=str(message.get("id", "") or ""),
        usage=usage if isinstance(usage, dict) else None,
    )


def _parse_content(content) -> MessageContent:
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return None
    blocks = []
    for item in content:
        if not isinstance(item, dict):
            continue
        block = _parse_block(item)
        if block is not None:
            blocks.append(block)
    return tuple(blocks)


def _parse_block(item: dict) -> ContentBlock | None:
    """Validate the block tag, then read only that variant's fields."""
    block_type = item.get("type")
    if block_type == "text":
        text = item.get("text")
        return TextBlock(text=text) if isinstance(text, str) else None
    if block_type == "thinking":
        thinking = item.get("thinking")
        return ThinkingBlock(thinking=thinking) if isinstance(thinking, str) else None
    if block_type == "tool_use":
        tool_input = item.get("input")
        return ToolUseBlock(
            id=str(item.get("id", "") or ""),
            name=str(item.get("name", "") or ""),
            input=tool_input if isinstance(tool_input, dict) else {},
        )
    if block_type == "tool_result":
        return ToolResultBlock(
            tool_use_id=str(item.get("tool_use_id", "") or ""),
            content=item.get("content", ""),
            is_error=bool(item.get("is_error", False)),
        )
    return None


def extract_token_usage(event: SessionEvent) -> TokenUsage | None:
    """Normalized usage of an assistant event, or None."""
    if event.type != EventType.ASSISTANT or event.message is None:
        return None
    usage = event.message.usage
    if not usage:
        return None
    reported = usage.get("reported_cost")
    return TokenUsage(
        input_tokens=_int(usage.get("input_tokens")),
        output_tokens=_int(usage.get("output_tokens")),
        cache_write_tokens=_int(usage.get("cache_creation_input_tokens")),
        cache_read_tokens=_int(usage.get("cache_read_input_tokens")),
        model=event.message.model or "unknown",
        timestamp=event.timestamp,
        reported_cost=float(reported) if isinstance(reported, (int, float)) else None,
        reasoning_tokens=_int(usage.get("reasoning_tokens")),
    )


def stream_session_file(file_path: str | Path) -> Iterator[SessionEvent]:
    """Stream-parse a complete session file. Malformed lines are skipped."""
    path = Path(file_path)
    events: list[SessionEvent] = []
    parser = StreamingJsonlParser(events.append)
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(64 * 1024), b""):
                parser.process_chunk(chunk)
                yield from events
                events.clear()
    except OSError as e:
        logger.warning("Cannot read session file %s: %s", path, e)
        return
    parser.flush()
    yield from events


def _int(value) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    return 0


def _parse_timestamp(ts_value) -> datetime:
    """Parse a timestamp into an aware UTC datetime; falls back to now."""
    if isinstance(ts_value, (int, float)) and not isinstance(ts_value, bool):
        seconds = ts_value / 1000 if ts_value > 1e12 else ts_value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            pass
    elif isinstance(ts_value, str) and ts_value:
        try:
            # ISO 8601 format: "2026-02-13T12:00:00.000Z"
            parsed = datetime.fromisoformat(ts_value.replace("Z", "+00:00"))
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed
        except ValueError:
            pass
    return datetime.now(timezone.utc)
