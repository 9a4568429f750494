"""Discover and summarize subagent transcripts belonging to a session."""

import logging
import re
from pathlib import Path

from session_monitor.services.jsonl_parser import stream_session_file
from session_monitor.types.events import EventType, TextBlock, ToolUseBlock
from session_monitor.types.stats import SubagentStats, ToolCall

logger = logging.getLogger(__name__)

_AGENT_FILE_RE = re.compile(r"^agent-(.+)\.jsonl$")
_SUBAGENT_TYPE_RE = re.compile(r"""subagent_type['":\s]+(\w+)""", re.IGNORECASE)


def discover_subagents(session_dir: str | Path, session_id: str) -> list[str]:
    """Find all agent-*.jsonl files in <session_dir>/<session_id>/subagents/.

    Returns sorted list of file paths.
    """
    subagents_dir = Path(session_dir) / session_id / "subagents"
    try:
        names = [f.name for f in subagents_dir.iterdir() if f.is_file()]
    except OSError:
        return []
    return sorted(str(subagents_dir / n) for n in names if _AGENT_FILE_RE.match(n))


def parse_subagent(file_path: str | Path) -> SubagentStats | None:
    """Tool calls, type and description of one subagent transcript.

    Returns None when the file holds none of those.
    """
    path = Path(file_path)
    match = _AGENT_FILE_RE.match(path.name)
    agent_id = match.group(1) if match else path.stem

    tool_calls: list[ToolCall] = []
    agent_type = ""
    description = ""

    for event in stream_session_file(path):
        if event.type == "system":
            content = event.content
            if isinstance(content, str):
                text = content
            else:
                text = "\n".join(b.text for b in event.blocks() if isinstance(b, TextBlock))
            type_match = _SUBAGENT_TYPE_RE.search(text)
            if type_match:
                agent_type = type_match.group(1)
        elif event.type == EventType.ASSISTANT:
            for block in event.blocks():
                if not isinstance(block, ToolUseBlock):
                    continue
                tool_calls.append(ToolCall(
                    name=block.name,
                    input=dict(block.input),
                    timestamp=event.timestamp,
                    tool_use_id=block.id,
                ))
                # Nested Task calls reveal the delegated agent
                if block.name == "Task":
                    if not agent_type and block.input.get("subagent_type"):
                        agent_type = str(block.input["subagent_type"])
                    if not description and block.input.get("description"):
                        description = str(block.input["description"])

    if not tool_calls and not agent_type and not description:
        return None
    return SubagentStats(
        agent_id=agent_id,
        agent_type=agent_type,
        description=description,
        tool_calls=tool_calls,
    )


def scan_subagents(session_dir: str | Path, session_id: str) -> list[SubagentStats]:
    """Stats for every subagent transcript of a session."""
    results = []
    for file_path in discover_subagents(session_dir, session_id):
        stats = parse_subagent(file_path)
        if stats is not None:
            logger.debug("Subagent %s: %d tool calls", stats.agent_id, len(stats.tool_calls))
            results.append(stats)
    return results
