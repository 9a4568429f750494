"""Heuristic context-window attribution by content category.

Each event adds an estimated token count (~4 chars per token) to one of the
buckets of a running ContextAttribution: system prompt, user messages,
assistant responses, tool inputs, tool outputs, thinking, or other.
"""

from session_monitor.types.events import (
    EventType,
    SessionEvent,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from session_monitor.types.stats import ContextAttribution
from session_monitor.utils.message_classifier import is_system_prompt_text
from session_monitor.utils.token_estimator import (
    estimate_tokens,
    result_text,
    serialize_input,
)


def attribute_event(event: SessionEvent, attribution: ContextAttribution):
    """Add one event's estimated tokens to ``attribution`` in place."""
    content = event.content
    if not content:
        return

    if event.type == EventType.USER:
        if isinstance(content, str):
            if is_system_prompt_text(content, plain_string=True):
                attribution.system_prompt += estimate_tokens(content)
            else:
                attribution.user_messages += estimate_tokens(content)
            return
        for block in content:
            if isinstance(block, ToolResultBlock):
                attribution.tool_outputs += estimate_tokens(result_text(block.content))
            elif isinstance(block, TextBlock):
                if is_system_prompt_text(block.text):
                    attribution.system_prompt += estimate_tokens(block.text)
                else:
                    attribution.user_messages += estimate_tokens(block.text)

    elif event.type == EventType.ASSISTANT:
        if isinstance(content, str):
            attribution.assistant_responses += estimate_tokens(content)
            return
        for block in content:
            if isinstance(block, ThinkingBlock):
                attribution.thinking += estimate_tokens(block.thinking)
            elif isinstance(block, ToolUseBlock):
                attribution.tool_inputs += estimate_tokens(serialize_input(block.input))
            elif isinstance(block, TextBlock):
                attribution.assistant_responses += estimate_tokens(block.text)

    elif event.type == EventType.SUMMARY:
        text = content if isinstance(content, str) else serialize_input(content)
        attribution.other += estimate_tokens(text)
