"""Token estimation heuristics for context attribution."""

import math

import orjson

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Estimate token count from text using ~4 chars per token heuristic."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def serialize_input(value) -> str:
    """Compact JSON rendering of a tool input, used for size estimates."""
    try:
        return orjson.dumps(value, default=str).decode("utf-8")
    except TypeError:
        return str(value)


def result_text(content) -> str:
    """Flatten tool_result content (str or list of parts) to plain text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for item in content:
            if isinstance(item, dict):
                parts.append(str(item.get("text", "")))
            elif isinstance(item, str):
                parts.append(item)
        return "\n".join(parts)
    if content is None:
        return ""
    return serialize_input(content)
