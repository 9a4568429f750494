"""Extract and shorten message text for timeline descriptions and labels."""

import re

from session_monitor.types.events import MessageContent, TextBlock

_WHITESPACE_RE = re.compile(r"\s+")
_TOOL_USE_ERROR_RE = re.compile(r"</?tool_use_error>")


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text.strip())


def truncate(text: str, limit: int) -> str:
    """Cut text to at most ``limit`` characters, ending in '...' when shortened."""
    if len(text) <= limit:
        return text
    return text[:limit - 3] + "..."


def extract_user_prompt_text(content: MessageContent, limit: int = 100) -> str:
    """Display text of a user prompt: the first text block, collapsed and truncated.

    Returns an empty string when there is nothing to show.
    """
    if isinstance(content, str):
        text = content
    elif content:
        text = next((b.text for b in content if isinstance(b, TextBlock)), "")
    else:
        return ""
    text = collapse_whitespace(text)
    if not text:
        return ""
    return truncate(text, limit)


def extract_assistant_text(content: MessageContent, limit: int = 150) -> tuple[str, str]:
    """All text blocks of an assistant reply joined together.

    Returns (truncated, full); both empty when the reply has no text.
    """
    if isinstance(content, str):
        parts = [content]
    elif content:
        parts = [b.text for b in content if isinstance(b, TextBlock)]
    else:
        return "", ""
    full = collapse_whitespace("\n".join(parts))
    if not full:
        return "", ""
    return truncate(full, limit), full


def clean_error_message(content, tool_name: str, limit: int = 150) -> str:
    """Readable error line for a failed tool result: 'Tool: message'."""
    msg = str(content) if content else "Unknown error"
    msg = _TOOL_USE_ERROR_RE.sub("", msg).strip()
    return f"{tool_name}: {truncate(msg, limit)}"
