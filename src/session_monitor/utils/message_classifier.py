"""Classify transcript events for latency tracking, timeline noise and attribution."""

from session_monitor.types.events import SessionEvent, TextBlock, ToolResultBlock
from session_monitor.types.stats import NoiseLevel

# Markers of injected instructions rather than human-typed text
SYSTEM_PROMPT_MARKERS = (
    "<system-reminder>",
    "CLAUDE.md",
    "# System",
    "<claude_code_instructions>",
)

# Plain-string content only checks the two most common markers
_STRING_SYSTEM_MARKERS = ("<system-reminder>", "CLAUDE.md")

_SYSTEM_NOISE_MARKERS = ("<system-reminder>", "permission_prompt")


def has_text_content(event: SessionEvent) -> bool:
    """True if the event carries non-whitespace visible text.

    Events that only hold tool_use or tool_result blocks do not count.
    """
    content = event.content
    if isinstance(content, str):
        return bool(content.strip())
    return any(
        isinstance(block, TextBlock) and block.text.strip()
        for block in event.blocks()
    )


def is_system_prompt_text(text: str, plain_string: bool = False) -> bool:
    markers = _STRING_SYSTEM_MARKERS if plain_string else SYSTEM_PROMPT_MARKERS
    return any(marker in text for marker in markers)


def classify_user_noise(event: SessionEvent) -> NoiseLevel:
    """Noise level of a user event for timeline display.

    - sidechain events → noise
    - first text block carrying a system reminder / permission prompt → system
    - only tool_result blocks, no text → system
    - everything else → user
    """
    if event.is_sidechain:
        return NoiseLevel.NOISE

    blocks = event.blocks()
    if not blocks:
        return NoiseLevel.USER

    text_blocks = [b for b in blocks if isinstance(b, TextBlock)]
    has_text = any(b.text.strip() for b in text_blocks)
    has_tool_result = any(isinstance(b, ToolResultBlock) for b in blocks)

    if has_text:
        first_text = text_blocks[0].text
        if any(marker in first_text for marker in _SYSTEM_NOISE_MARKERS):
            return NoiseLevel.SYSTEM

    if not has_text and has_tool_result:
        return NoiseLevel.SYSTEM

    return NoiseLevel.USER
