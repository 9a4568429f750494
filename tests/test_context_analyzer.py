"""Tests for session_monitor.services.context_analyzer."""

from session_monitor.services.context_analyzer import attribute_event
from session_monitor.types.stats import ContextAttribution
from helpers import (
    assistant_line,
    event,
    text_block,
    tool_result_block,
    tool_use_block,
    user_line,
)


def _attribute(*lines: str) -> ContextAttribution:
    attribution = ContextAttribution()
    for line in lines:
        attribute_event(event(line), attribution)
    return attribution


def test_user_plain_text():
    a = _attribute(user_line("a" * 40))
    assert a.user_messages == 10
    assert a.total == 10


def test_user_system_reminder_string():
    a = _attribute(user_line("<system-reminder>" + "x" * 23))
    assert a.system_prompt == 10
    assert a.user_messages == 0


def test_plain_string_ignores_block_only_markers():
    a = _attribute(user_line("# System " + "x" * 31))
    assert a.user_messages == 10
    assert a.system_prompt == 0


def test_user_blocks():
    a = _attribute(user_line([
        text_block("# System\n" + "x" * 11),
        text_block("b" * 8),
        tool_result_block("t1", "r" * 12),
    ]))
    assert a.system_prompt == 5
    assert a.user_messages == 2
    assert a.tool_outputs == 3


def test_tool_result_list_content():
    a = _attribute(user_line([tool_result_block("t1", [{"type": "text", "text": "z" * 16}])]))
    assert a.tool_outputs == 4


def test_assistant_blocks():
    a = _attribute(assistant_line([
        {"type": "thinking", "thinking": "t" * 20},
        text_block("a" * 12),
        tool_use_block("t1", "Read", {"file_path": "/x"}),
    ]))
    assert a.thinking == 5
    assert a.assistant_responses == 3
    # '{"file_path":"/x"}' is 18 chars
    assert a.tool_inputs == 5


def test_assistant_plain_string():
    a = _attribute(assistant_line("hello world!"))
    assert a.assistant_responses == 3


def test_summary_counts_as_other():
    a = _attribute('{"type": "summary", "timestamp": "2026-02-13T10:00:00Z", '
                   '"message": {"content": "' + "s" * 20 + '"}}')
    assert a.other == 5


def test_accumulates_across_events():
    a = _attribute(user_line("a" * 4), user_line("b" * 4))
    assert a.user_messages == 2


def test_empty_content_ignored():
    a = _attribute(assistant_line([]))
    assert a.total == 0
