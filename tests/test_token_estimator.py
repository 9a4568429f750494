"""Tests for token estimation heuristics."""

from session_monitor.utils.token_estimator import (
    estimate_tokens,
    result_text,
    serialize_input,
)


def test_empty_text():
    assert estimate_tokens("") == 0


def test_rounds_up():
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_serialize_input_compact():
    assert serialize_input({"a": 1}) == '{"a":1}'


def test_result_text_from_parts():
    content = [{"type": "text", "text": "one"}, "two", {"type": "image"}]
    assert result_text(content) == "one\ntwo\n"


def test_result_text_none():
    assert result_text(None) == ""
