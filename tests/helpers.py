"""Shared test helpers: transcript line builders and file writers."""

import json
import os
import time
from pathlib import Path

from PySide6.QtCore import QCoreApplication

from session_monitor.services.jsonl_parser import decode_line
from session_monitor.types.events import SessionEvent

BASE_TS = "2026-02-13T10:00:00.000Z"


def ts(seconds: float = 0.0) -> str:
    """ISO timestamp ``seconds`` after 2026-02-13T10:00:00Z."""
    millis = int(round(seconds * 1000))
    total, ms = divmod(millis, 1000)
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    return f"2026-02-13T{10 + hours:02d}:{minutes:02d}:{secs:02d}.{ms:03d}Z"


def user_line(content="Hello", at: float = 0.0, uuid="", sidechain=False) -> str:
    return json.dumps({
        "type": "user",
        "uuid": uuid,
        "timestamp": ts(at),
        "isSidechain": sidechain,
        "message": {"role": "user", "content": content},
    }, ensure_ascii=False)


def assistant_line(content=None, at: float = 0.0, usage=None, model="claude-sonnet-4",
                   message_id="", uuid="", sidechain=False) -> str:
    message = {"role": "assistant", "model": model,
               "content": content if content is not None else []}
    if message_id:
        message["id"] = message_id
    if usage is not None:
        message["usage"] = usage
    return json.dumps({
        "type": "assistant",
        "uuid": uuid,
        "timestamp": ts(at),
        "isSidechain": sidechain,
        "message": message,
    }, ensure_ascii=False)


def usage(input_tokens=0, output_tokens=0, cache_write=0, cache_read=0, **extra) -> dict:
    data = {
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "cache_creation_input_tokens": cache_write,
        "cache_read_input_tokens": cache_read,
    }
    data.update(extra)
    return data


def text_block(text: str) -> dict:
    return {"type": "text", "text": text}


def tool_use_block(tool_id: str, name: str, tool_input=None) -> dict:
    return {"type": "tool_use", "id": tool_id, "name": name, "input": tool_input or {}}


def tool_result_block(tool_id: str, content="ok", is_error=False) -> dict:
    return {"type": "tool_result", "tool_use_id": tool_id, "content": content,
            "is_error": is_error}


def tool_use_line(tool_id: str, name: str, tool_input=None, at: float = 0.0, uuid="") -> str:
    return assistant_line([tool_use_block(tool_id, name, tool_input)], at=at, uuid=uuid)


def tool_result_line(tool_id: str, content="ok", is_error=False, at: float = 0.0, uuid="") -> str:
    return user_line([tool_result_block(tool_id, content, is_error)], at=at, uuid=uuid)


def event(line: str) -> SessionEvent:
    return decode_line(line)


def events(*lines: str) -> list[SessionEvent]:
    return [decode_line(line) for line in lines]


def write_jsonl(path: Path, lines: list[str]) -> Path:
    """Write JSONL lines to a file (newline-terminated)."""
    path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
    return path


def append_jsonl(path: Path, lines: list[str]):
    with open(path, "a", encoding="utf-8") as f:
        for line in lines:
            f.write(line + "\n")


def set_mtime(path: Path, seconds_ago: float):
    """Backdate a file's modification time."""
    when = time.time() - seconds_ago
    os.utime(path, (when, when))


def process_events(qapp, rounds: int = 20, delay: float = 0.05):
    """Spin the Qt event loop so file watcher and timer signals are delivered."""
    for _ in range(rounds):
        qapp.processEvents()
        time.sleep(delay)
    QCoreApplication.processEvents()
