"""Task graph maintained from task-management tool calls."""

import logging
import re
from datetime import datetime

import orjson

from session_monitor.types.events import ToolResultBlock, ToolUseBlock
from session_monitor.types.stats import TaskState, TaskStatus, ToolCall, TrackedTask
from session_monitor.utils.token_estimator import result_text

logger = logging.getLogger(__name__)

TASK_TOOLS = frozenset({
    "TaskCreate",
    "TaskUpdate",
    "TaskGet",
    "TaskList",
    "Task",
})

SUBAGENT_PREFIX = "agent-"

_TASK_NUMBER_RE = re.compile(r"task\s*#?\s*(\d+)", re.IGNORECASE)
_TASK_ID_RE = re.compile(r'"?task_?id"?\s*[:=]\s*"?([\w-]+)', re.IGNORECASE)


def extract_task_id(content) -> str | None:
    """Task id reported by a TaskCreate result (JSON body or free text)."""
    text = result_text(content).strip()
    if not text:
        return None
    if text.startswith("{"):
        try:
            data = orjson.loads(text)
        except orjson.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            nested = data.get("task")
            candidates = [data.get("taskId"), data.get("id")]
            if isinstance(nested, dict):
                candidates.append(nested.get("id"))
            for value in candidates:
                if value not in (None, ""):
                    return str(value)
    for pattern in (_TASK_NUMBER_RE, _TASK_ID_RE):
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def _parse_status(value) -> TaskStatus | None:
    try:
        return TaskStatus(str(value))
    except ValueError:
        logger.debug("Ignoring unknown task status %r", value)
        return None


def _merge_ids(target: list[str], ids, own_id: str):
    """Append new dependency ids; duplicates and self-references are skipped."""
    if not isinstance(ids, list):
        return
    for raw in ids:
        id_str = str(raw)
        if id_str != own_id and id_str not in target:
            target.append(id_str)


class TaskTracker:
    """Tracks tasks and subagents; at most one task is active at a time.

    Dependency edges are stored as given: cycles are tolerated and no
    reciprocal edge is synthesized.
    """

    def __init__(self):
        self.state = TaskState()
        self._pending_creates: dict[str, tuple[dict, datetime]] = {}

    @property
    def active_task(self) -> TrackedTask | None:
        if self.state.active_task_id is None:
            return None
        return self.state.tasks.get(self.state.active_task_id)

    def on_tool_use(self, block: ToolUseBlock, timestamp: datetime):
        if block.name == "TaskCreate":
            self._pending_creates[block.id] = (dict(block.input), timestamp)
        elif block.name == "Task":
            self._spawn_subagent(block, timestamp)
        elif block.name == "TaskUpdate":
            self._update(block.input, timestamp)

    def on_tool_result(self, tool_name: str, block: ToolResultBlock,
                       timestamp: datetime) -> bool:
        """Apply a result to the task graph. Returns True if it changed."""
        if tool_name == "TaskCreate":
            return self._complete_create(block, timestamp)
        if tool_name == "Task":
            task = self.state.tasks.get(SUBAGENT_PREFIX + block.tool_use_id)
            if task is None:
                return False
            task.status = TaskStatus.DELETED if block.is_error else TaskStatus.COMPLETED
            task.updated_at = timestamp
            return True
        return False

    def associate(self, call: ToolCall):
        """Attach a non-task tool call to the active task, if any."""
        if call.name in TASK_TOOLS:
            return
        task = self.active_task
        if task is not None:
            task.associated_tool_calls.append(call)

    def _spawn_subagent(self, block: ToolUseBlock, timestamp: datetime):
        task_id = SUBAGENT_PREFIX + block.id
        description = str(block.input.get("description") or "Subagent")
        subagent_type = str(block.input.get("subagent_type") or "")
        self.state.tasks[task_id] = TrackedTask(
            task_id=task_id,
            subject=description,
            status=TaskStatus.IN_PROGRESS,
            created_at=timestamp,
            updated_at=timestamp,
            active_form=f"Running {subagent_type} agent" if subagent_type else "Running subagent",
            is_subagent=True,
            subagent_type=subagent_type,
            tool_use_id=block.id,
        )
        logger.debug("Subagent spawned: %s (%s)", task_id, subagent_type or "unknown")

    def _complete_create(self, block: ToolResultBlock, timestamp: datetime) -> bool:
        pending = self._pending_creates.pop(block.tool_use_id, None)
        if pending is None:
            return False
        if block.is_error:
            logger.debug("TaskCreate failed for %s", block.tool_use_id)
            return False
        task_id = extract_task_id(block.content)
        if not task_id:
            logger.debug("No task id in TaskCreate result: %.100s", result_text(block.content))
            return False

        task_input, created_at = pending
        self.state.tasks[task_id] = TrackedTask(
            task_id=task_id,
            subject=str(task_input.get("subject") or ""),
            status=TaskStatus.PENDING,
            created_at=created_at,
            updated_at=timestamp,
            description=str(task_input.get("description") or ""),
            active_form=str(task_input.get("activeForm") or ""),
        )
        logger.debug("Created task %s", task_id)
        return True

    def _update(self, task_input: dict, timestamp: datetime):
        task_id = str(task_input.get("taskId") or "")
        if not task_id:
            logger.debug("TaskUpdate without taskId ignored")
            return
        status = _parse_status(task_input["status"]) if task_input.get("status") else None

        task = self.state.tasks.get(task_id)
        if task is None:
            logger.debug("TaskUpdate for unknown task %s, creating placeholder", task_id)
            task = TrackedTask(
                task_id=task_id,
                subject=str(task_input.get("subject") or f"Task {task_id}"),
                status=status or TaskStatus.PENDING,
                created_at=timestamp,
                updated_at=timestamp,
                description=str(task_input.get("description") or ""),
                active_form=str(task_input.get("activeForm") or ""),
            )
            self.state.tasks[task_id] = task
            if task.status == TaskStatus.IN_PROGRESS:
                self.state.active_task_id = task_id
        else:
            if status is not None:
                old_status = task.status
                task.status = status
                if status == TaskStatus.IN_PROGRESS and old_status != TaskStatus.IN_PROGRESS:
                    self.state.active_task_id = task_id
                elif (old_status == TaskStatus.IN_PROGRESS and status != TaskStatus.IN_PROGRESS
                        and self.state.active_task_id == task_id):
                    self.state.active_task_id = None
            if task_input.get("subject"):
                task.subject = str(task_input["subject"])
            if task_input.get("description"):
                task.description = str(task_input["description"])
            if task_input.get("activeForm"):
                task.active_form = str(task_input["activeForm"])
            task.updated_at = timestamp

        _merge_ids(task.blocked_by, task_input.get("addBlockedBy"), task_id)
        _merge_ids(task.blocks, task_input.get("addBlocks"), task_id)
