"""Tests for session_monitor.services.session_monitor."""

import os
from dataclasses import replace
from unittest.mock import patch

import pytest

from conftest import WORKSPACE
from helpers import (
    append_jsonl,
    assistant_line,
    process_events,
    set_mtime,
    text_block,
    tool_use_block,
    tool_use_line,
    usage,
    user_line,
    write_jsonl,
)
from session_monitor.services.config_manager import ConfigManager
from session_monitor.services.lifecycle import MonitorState
from session_monitor.services.session_monitor import SessionMonitor


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def _turn(n: int, prompt="Fix the login bug", tokens=100) -> list[str]:
    return [
        user_line(prompt, at=n * 10, uuid=f"u{n}"),
        assistant_line([text_block("Looking.")], at=n * 10 + 2, uuid=f"a{n}",
                       usage=usage(tokens, tokens // 2)),
    ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def monitor(qapp, monitor_config, clock):
    m = SessionMonitor(config=monitor_config, monotonic=clock)
    yield m
    m.dispose()


@pytest.fixture
def settings_manager(qapp, tmp_path):
    from PySide6.QtCore import QSettings
    QSettings.setDefaultFormat(QSettings.IniFormat)
    QSettings.setPath(QSettings.IniFormat, QSettings.UserScope, str(tmp_path / "config"))
    return ConfigManager()


def _record(signal):
    received = []
    signal.connect(lambda *args: received.append(args[0] if args else None))
    return received


# ---------------------------------------------------------------------------
# 1. Start and attach
# ---------------------------------------------------------------------------

class TestStart:
    def test_attaches_to_existing_session(self, monitor, session_dir):
        path = write_jsonl(session_dir / "s1.jsonl", _turn(0))
        started = _record(monitor.session_started)

        assert monitor.start(WORKSPACE) is True
        assert monitor.state == MonitorState.ACTIVE
        assert monitor.session_path == str(path)
        assert monitor.session_id == "s1"
        assert started == [str(path)]
        stats = monitor.get_stats()
        assert stats.total_input_tokens == 100
        assert stats.total_output_tokens == 50
        assert stats.message_count == 2

    def test_initial_batch_emits_token_usage(self, monitor, session_dir):
        write_jsonl(session_dir / "s1.jsonl", _turn(0) + _turn(1))
        tokens = _record(monitor.token_usage)
        monitor.start(WORKSPACE)
        assert len(tokens) == 2

    def test_no_session_enters_discovery(self, monitor, session_dir):
        modes = _record(monitor.discovery_mode_changed)
        assert monitor.start(WORKSPACE) is False
        assert monitor.state == MonitorState.DISCOVERY
        assert monitor.session_path is None
        assert modes == [True]

    def test_empty_files_are_not_attached(self, monitor, session_dir):
        (session_dir / "empty.jsonl").write_text("")
        assert monitor.start(WORKSPACE) is False

    def test_discovery_attaches_once_session_appears(self, monitor, projects_root):
        modes = _record(monitor.discovery_mode_changed)
        monitor.start(WORKSPACE)
        assert monitor.state == MonitorState.DISCOVERY

        session_dir = projects_root / "-home-wiz-projects-myapp"
        session_dir.mkdir()
        write_jsonl(session_dir / "s1.jsonl", _turn(0))
        monitor.perform_session_discovery()

        assert monitor.state == MonitorState.ACTIVE
        assert monitor.session_id == "s1"
        assert modes == [True, False]

    def test_attach_missing_file_enters_discovery(self, monitor, session_dir):
        write_jsonl(session_dir / "s1.jsonl", _turn(0))
        monitor.start(WORKSPACE)
        assert monitor.attach(str(session_dir / "gone.jsonl")) is False
        assert monitor.session_path is None
        assert monitor.state == MonitorState.DISCOVERY

    def test_unparseable_tool_url_does_not_abort_attach(self, monitor, session_dir):
        write_jsonl(session_dir / "s1.jsonl", [
            assistant_line([tool_use_block("t1", "WebFetch", {"url": "http://[oops/x"})],
                           at=1, uuid="a1", usage=usage(10, 1)),
            assistant_line([text_block("Fetched.")], at=2, uuid="a2", usage=usage(20, 1)),
        ])
        assert monitor.start(WORKSPACE) is True
        assert monitor.get_stats().total_input_tokens == 30

    def test_unreadable_file_enters_discovery(self, monitor, session_dir):
        write_jsonl(session_dir / "s1.jsonl", _turn(0))
        with patch("session_monitor.services.session_monitor.IncrementalReader.read_all",
                   side_effect=PermissionError("denied")):
            assert monitor.start(WORKSPACE) is False
        assert monitor.state == MonitorState.DISCOVERY
        assert monitor.session_path is None


# ---------------------------------------------------------------------------
# 2. Following the attached file
# ---------------------------------------------------------------------------

class TestFileChanges:
    def test_append_adds_usage(self, monitor, session_dir):
        path = write_jsonl(session_dir / "s1.jsonl", _turn(0))
        monitor.start(WORKSPACE)
        append_jsonl(path, _turn(1, tokens=40))
        monitor.process_file_change()
        stats = monitor.get_stats()
        assert stats.total_input_tokens == 140
        assert stats.total_output_tokens == 70

    def test_no_change_is_noop(self, monitor, session_dir):
        write_jsonl(session_dir / "s1.jsonl", _turn(0))
        monitor.start(WORKSPACE)
        monitor.process_file_change()
        assert monitor.get_stats().total_input_tokens == 100

    def test_partial_line_waits_for_newline(self, monitor, session_dir):
        path = write_jsonl(session_dir / "s1.jsonl", _turn(0))
        monitor.start(WORKSPACE)
        line = _turn(1, tokens=40)[1]
        with open(path, "a", encoding="utf-8") as f:
            f.write(line[:30])
        monitor.process_file_change()
        assert monitor.get_stats().total_input_tokens == 100
        with open(path, "a", encoding="utf-8") as f:
            f.write(line[30:] + "\n")
        monitor.process_file_change()
        assert monitor.get_stats().total_input_tokens == 140

    def test_truncation_rebuilds_counters(self, monitor, session_dir):
        path = write_jsonl(session_dir / "s1.jsonl", _turn(0) + _turn(1))
        monitor.start(WORKSPACE)
        assert monitor.get_stats().total_input_tokens == 200
        write_jsonl(path, _turn(5, tokens=10))
        monitor.process_file_change()
        assert monitor.get_stats().total_input_tokens == 10

    def test_deleted_file_ends_session(self, monitor, session_dir):
        path = write_jsonl(session_dir / "s1.jsonl", _turn(0))
        monitor.start(WORKSPACE)
        ended = _record(monitor.session_ended)
        modes = _record(monitor.discovery_mode_changed)

        os.remove(path)
        monitor.process_file_change()

        assert ended == [None]
        assert modes == [True]
        assert monitor.state == MonitorState.FAST_DISCOVERY
        assert monitor.session_path is None
        assert monitor.get_stats().total_input_tokens == 0

    def test_tool_calls_relayed(self, monitor, session_dir):
        path = write_jsonl(session_dir / "s1.jsonl", _turn(0))
        monitor.start(WORKSPACE)
        calls = _record(monitor.tool_call)
        append_jsonl(path, [tool_use_line("t1", "Read", {"file_path": "/x.py"}, at=30)])
        monitor.process_file_change()
        assert [c.name for c in calls] == ["Read"]

    def test_live_append_through_event_loop(self, qapp, monitor_config, clock, session_dir):
        config = replace(monitor_config, activity_poll_interval_ms=50)
        m = SessionMonitor(config=config, monotonic=clock)
        try:
            path = write_jsonl(session_dir / "s1.jsonl", _turn(0))
            m.start(WORKSPACE)
            append_jsonl(path, _turn(1, tokens=40))
            process_events(qapp, rounds=20)
            assert m.get_stats().total_input_tokens == 140
        finally:
            m.dispose()


# ---------------------------------------------------------------------------
# 3. Directory activity routing
# ---------------------------------------------------------------------------

class TestDirectoryActivity:
    def test_attached_file_schedules_read(self, monitor, session_dir):
        write_jsonl(session_dir / "s1.jsonl", _turn(0))
        monitor.start(WORKSPACE)
        monitor.on_directory_activity("s1.jsonl")
        assert monitor.lifecycle._file_change_timer.isActive()
        assert not monitor.lifecycle._new_session_timer.isActive()

    def test_other_file_schedules_new_session_check(self, monitor, session_dir):
        write_jsonl(session_dir / "s1.jsonl", _turn(0))
        monitor.start(WORKSPACE)
        monitor.on_directory_activity("s2.jsonl")
        assert monitor.lifecycle._new_session_timer.isActive()
        assert not monitor.lifecycle._file_change_timer.isActive()

    def test_non_session_file_ignored(self, monitor, session_dir):
        write_jsonl(session_dir / "s1.jsonl", _turn(0))
        monitor.start(WORKSPACE)
        monitor.on_directory_activity("notes.txt")
        assert not monitor.lifecycle._new_session_timer.isActive()
        assert not monitor.lifecycle._file_change_timer.isActive()

    def test_activity_while_discovering_schedules_discovery(self, monitor, session_dir):
        monitor.start(WORKSPACE)
        monitor.on_directory_activity("s1.jsonl")
        assert monitor.lifecycle._new_session_timer.isActive()

    def test_new_session_timer_attaches_while_discovering(self, monitor, session_dir):
        monitor.start(WORKSPACE)
        write_jsonl(session_dir / "s1.jsonl", _turn(0))
        monitor._on_new_session_timer()
        assert monitor.state == MonitorState.ACTIVE


# ---------------------------------------------------------------------------
# 4. Switching
# ---------------------------------------------------------------------------

class TestSwitching:
    @pytest.fixture
    def attached(self, monitor, session_dir):
        path = write_jsonl(session_dir / "s1.jsonl", _turn(0))
        set_mtime(path, 30)
        monitor.start(WORKSPACE)
        assert monitor.session_id == "s1"
        return monitor

    def test_switches_to_newer_session(self, attached, session_dir):
        ended = _record(attached.session_ended)
        started = _record(attached.session_started)
        write_jsonl(session_dir / "s2.jsonl", _turn(0, tokens=7))

        attached.perform_new_session_check()

        assert attached.session_id == "s2"
        assert ended == [None]
        assert started == [str(session_dir / "s2.jsonl")]
        assert attached.get_stats().total_input_tokens == 7

    def test_same_session_does_not_switch(self, attached):
        started = _record(attached.session_started)
        attached.perform_new_session_check()
        assert started == []
        assert attached.session_id == "s1"

    def test_cooldown_limits_switches(self, attached, session_dir, clock):
        write_jsonl(session_dir / "s2.jsonl", _turn(0))
        set_mtime(session_dir / "s2.jsonl", 20)
        attached.perform_new_session_check()
        assert attached.session_id == "s2"

        write_jsonl(session_dir / "s3.jsonl", _turn(0))
        attached.perform_new_session_check()
        assert attached.session_id == "s2"

        clock.advance(6)
        attached.perform_new_session_check()
        assert attached.session_id == "s3"

    def test_pinned_session_stays(self, attached, session_dir):
        attached.toggle_pin()
        write_jsonl(session_dir / "s2.jsonl", _turn(0))
        attached.perform_new_session_check()
        assert attached.session_id == "s1"
        assert attached.is_pinned

    def test_manual_switch_unpins(self, attached, session_dir):
        attached.toggle_pin()
        other = write_jsonl(session_dir / "s2.jsonl", _turn(0))
        assert attached.switch_to_session(str(other)) is True
        assert attached.session_id == "s2"
        assert not attached.is_pinned

    def test_manual_switch_to_missing_file(self, attached, session_dir):
        assert attached.switch_to_session(str(session_dir / "nope.jsonl")) is False
        assert attached.session_id == "s1"

    def test_refresh_ignores_pin(self, attached, session_dir):
        attached.toggle_pin()
        write_jsonl(session_dir / "s2.jsonl", _turn(0))
        assert attached.refresh_session() is True
        assert attached.session_id == "s2"

    def test_refresh_keeps_current(self, attached):
        started = _record(attached.session_started)
        assert attached.refresh_session() is True
        assert started == []


# ---------------------------------------------------------------------------
# 5. Custom session directory
# ---------------------------------------------------------------------------

class TestCustomPath:
    def test_custom_path_attaches_and_persists(self, qapp, monitor_config, clock,
                                               settings_manager, tmp_path):
        custom = tmp_path / "custom"
        custom.mkdir()
        write_jsonl(custom / "a.jsonl", _turn(0))
        m = SessionMonitor(config=monitor_config, config_manager=settings_manager,
                           monotonic=clock)
        try:
            assert m.start_with_custom_path(str(custom)) is True
            assert m.session_id == "a"
            assert m.custom_session_dir == str(custom)
            assert settings_manager.custom_session_dir() == str(custom)
        finally:
            m.dispose()

    def test_custom_path_not_persisted_when_asked(self, qapp, monitor_config, clock,
                                                  settings_manager, tmp_path):
        custom = tmp_path / "custom"
        custom.mkdir()
        m = SessionMonitor(config=monitor_config, config_manager=settings_manager,
                           monotonic=clock)
        try:
            m.start_with_custom_path(str(custom), persist=False)
            assert settings_manager.custom_session_dir() is None
        finally:
            m.dispose()

    def test_saved_custom_path_used_on_start(self, qapp, monitor_config, clock,
                                             settings_manager, tmp_path, session_dir):
        write_jsonl(session_dir / "workspace.jsonl", _turn(0))
        custom = tmp_path / "custom"
        custom.mkdir()
        write_jsonl(custom / "a.jsonl", _turn(0))
        settings_manager.set_custom_session_dir(str(custom))
        m = SessionMonitor(config=monitor_config, config_manager=settings_manager,
                           monotonic=clock)
        try:
            assert m.start(WORKSPACE) is True
            assert m.session_id == "a"
        finally:
            m.dispose()

    def test_empty_custom_path_enters_discovery(self, monitor, tmp_path):
        custom = tmp_path / "custom"
        custom.mkdir()
        assert monitor.start_with_custom_path(str(custom), persist=False) is False
        assert monitor.state == MonitorState.DISCOVERY

    def test_missing_custom_path_rejected(self, monitor, tmp_path):
        assert monitor.start_with_custom_path(str(tmp_path / "nope")) is False
        assert monitor.custom_session_dir is None

    def test_clear_custom_path(self, qapp, monitor_config, clock, settings_manager, tmp_path):
        custom = tmp_path / "custom"
        custom.mkdir()
        m = SessionMonitor(config=monitor_config, config_manager=settings_manager,
                           monotonic=clock)
        try:
            m.start_with_custom_path(str(custom))
            m.clear_custom_path()
            assert m.custom_session_dir is None
            assert settings_manager.custom_session_dir() is None
        finally:
            m.dispose()


# ---------------------------------------------------------------------------
# 6. Queries
# ---------------------------------------------------------------------------

class TestQueries:
    def test_available_sessions(self, monitor, session_dir):
        old = write_jsonl(session_dir / "old.jsonl", _turn(0, prompt="Old   task"))
        set_mtime(old, 600)
        write_jsonl(session_dir / "new.jsonl", _turn(0, prompt="New task"))
        monitor.start(WORKSPACE)

        sessions = monitor.get_available_sessions()
        assert [s.session_id for s in sessions] == ["new", "old"]
        assert sessions[0].is_current and not sessions[1].is_current
        assert sessions[0].is_active and not sessions[1].is_active
        assert sessions[0].label == "New task"
        assert sessions[1].label == "Old task"

    def test_available_sessions_without_target(self, monitor):
        assert monitor.get_available_sessions() == []

    def test_subagent_stats(self, monitor, session_dir):
        write_jsonl(session_dir / "s1.jsonl", _turn(0))
        subagents = session_dir / "s1" / "subagents"
        subagents.mkdir(parents=True)
        write_jsonl(subagents / "agent-abc.jsonl",
                    [tool_use_line("t1", "Grep", {"pattern": "login"})])
        monitor.start(WORKSPACE)

        stats = monitor.get_subagent_stats()
        assert [s.agent_id for s in stats] == ["abc"]
        assert stats[0].tool_calls[0].name == "Grep"

    def test_subagent_stats_without_session(self, monitor):
        assert monitor.get_subagent_stats() == []

    def test_session_summary(self, monitor, session_dir):
        write_jsonl(session_dir / "s1.jsonl", _turn(0) + _turn(1))
        monitor.start(WORKSPACE)

        summary = monitor.get_session_summary(lambda model, u: 0.5)
        assert summary.session_id == "s1"
        assert summary.input_tokens == 200
        assert summary.message_count == 4
        assert summary.total_cost == pytest.approx(0.5)
        assert [r.model for r in summary.model_usage] == ["claude-sonnet-4"]

    def test_session_summary_without_session(self, monitor):
        assert monitor.get_session_summary() is None

    def test_diagnostics(self, monitor, session_dir):
        assert monitor.get_session_diagnostics() is None
        monitor.start(WORKSPACE)
        diag = monitor.get_session_diagnostics()
        assert diag.expected_session_dir == str(session_dir)
        assert diag.expected_dir_exists

    def test_project_folders(self, monitor, session_dir):
        write_jsonl(session_dir / "s1.jsonl", _turn(0))
        monitor.start(WORKSPACE)
        folders = monitor.list_project_folders()
        assert [f.encoded_name for f in folders] == ["-home-wiz-projects-myapp"]
        assert folders[0].session_count == 1


# ---------------------------------------------------------------------------
# 7. Teardown
# ---------------------------------------------------------------------------

class TestDispose:
    def test_dispose_is_idempotent(self, qapp, monitor_config, clock, session_dir):
        write_jsonl(session_dir / "s1.jsonl", _turn(0))
        m = SessionMonitor(config=monitor_config, monotonic=clock)
        m.start(WORKSPACE)
        m.dispose()
        m.dispose()
        assert m.state == MonitorState.IDLE
        assert m.session_path is None
        assert not m.watcher.is_active
        assert m.get_stats().total_input_tokens == 0

    def test_dispose_releases_listeners(self, qapp, monitor_config, clock, session_dir):
        path = write_jsonl(session_dir / "s1.jsonl", _turn(0))
        m = SessionMonitor(config=monitor_config, monotonic=clock)
        started = _record(m.session_started)
        m.dispose()
        m.attach(str(path))
        assert started == []
        m.watcher.stop()
