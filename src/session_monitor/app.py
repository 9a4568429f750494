"""Application entry point: headless monitor with a logging console."""

import argparse
import logging
import os
import signal
import sys

from PySide6.QtCore import QCoreApplication, QTimer

from session_monitor.services.config_manager import ConfigManager
from session_monitor.services.session_monitor import SessionMonitor

logger = logging.getLogger("session_monitor")


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="session-monitor",
        description="Follow an AI agent session transcript and report live usage.",
    )
    parser.add_argument("workspace", nargs="?", default=os.getcwd(),
                        help="workspace directory whose sessions to monitor (default: cwd)")
    parser.add_argument("--session-dir", help="monitor this session directory instead")
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    return parser.parse_args(argv)


def _connect_logging(monitor: SessionMonitor):
    monitor.session_started.connect(lambda path: logger.info("Session started: %s", path))
    monitor.session_ended.connect(lambda: logger.info("Session ended"))
    monitor.discovery_mode_changed.connect(
        lambda waiting: logger.info("Waiting for a session..." if waiting else "Session found")
    )
    monitor.token_usage.connect(
        lambda u: logger.info("Tokens [%s]: in=%d out=%d cache_write=%d cache_read=%d",
                              u.model, u.input_tokens, u.output_tokens,
                              u.cache_write_tokens, u.cache_read_tokens)
    )
    monitor.tool_call.connect(lambda call: logger.info("Tool call: %s", call.name))
    monitor.latency_updated.connect(
        lambda s: logger.info("Latency: first token %.0fms, total avg %.0fms",
                              s.last_first_token_latency_ms, s.avg_total_response_time_ms)
    )
    monitor.compaction_detected.connect(
        lambda c: logger.info("Compaction: %d -> %d tokens", c.context_before, c.context_after)
    )


def _print_summary(monitor: SessionMonitor):
    stats = monitor.get_stats()
    print(f"Session:       {monitor.session_id or '-'}")
    print(f"Messages:      {stats.message_count}")
    print(f"Input tokens:  {stats.total_input_tokens}")
    print(f"Output tokens: {stats.total_output_tokens}")
    print(f"Cache write:   {stats.total_cache_write_tokens}")
    print(f"Cache read:    {stats.total_cache_read_tokens}")
    print(f"Context:       {stats.current_context_size} "
          f"({stats.context_usage_percent:.1f}% of {stats.context_window_size})")
    print(f"Tool calls:    {len(stats.tool_calls)}")
    print(f"Burn rate:     {monitor.get_burn_rate():.0f} tokens/min")
    for name, analytics in sorted(stats.tool_analytics.items()):
        print(f"  {name}: {analytics.success_count} ok, {analytics.failure_count} failed")


def run(argv: list[str] | None = None) -> int:
    """Launch the monitor and run until interrupted."""
    args = _parse_args(sys.argv[1:] if argv is None else argv)

    app = QCoreApplication(sys.argv[:1])
    app.setApplicationName("Agent Session Monitor")
    app.setOrganizationName("agent-session-monitor")

    config_manager = ConfigManager()
    level = logging.DEBUG if args.debug or config_manager.debug_logging() else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    monitor = SessionMonitor(config_manager=config_manager)
    _connect_logging(monitor)

    # Quit the event loop on Ctrl+C
    signal.signal(signal.SIGINT, lambda *_: app.quit())
    # Let the Python interpreter run periodically so the signal handler fires
    heartbeat = QTimer()
    heartbeat.timeout.connect(lambda: None)
    heartbeat.start(250)

    if args.session_dir:
        if not os.path.isdir(args.session_dir):
            print(f"Session directory not found: {args.session_dir}", file=sys.stderr)
            return 1
        monitor.start_with_custom_path(os.path.abspath(args.session_dir), persist=False)
    else:
        monitor.start(os.path.abspath(args.workspace))

    ret = app.exec()
    _print_summary(monitor)
    monitor.dispose()
    return ret
