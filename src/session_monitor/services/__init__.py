"""Services for the agent session monitor."""

from session_monitor.services.session_monitor import SessionMonitor
from session_monitor.services.stats_engine import StatsEngine
from session_monitor.services.lifecycle import Lifecycle, MonitorState
from session_monitor.services.session_reader import IncrementalReader
from session_monitor.services.jsonl_parser import StreamingJsonlParser
from session_monitor.services.event_deduplicator import EventDeduplicator
from session_monitor.services.file_watcher import DirectoryWatcher
from session_monitor.services.config_manager import ConfigManager, MonitorConfig

__all__ = [
    "SessionMonitor",
    "StatsEngine",
    "Lifecycle",
    "MonitorState",
    "IncrementalReader",
    "StreamingJsonlParser",
    "EventDeduplicator",
    "DirectoryWatcher",
    "ConfigManager",
    "MonitorConfig",
]
