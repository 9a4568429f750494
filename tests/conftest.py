"""Shared test fixtures for the agent session monitor."""

import os
import sys
from pathlib import Path

import pytest

WORKSPACE = "/home/wiz/projects/myapp"
ENCODED_WORKSPACE = "-home-wiz-projects-myapp"


@pytest.fixture(scope="session")
def qapp():
    """Create a QCoreApplication for tests that need Qt."""
    os.environ["QT_QPA_PLATFORM"] = "offscreen"
    from PySide6.QtCore import QCoreApplication

    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication(sys.argv or ["test"])
    yield app


@pytest.fixture
def workspace() -> str:
    return WORKSPACE


@pytest.fixture
def projects_root(tmp_path) -> Path:
    """Temporary projects root (the agent's ~/.claude/projects)."""
    root = tmp_path / ".claude" / "projects"
    root.mkdir(parents=True)
    return root


@pytest.fixture
def scratch_root(tmp_path) -> Path:
    root = tmp_path / "scratch"
    root.mkdir()
    return root


@pytest.fixture
def session_dir(projects_root) -> Path:
    """The session directory of WORKSPACE under the temporary projects root."""
    d = projects_root / ENCODED_WORKSPACE
    d.mkdir()
    return d


@pytest.fixture
def monitor_config(projects_root, scratch_root):
    from session_monitor.services.config_manager import MonitorConfig
    return MonitorConfig(projects_root=str(projects_root), scratch_root=str(scratch_root))
