"""Session file and project folder metadata types."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class SessionInfo:
    path: str
    session_id: str
    modified_time: datetime
    is_current: bool = False
    label: Optional[str] = None
    is_active: bool = False


@dataclass
class ProjectFolder:
    dir: str            # Absolute path of the session directory
    encoded_name: str   # Directory name
    decoded_path: str   # Best-effort workspace path
    name: str = ""      # Display name (last path segment)
    session_count: int = 0
    last_modified: float = 0.0


@dataclass
class SessionDiagnostics:
    workspace_path: str
    encoded_path: str
    expected_session_dir: str
    expected_dir_exists: bool
    discovered_session_dir: Optional[str]
    existing_project_dirs: list[str] = field(default_factory=list)
    similar_dirs: list[str] = field(default_factory=list)
    platform: str = ""
