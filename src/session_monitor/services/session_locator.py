"""Locate session directories and session files for a workspace.

Every function here swallows file-system errors: a missing or unreadable
directory yields None or an empty list, never an exception.
"""

import logging
import os
import sys
import tempfile
import time
from pathlib import Path

import orjson

from session_monitor.types.sessions import ProjectFolder, SessionDiagnostics
from session_monitor.utils.content_sanitizer import collapse_whitespace, truncate
from session_monitor.utils.path_codec import (
    decode_path,
    encode_workspace_path,
    extract_project_name,
    normalize_path,
)

logger = logging.getLogger(__name__)

SESSION_EXTENSION = ".jsonl"
ACTIVE_SESSION_THRESHOLD_MS = 5 * 60 * 1000
LABEL_SCAN_BYTES = 8192
LABEL_MAX_LENGTH = 60


def default_projects_root() -> Path:
    return Path.home() / ".claude" / "projects"


def default_scratch_root() -> Path:
    """Scratch area the agent creates per workspace: <tmp>/claude/<encoded>/..."""
    return Path(tempfile.gettempdir()) / "claude"


def is_session_file(filename: str) -> bool:
    return filename.endswith(SESSION_EXTENSION)


def session_id_from_path(session_path: str) -> str:
    name = Path(session_path).name
    return name[:-len(SESSION_EXTENSION)] if is_session_file(name) else name


def get_session_directory(workspace_path: str, projects_root: str | Path | None = None) -> str:
    """Predicted session directory for a workspace (may not exist)."""
    root = Path(projects_root) if projects_root else default_projects_root()
    return str(root / encode_workspace_path(workspace_path))


def _list_dirs(root: Path) -> list[str]:
    try:
        return sorted(entry.name for entry in root.iterdir() if entry.is_dir())
    except OSError:
        return []


def _workspace_basename(workspace_path: str) -> str:
    base = normalize_path(workspace_path).rsplit("/", 1)[-1]
    return base.replace("_", "-").lower()


def _matches_basename(dir_name: str, basename: str) -> bool:
    lower = dir_name.lower()
    return bool(basename) and (lower == basename or lower.endswith("-" + basename))


def resolve_session_directory(
    workspace_path: str,
    projects_root: str | Path | None = None,
    scratch_root: str | Path | None = None,
) -> str | None:
    """Find the session directory for a workspace.

    Strategies, in order:
    1. the predicted (encoded) directory, if it exists
    2. a case-insensitive exact name match under the projects root
    3. a directory whose name ends with the workspace's final component
    4. a scratch-area directory matching by basename, mapped back to the
       projects root
    """
    if not workspace_path:
        return None
    root = Path(projects_root) if projects_root else default_projects_root()
    scratch = Path(scratch_root) if scratch_root else default_scratch_root()

    predicted = Path(get_session_directory(workspace_path, root))
    if predicted.is_dir():
        return str(predicted)

    existing = _list_dirs(root)
    encoded_lower = encode_workspace_path(workspace_path).lower()
    for name in existing:
        if name.lower() == encoded_lower:
            return str(root / name)

    basename = _workspace_basename(workspace_path)
    for name in existing:
        if _matches_basename(name, basename):
            return str(root / name)

    for name in _list_dirs(scratch):
        if _matches_basename(name, basename):
            candidate = root / name
            if candidate.is_dir():
                return str(candidate)

    logger.debug("No session directory found for %s", workspace_path)
    return None


def _stat_session_files(session_dir: str | Path) -> list[tuple[str, float, int]]:
    """(path, mtime, size) for every session file in a directory."""
    results = []
    try:
        entries = list(os.scandir(session_dir))
    except OSError:
        return []
    for entry in entries:
        if not is_session_file(entry.name):
            continue
        try:
            if not entry.is_file():
                continue
            st = entry.stat()
        except OSError:
            continue
        results.append((entry.path, st.st_mtime, st.st_size))
    return results


def find_active_session(
    session_dir: str | Path | None,
    threshold_ms: int = ACTIVE_SESSION_THRESHOLD_MS,
    now: float | None = None,
) -> str | None:
    """Most relevant non-empty session file in a directory.

    Files modified within ``threshold_ms`` sort ahead of older ones; within
    each group the most recently modified wins.
    """
    if not session_dir:
        return None
    now = time.time() if now is None else now
    threshold_s = threshold_ms / 1000.0
    files = [f for f in _stat_session_files(session_dir) if f[2] > 0]
    if not files:
        return None
    files.sort(key=lambda f: (not (now - f[1]) < threshold_s, -f[1]))
    return files[0][0]


def find_all_sessions(session_dir: str | Path | None) -> list[str]:
    """All session files in a directory, most recently modified first."""
    if not session_dir:
        return []
    files = _stat_session_files(session_dir)
    files.sort(key=lambda f: f[1], reverse=True)
    return [f[0] for f in files]


def find_sessions_in_directory(directory: str | Path | None) -> list[str]:
    """Non-empty session files in an arbitrary (custom) directory, newest first."""
    if not directory:
        return []
    files = [f for f in _stat_session_files(directory) if f[2] > 0]
    files.sort(key=lambda f: f[1], reverse=True)
    return [f[0] for f in files]


def extract_session_label(session_path: str | Path) -> str | None:
    """First user prompt of a session, for pickers and listings.

    Only the first 8 KB are scanned; the text is whitespace-collapsed and
    truncated to 60 characters.
    """
    try:
        with open(session_path, "rb") as f:
            head = f.read(LABEL_SCAN_BYTES)
    except OSError:
        return None
    if not head:
        return None

    for line in head.decode("utf-8", errors="replace").split("\n"):
        line = line.strip()
        if not line:
            continue
        try:
            raw = orjson.loads(line)
        except orjson.JSONDecodeError:
            continue
        if not isinstance(raw, dict) or raw.get("type") != "user":
            continue
        message = raw.get("message")
        if not isinstance(message, dict):
            continue
        content = message.get("content")
        text = ""
        if isinstance(content, str):
            text = content.strip()
        elif isinstance(content, list):
            for block in content:
                if (isinstance(block, dict) and block.get("type") == "text"
                        and isinstance(block.get("text"), str) and block["text"].strip()):
                    text = block["text"].strip()
                    break
        if text:
            return truncate(collapse_whitespace(text), LABEL_MAX_LENGTH)
    return None


def list_project_folders(
    projects_root: str | Path | None = None,
    workspace_path: str | None = None,
) -> list[ProjectFolder]:
    """Every project directory with at least one session file.

    The current workspace's folder comes first, the rest by recency.
    """
    root = Path(projects_root) if projects_root else default_projects_root()
    current = encode_workspace_path(workspace_path).lower() if workspace_path else ""

    folders = []
    for name in _list_dirs(root):
        files = _stat_session_files(root / name)
        if not files:
            continue
        folders.append(ProjectFolder(
            dir=str(root / name),
            encoded_name=name,
            decoded_path=decode_path(name),
            name=extract_project_name(name),
            session_count=len(files),
            last_modified=max(f[1] for f in files),
        ))

    folders.sort(key=lambda f: (f.encoded_name.lower() != current, -f.last_modified))
    return folders


def get_session_diagnostics(
    workspace_path: str,
    projects_root: str | Path | None = None,
    scratch_root: str | Path | None = None,
) -> SessionDiagnostics:
    """Troubleshooting snapshot for when no session directory is found."""
    root = Path(projects_root) if projects_root else default_projects_root()
    expected = get_session_directory(workspace_path, root)
    existing = _list_dirs(root)

    basename = normalize_path(workspace_path).rsplit("/", 1)[-1].lower()
    similar = [
        d for d in existing
        if (basename and basename in d.lower())
        or (d.lower().rsplit("-", 1)[-1] and d.lower().rsplit("-", 1)[-1] in basename)
    ]

    return SessionDiagnostics(
        workspace_path=workspace_path,
        encoded_path=encode_workspace_path(workspace_path),
        expected_session_dir=expected,
        expected_dir_exists=Path(expected).is_dir(),
        discovered_session_dir=resolve_session_directory(workspace_path, root, scratch_root),
        existing_project_dirs=existing,
        similar_dirs=similar,
        platform=sys.platform,
    )
