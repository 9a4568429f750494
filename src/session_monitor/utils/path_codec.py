"""Encode and decode workspace path ↔ session directory name."""

import re

# Separators and reserved characters collapsed into the joining hyphen
_RESERVED_RE = re.compile(r"[:/_]")


def normalize_path(path: str) -> str:
    """Use forward slashes and drop trailing separators (except for a bare root)."""
    if not path:
        return ""
    normalized = path.replace("\\", "/")
    stripped = normalized.rstrip("/")
    return stripped or "/"


def encode_workspace_path(path: str) -> str:
    """Encode a workspace path to its session directory name.

    /home/wiz/my_app → -home-wiz-my-app
    C:\\Users\\wiz\\proj → C--Users-wiz-proj
    """
    if not path:
        return ""
    return _RESERVED_RE.sub("-", normalize_path(path))


def decode_path(encoded: str) -> str:
    """Best-effort decode of a session directory name to a filesystem path.

    -home-wiz-AI-LLM → /home/wiz/AI/LLM

    Lossy: hyphens and underscores in the original path cannot be told apart
    from separators.
    """
    if not encoded:
        return ""
    # Windows drive prefix, e.g. C--Users-wiz
    drive = re.match(r"^([A-Za-z])--(.*)$", encoded)
    if drive:
        return f"{drive.group(1)}:/" + drive.group(2).replace("-", "/")
    return encoded.replace("-", "/")


def extract_project_name(encoded: str) -> str:
    """Get the last path segment as the project display name.

    -home-wiz-AI-LLM → LLM
    """
    path = decode_path(encoded)
    return path.rstrip("/").rsplit("/", 1)[-1] if path else ""
