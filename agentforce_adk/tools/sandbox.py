"""Path sandbox shared by the file, search and exec tools."""
from __future__ import annotations

from pathlib import Path

from agentforce_adk.config import get_settings


def file_root() -> Path:
    """Return the root directory that file and exec tools may access.

    Default is the current working directory. Override with
    AGENTFORCE_FILE_ROOT.
    """
    return get_settings().file_root.resolve()


def resolve_path_in_root(user_path: str) -> Path:
    """Resolve a user-provided path and ensure it stays within file_root()."""
    root = file_root()
    candidate = Path(user_path).expanduser()
    if not candidate.is_absolute():
        candidate = root / candidate

    candidate = candidate.resolve()

    try:
        candidate.relative_to(root)
    except ValueError as e:
        raise PermissionError(
            f"Access denied: '{user_path}' is outside allowed root '{root}'"
        ) from e

    return candidate
