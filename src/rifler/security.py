"""
Workspace boundary checks for replace operations.

A path is inside the workspace when it resolves strictly below one of the
workspace roots: ``..`` traversal and absolute escapes are rejected, and the
root directory itself is not a valid edit target.
"""

import os
from typing import Iterable, List, Optional
from urllib.parse import unquote, urlparse

from .errors import SecurityViolationError


def get_workspace_roots(workspace_folders: Optional[Iterable[str]]) -> List[str]:
    """Absolute, normalized workspace root paths."""
    if not workspace_folders:
        return []
    return [os.path.normpath(os.path.abspath(folder)) for folder in workspace_folders]


def _is_strictly_inside(path: str, root: str) -> bool:
    try:
        rel = os.path.relpath(path, root)
    except ValueError:
        # Different drives on Windows
        return False
    return bool(rel) and rel != os.curdir and not rel.startswith(os.pardir) and not os.path.isabs(rel)


def is_within_workspace(target_path: str, workspace_folders: Optional[Iterable[str]]) -> bool:
    """Check that a path resolves below one of the workspace roots."""
    roots = get_workspace_roots(workspace_folders)
    if not roots:
        return False
    normalized = os.path.normpath(os.path.abspath(target_path))
    return any(_is_strictly_inside(normalized, root) for root in roots)


def uri_to_fs_path(uri: str) -> str:
    """Convert a ``file://`` URI (or plain path) to a filesystem path."""
    trimmed = (uri or "").strip()
    if not trimmed:
        return ""
    if not trimmed.startswith("file://"):
        return trimmed

    parsed = urlparse(trimmed)
    path = unquote(parsed.path)
    # /C:/... on Windows
    if len(path) >= 3 and path[0] == "/" and path[2] == ":" and path[1].isalpha():
        path = path[1:]
    if parsed.netloc and parsed.netloc != "localhost":
        path = f"//{parsed.netloc}{path}"
    return path


def is_uri_safe(uri: str, workspace_folders: Optional[Iterable[str]]) -> bool:
    """Only ``file`` URIs inside the workspace are safe to edit."""
    scheme = urlparse(uri).scheme
    if scheme != "file":
        return False
    return is_within_workspace(uri_to_fs_path(uri), workspace_folders)


def validate_uri_string(uri: object, workspace_folders: Optional[Iterable[str]]) -> bool:
    if not uri or not isinstance(uri, str):
        return False
    try:
        return is_uri_safe(uri, workspace_folders)
    except ValueError:
        return False


def ensure_uri_in_workspace(uri: str, workspace_folders: Optional[Iterable[str]]) -> str:
    """Return the filesystem path of ``uri`` or raise SecurityViolationError."""
    if not validate_uri_string(uri, workspace_folders):
        raise SecurityViolationError(uri)
    return uri_to_fs_path(uri)


def validate_directory_path(
    directory_path: str, workspace_folders: Optional[Iterable[str]]
) -> str:
    """Validate a user supplied directory scope path.

    Returns:
        Normalized absolute path inside the workspace

    Raises:
        ValueError: If the path is empty
        SecurityViolationError: If the path traverses or lies outside the workspace
    """
    if not directory_path or not directory_path.strip():
        raise ValueError("Directory path cannot be empty")

    trimmed = directory_path.strip()
    if "../" in trimmed or "..\\" in trimmed:
        raise SecurityViolationError(trimmed)
    if not is_within_workspace(trimmed, workspace_folders):
        raise SecurityViolationError(trimmed)

    return os.path.normpath(os.path.abspath(trimmed))
