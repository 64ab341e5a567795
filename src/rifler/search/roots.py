"""
Search root resolution and post-search root filtering.

Resolution turns a scope into concrete ``RootSpec`` values with a single
stat per path; it never expands or recurses. Filtering drops any result
whose file lies outside every requested root.
"""

import logging
import os
from typing import Dict, List, Optional, Sequence

from ..filesystem import FileKind, FileSystemProvider
from ..models import RootKind, RootSpec, SearchResult, SearchScope
from ..security import uri_to_fs_path

logger = logging.getLogger(__name__)

MODULE_INDICATORS = [
    "package.json",
    "tsconfig.json",
    "pyproject.toml",
    "setup.py",
    "Cargo.toml",
    "go.mod",
    "composer.json",
    "Gemfile",
    "requirements.txt",
    ".git",
]


async def _stat_root(provider: FileSystemProvider, path: Optional[str]) -> Optional[RootSpec]:
    if not path or not path.strip():
        return None
    fs_path = uri_to_fs_path(path.strip())
    try:
        stat = await provider.stat(fs_path)
    except OSError as e:
        logger.debug(f"Search root unavailable: {fs_path} ({e})")
        return None
    kind = RootKind.FILE if stat.kind == FileKind.FILE else RootKind.DIRECTORY
    return RootSpec(fs_path=fs_path, kind=kind)


async def resolve_search_roots(
    provider: FileSystemProvider,
    scope: SearchScope,
    directory_path: Optional[str] = None,
    module_path: Optional[str] = None,
    file_path: Optional[str] = None,
) -> List[RootSpec]:
    """Resolve a scope to an ordered, deduplicated list of roots.

    A missing directory, module or file yields an empty list, which the
    engine turns into an empty (successful) search.
    """
    roots: List[RootSpec] = []

    if scope == SearchScope.DIRECTORY:
        spec = await _stat_root(provider, directory_path)
        if spec:
            roots.append(spec)
    elif scope == SearchScope.MODULE:
        spec = await _stat_root(provider, module_path)
        if spec:
            roots.append(spec)
    elif scope == SearchScope.FILE:
        spec = await _stat_root(provider, file_path)
        if spec:
            roots.append(spec)
    else:
        for folder in provider.workspace_folders:
            roots.append(RootSpec(fs_path=folder, kind=RootKind.DIRECTORY))

    seen: Dict[str, None] = {}
    unique: List[RootSpec] = []
    for root in roots:
        if not root.fs_path or root.fs_path in seen:
            continue
        seen[root.fs_path] = None
        unique.append(root)
    return unique


def is_within_directory(file_path: str, dir_path: str) -> bool:
    """True when ``file_path`` equals ``dir_path`` or is nested below it."""
    try:
        rel = os.path.relpath(file_path, dir_path)
    except ValueError:
        return False
    if rel == os.curdir:
        return True
    return not rel.startswith(os.pardir) and not os.path.isabs(rel)


def filter_results_to_roots(
    results: List[SearchResult], roots: Sequence[RootSpec]
) -> List[SearchResult]:
    """Drop results whose file is not covered by any root."""
    if not results or not roots:
        return results

    root_specs = [(os.path.abspath(r.fs_path), r.kind) for r in roots]

    def in_roots(result: SearchResult) -> bool:
        fs_path = uri_to_fs_path(result.uri)
        if not fs_path:
            return False
        file_path = os.path.abspath(fs_path)
        for root, kind in root_specs:
            if kind == RootKind.FILE:
                if file_path == root:
                    return True
            elif is_within_directory(file_path, root):
                return True
        return False

    return [r for r in results if in_roots(r)]


async def _has_module_indicator(provider: FileSystemProvider, dir_path: str) -> bool:
    try:
        entries = await provider.read_directory(dir_path)
    except OSError:
        return False
    return any(name in MODULE_INDICATORS for name, _ in entries)


async def find_workspace_modules(
    provider: FileSystemProvider,
    exclude_dirs: Sequence[str] = (),
    max_depth: int = 2,
) -> List[Dict[str, str]]:
    """Find module directories usable as Module scope targets.

    A workspace folder or a subdirectory (up to ``max_depth`` levels down)
    counts as a module when it contains one of MODULE_INDICATORS. Search
    stops descending once a module is found.

    Returns:
        List of ``{"name": ..., "path": ...}`` dicts
    """
    modules: List[Dict[str, str]] = []
    excluded = set(exclude_dirs)

    async def walk(dir_path: str, depth: int) -> None:
        if depth >= max_depth:
            return
        try:
            entries = await provider.read_directory(dir_path)
        except OSError:
            return
        for name, kind in entries:
            if kind != FileKind.DIRECTORY or name.startswith(".") or name in excluded:
                continue
            sub_dir = os.path.join(dir_path, name)
            if await _has_module_indicator(provider, sub_dir):
                modules.append({"name": name, "path": sub_dir})
            elif depth < max_depth - 1:
                await walk(sub_dir, depth + 1)

    for folder in provider.workspace_folders:
        if await _has_module_indicator(provider, folder):
            modules.append({"name": os.path.basename(folder) or folder, "path": folder})
        await walk(folder, 0)

    return modules
