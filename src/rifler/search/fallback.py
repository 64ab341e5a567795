"""
In-process fallback search.

Used when ripgrep cannot be started or fails. Walks the roots through the
FileSystemProvider, reading open in-memory documents in preference to disk,
and matches with the compiled Python pattern. Directory listings and file
searches go through a shared Limiter so deep or wide trees cannot fan out
without bound.
"""

import asyncio
import logging
import os
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, TypeVar

from ..config import DEFAULT_BINARY_EXTENSIONS, DEFAULT_EXCLUDE_DIRS
from ..filesystem import FileKind, FileSystemProvider
from ..models import RootKind, RootSpec, SearchResult
from .file_mask import matches_file_mask
from .query import CompiledQuery
from .results import build_block_results, build_line_results, line_start_offsets

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CONCURRENCY = 100
DEFAULT_MAX_FILE_SIZE = 1024 * 1024
DEFAULT_PER_FILE_TIME_BUDGET_MS = 2500


class Limiter:
    """Counting semaphore bounding concurrent operations."""

    def __init__(self, max_concurrent: int = DEFAULT_CONCURRENCY):
        self.max_concurrent = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._active = 0
        self.peak = 0

    @property
    def active(self) -> int:
        return self._active

    async def run(self, fn: Callable[[], Awaitable[T]]) -> T:
        async with self._semaphore:
            self._active += 1
            self.peak = max(self.peak, self._active)
            try:
                return await fn()
            finally:
                self._active -= 1


def search_in_content(
    content: str,
    compiled: CompiledQuery,
    file_path: str,
    max_results: int = 5000,
    workspace_folders: Optional[Iterable[str]] = None,
) -> List[SearchResult]:
    """Find matches in one file's text, in line order then left to right."""
    if max_results <= 0:
        return []

    regex = compiled.regex
    folders = list(workspace_folders or [])

    if compiled.spans_lines:
        spans = []
        for match in regex.finditer(content):
            spans.append((match.start(), match.end()))
            if len(spans) >= max_results:
                break
        return build_block_results(
            file_path, 0, content, spans, folders, line_starts=line_start_offsets(content)
        )[:max_results]

    results: List[SearchResult] = []
    for line_index, line in enumerate(content.split("\n")):
        # finditer steps past zero-length matches
        spans = [(m.start(), m.end()) for m in regex.finditer(line)]
        if not spans:
            continue
        results.extend(build_line_results(file_path, line_index, line, spans, folders))
        if len(results) >= max_results:
            return results[:max_results]
    return results


class FallbackWalker:
    """Recursive, bounded-concurrency search over a set of roots."""

    def __init__(
        self,
        provider: FileSystemProvider,
        compiled: CompiledQuery,
        max_results: int,
        file_mask: str = "",
        smart_excludes_enabled: bool = True,
        exclude_dirs: Iterable[str] = DEFAULT_EXCLUDE_DIRS,
        binary_extensions: Iterable[str] = DEFAULT_BINARY_EXTENSIONS,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        per_file_time_budget_ms: int = DEFAULT_PER_FILE_TIME_BUDGET_MS,
        limiter: Optional[Limiter] = None,
        is_cancelled: Optional[Callable[[], bool]] = None,
    ):
        self.provider = provider
        self.compiled = compiled
        self.max_results = max(1, max_results)
        self.file_mask = file_mask
        self.smart_excludes_enabled = smart_excludes_enabled
        self.exclude_dirs = set(exclude_dirs)
        self.binary_extensions = {ext.lower() for ext in binary_extensions}
        self.max_file_size = max_file_size
        self.per_file_timeout = per_file_time_budget_ms / 1000.0
        self.limiter = limiter or Limiter(DEFAULT_CONCURRENCY)
        self._is_cancelled = is_cancelled or (lambda: False)
        self.results: List[SearchResult] = []

    @property
    def capped(self) -> bool:
        return len(self.results) >= self.max_results

    def _should_stop(self) -> bool:
        return self.capped or self._is_cancelled()

    def should_search_directory(self, name: str) -> bool:
        if name.startswith("."):
            return False
        return not (self.smart_excludes_enabled and name in self.exclude_dirs)

    def should_search_file(self, name: str) -> bool:
        ext = os.path.splitext(name)[1].lower()
        if ext in self.binary_extensions:
            return False
        return matches_file_mask(name, self.file_mask)

    async def search_roots(self, roots: Sequence[RootSpec]) -> List[SearchResult]:
        for spec in roots:
            if spec.kind == RootKind.FILE:
                await self.search_file(spec.fs_path)
            else:
                await self.search_directory(spec.fs_path)
            if self._should_stop():
                break
        return self.results[: self.max_results]

    async def search_directory(self, dir_path: str) -> None:
        if self._should_stop():
            return

        try:
            entries = await self.limiter.run(lambda: self.provider.read_directory(dir_path))
        except FileNotFoundError:
            return
        except OSError as e:
            logger.error(f"Error reading directory: {dir_path}: {e}")
            return

        tasks = []
        for name, kind in entries:
            if self._should_stop():
                break
            full_path = os.path.join(dir_path, name)
            if kind == FileKind.DIRECTORY:
                if self.should_search_directory(name):
                    tasks.append(self.search_directory(full_path))
            elif kind == FileKind.FILE:
                if self.should_search_file(name):
                    tasks.append(self.limiter.run(lambda p=full_path: self.search_file(p)))

        if tasks:
            await asyncio.gather(*tasks)

    async def search_file(self, file_path: str) -> None:
        if self._should_stop():
            return

        content = self.provider.get_open_document_text(file_path)
        if content is None:
            content = await self._read_text(file_path)
            if content is None:
                return

        if self._should_stop():
            return

        remaining = self.max_results - len(self.results)
        self.results.extend(
            search_in_content(
                content,
                self.compiled,
                file_path,
                remaining,
                self.provider.workspace_folders,
            )
        )

    async def _read_text(self, file_path: str) -> Optional[str]:
        try:
            stat = await self.provider.stat(file_path)
            if stat.size > self.max_file_size:
                logger.debug(f"Skipping large file: {file_path} ({stat.size} bytes)")
                return None
            raw = await asyncio.wait_for(
                self.provider.read_file(file_path), timeout=self.per_file_timeout
            )
        except asyncio.TimeoutError:
            logger.debug(f"Timed out reading {file_path}")
            return None
        except OSError as e:
            logger.debug(f"Skipping unreadable file {file_path}: {e}")
            return None
        return raw.decode("utf-8", errors="replace")


async def collect_files(
    provider: FileSystemProvider,
    dir_path: str,
    file_mask: str = "",
    max_files: int = 10000,
    exclude_dirs: Iterable[str] = DEFAULT_EXCLUDE_DIRS,
    binary_extensions: Iterable[str] = DEFAULT_BINARY_EXTENSIONS,
) -> List[str]:
    """List searchable files under ``dir_path`` using the walker's filters."""
    files: List[str] = []
    excluded = set(exclude_dirs)
    binary = {ext.lower() for ext in binary_extensions}

    async def walk(current: str) -> None:
        if len(files) >= max_files:
            return
        try:
            entries = await provider.read_directory(current)
        except OSError:
            return
        for name, kind in entries:
            if len(files) >= max_files:
                break
            full_path = os.path.join(current, name)
            if kind == FileKind.DIRECTORY:
                if name not in excluded and not name.startswith("."):
                    await walk(full_path)
            elif kind == FileKind.FILE:
                ext = os.path.splitext(name)[1].lower()
                if ext not in binary and matches_file_mask(name, file_mask):
                    files.append(full_path)

    await walk(dir_path)
    return files
