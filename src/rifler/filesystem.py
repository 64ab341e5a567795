"""
Filesystem access for the search and replace core.

The core never touches the disk directly. It goes through a
FileSystemProvider, which supplies:
- stat / directory listing / file reads for the fallback walker
- the currently open in-memory documents, whose text overrides disk content
- atomic multi-file edits and per-document saves for the replace engine

LocalFileSystemProvider implements this on top of the local disk, running
blocking calls in worker threads so the event loop keeps moving.
"""

import asyncio
import logging
import os
import shutil
import stat as stat_module
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import EditApplyError

logger = logging.getLogger(__name__)


class FileKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class FileStat:
    kind: FileKind
    size: int


@dataclass(frozen=True)
class TextEdit:
    """Replace ``length`` characters starting at (line, character)."""

    path: str
    line: int
    character: int
    length: int
    new_text: str


@dataclass
class WorkspaceEdit:
    """A batch of text edits applied as one unit."""

    edits: List[TextEdit] = field(default_factory=list)

    def replace(
        self, path: str, line: int, character: int, length: int, new_text: str
    ) -> None:
        self.edits.append(TextEdit(path, line, character, length, new_text))

    @property
    def paths(self) -> List[str]:
        seen: Dict[str, None] = {}
        for edit in self.edits:
            seen.setdefault(normalize_path(edit.path), None)
        return list(seen)

    def __len__(self) -> int:
        return len(self.edits)


@dataclass
class TextDocument:
    path: str
    text: str
    dirty: bool = False


def normalize_path(path: str) -> str:
    """Key used to identify a file regardless of how its path was spelled."""
    return os.path.normcase(os.path.abspath(path))


def apply_text_edits(text: str, edits: Iterable[TextEdit]) -> str:
    """Apply edits to one document's text.

    Raises:
        EditApplyError: If an edit falls outside the text or two edits overlap
    """
    line_starts = [0]
    for index, char in enumerate(text):
        if char == "\n":
            line_starts.append(index + 1)

    spans: List[Tuple[int, int, str]] = []
    for edit in edits:
        if edit.line < 0 or edit.line >= len(line_starts):
            raise EditApplyError(f"Line {edit.line} is out of range in {edit.path}")
        line_start = line_starts[edit.line]
        line_end = (
            line_starts[edit.line + 1] - 1
            if edit.line + 1 < len(line_starts)
            else len(text)
        )
        start = line_start + edit.character
        end = start + edit.length
        if edit.character < 0 or edit.length < 0 or start > line_end or end > len(text):
            raise EditApplyError(
                f"Range {edit.line}:{edit.character}+{edit.length} is out of range in {edit.path}"
            )
        spans.append((start, end, edit.new_text))

    spans.sort(key=lambda span: (span[0], span[1]))
    for previous, current in zip(spans, spans[1:]):
        if current[0] < previous[1]:
            raise EditApplyError("Overlapping edits are not supported")

    pieces: List[str] = []
    cursor = 0
    for start, end, new_text in spans:
        pieces.append(text[cursor:start])
        pieces.append(new_text)
        cursor = end
    pieces.append(text[cursor:])
    return "".join(pieces)


class FileSystemProvider(ABC):
    """Filesystem and document access used by the engine."""

    @property
    @abstractmethod
    def workspace_folders(self) -> List[str]:
        """Absolute paths of the open workspace roots (may be empty)."""

    @abstractmethod
    async def stat(self, path: str) -> FileStat:
        """Stat a path. Raises FileNotFoundError when it does not exist."""

    @abstractmethod
    async def read_directory(self, path: str) -> List[Tuple[str, FileKind]]:
        pass

    @abstractmethod
    async def read_file(self, path: str) -> bytes:
        pass

    @abstractmethod
    def open_documents(self) -> Dict[str, str]:
        """Text of open in-memory documents keyed by normalized path."""

    @abstractmethod
    async def apply_edit(self, edit: WorkspaceEdit) -> bool:
        """Apply every edit or none of them. Returns False on failure."""

    @abstractmethod
    async def save_document(self, path: str) -> None:
        """Persist an open document to disk."""

    def get_open_document_text(self, path: str) -> Optional[str]:
        return self.open_documents().get(normalize_path(path))


class LocalFileSystemProvider(FileSystemProvider):
    """FileSystemProvider backed by the local disk."""

    def __init__(self, workspace_folders: Optional[Iterable[str]] = None):
        self._workspace_folders = [
            os.path.abspath(str(folder)) for folder in (workspace_folders or [])
        ]
        self._documents: Dict[str, TextDocument] = {}

    @property
    def workspace_folders(self) -> List[str]:
        return list(self._workspace_folders)

    async def stat(self, path: str) -> FileStat:
        st = await asyncio.to_thread(os.stat, path)
        if stat_module.S_ISDIR(st.st_mode):
            kind = FileKind.DIRECTORY
        elif stat_module.S_ISREG(st.st_mode):
            kind = FileKind.FILE
        else:
            kind = FileKind.UNKNOWN
        return FileStat(kind=kind, size=st.st_size)

    async def read_directory(self, path: str) -> List[Tuple[str, FileKind]]:
        return await asyncio.to_thread(self._scan_directory, path)

    @staticmethod
    def _scan_directory(path: str) -> List[Tuple[str, FileKind]]:
        entries: List[Tuple[str, FileKind]] = []
        with os.scandir(path) as it:
            for entry in it:
                if entry.is_symlink():
                    kind = FileKind.SYMLINK
                elif entry.is_dir(follow_symlinks=False):
                    kind = FileKind.DIRECTORY
                elif entry.is_file(follow_symlinks=False):
                    kind = FileKind.FILE
                else:
                    kind = FileKind.UNKNOWN
                entries.append((entry.name, kind))
        return entries

    async def read_file(self, path: str) -> bytes:
        return await asyncio.to_thread(self._read_bytes, path)

    @staticmethod
    def _read_bytes(path: str) -> bytes:
        with open(path, "rb") as f:
            return f.read()

    def open_documents(self) -> Dict[str, str]:
        return {key: doc.text for key, doc in self._documents.items()}

    async def open_text_document(self, path: str, text: Optional[str] = None) -> TextDocument:
        """Open (or return) the in-memory document for ``path``."""
        key = normalize_path(path)
        document = self._documents.get(key)
        if document is not None:
            if text is not None:
                document.text = text
                document.dirty = True
            return document

        if text is None:
            text = (await self.read_file(path)).decode("utf-8")
            document = TextDocument(path=os.path.abspath(path), text=text)
        else:
            document = TextDocument(path=os.path.abspath(path), text=text, dirty=True)
        self._documents[key] = document
        return document

    def close_document(self, path: str) -> None:
        self._documents.pop(normalize_path(path), None)

    async def apply_edit(self, edit: WorkspaceEdit) -> bool:
        grouped: Dict[str, List[TextEdit]] = {}
        for text_edit in edit.edits:
            grouped.setdefault(normalize_path(text_edit.path), []).append(text_edit)

        updated: Dict[str, Tuple[str, str]] = {}
        try:
            for key, edits in grouped.items():
                document = self._documents.get(key)
                if document is not None:
                    original = document.text
                    path = document.path
                else:
                    path = os.path.abspath(edits[0].path)
                    original = (await self.read_file(path)).decode("utf-8")
                updated[key] = (path, apply_text_edits(original, edits))
        except (EditApplyError, OSError, UnicodeDecodeError) as e:
            logger.error(f"Failed to apply workspace edit: {e}")
            return False

        for key, (path, text) in updated.items():
            document = self._documents.get(key)
            if document is None:
                self._documents[key] = TextDocument(path=path, text=text, dirty=True)
            else:
                document.text = text
                document.dirty = True
        return True

    async def save_document(self, path: str) -> None:
        document = self._documents.get(normalize_path(path))
        if document is None or not document.dirty:
            return
        await asyncio.to_thread(_atomic_write, document.path, document.text)
        document.dirty = False


def _atomic_write(path: str, text: str) -> None:
    # Write through symlinks instead of replacing them
    path = os.path.realpath(path)
    directory = os.path.dirname(path) or "."
    fd, temp_path = tempfile.mkstemp(prefix=".rifler-", dir=directory)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(text.encode("utf-8"))
        if os.path.exists(path):
            shutil.copymode(path, temp_path)
        os.replace(temp_path, path)
    finally:
        if os.path.exists(temp_path):
            os.remove(temp_path)
