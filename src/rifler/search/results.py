"""
SearchResult construction shared by the ripgrep parser and the fallback
walker, so both paths report identical coordinates and previews.

Every match becomes its own result. Results for matches that start on the
same line share the line's preview and its full list of preview ranges,
and differ in ``character``/``length`` and the primary preview range.
"""

import bisect
import os
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from ..models import MatchRange, SearchResult

Span = Tuple[int, int]


def leading_whitespace_length(line: str) -> int:
    return len(line) - len(line.lstrip())


def to_relative_path(file_path: str, workspace_folders: Optional[Iterable[str]]) -> str:
    """Path relative to the first workspace folder containing it, else the basename."""
    base_name = os.path.basename(file_path)
    if not workspace_folders:
        return base_name

    normalized_file = os.path.normpath(file_path)
    for folder in workspace_folders:
        normalized_folder = os.path.normpath(folder)
        if normalized_file == normalized_folder or normalized_file.startswith(
            normalized_folder.rstrip(os.sep) + os.sep
        ):
            rel = os.path.relpath(normalized_file, normalized_folder)
            return base_name if rel == os.curdir else rel
    return base_name


def byte_offset_to_char_offset(raw: bytes, offset: int) -> int:
    """Convert a UTF-8 byte offset within ``raw`` to a character offset."""
    return len(raw[: max(0, offset)].decode("utf-8", errors="replace"))


def line_start_offsets(text: str) -> List[int]:
    starts = [0]
    index = text.find("\n")
    while index != -1:
        starts.append(index + 1)
        index = text.find("\n", index + 1)
    return starts


def build_line_results(
    file_path: str,
    line_index: int,
    line_text: str,
    spans: Sequence[Span],
    workspace_folders: Optional[Iterable[str]] = None,
) -> List[SearchResult]:
    """Build one result per span for matches starting on a single line.

    Args:
        file_path: Path of the file (made absolute)
        line_index: 0-based line number
        line_text: The raw line, without its newline
        spans: ``(start, end)`` character offsets into the line, in order;
            ``end`` may run past the line for matches that cross newlines
        workspace_folders: Roots used to compute the relative path
    """
    if not spans:
        return []

    if line_text.endswith("\r"):
        line_text = line_text[:-1]
    trim = leading_whitespace_length(line_text)
    preview = line_text.strip()

    ranges = [
        MatchRange(max(0, start - trim), max(0, min(end, len(line_text)) - trim))
        for start, end in spans
    ]

    absolute = os.path.abspath(file_path)
    uri = Path(absolute).as_uri()
    file_name = os.path.basename(absolute)
    relative_path = to_relative_path(absolute, workspace_folders)

    return [
        SearchResult(
            uri=uri,
            file_name=file_name,
            relative_path=relative_path,
            line=max(0, line_index),
            character=start,
            length=max(0, end - start),
            preview=preview,
            preview_match_range=ranges[index],
            preview_match_ranges=list(ranges),
        )
        for index, (start, end) in enumerate(spans)
    ]


def build_block_results(
    file_path: str,
    first_line_index: int,
    block: str,
    spans: Sequence[Span],
    workspace_folders: Optional[Iterable[str]] = None,
    line_starts: Optional[List[int]] = None,
) -> List[SearchResult]:
    """Build results for spans expressed as offsets into a multi-line block.

    The block starts at the beginning of line ``first_line_index``. Spans are
    grouped by the line they start on; each group goes through
    build_line_results with offsets rebased onto that line.
    """
    if not spans:
        return []

    starts = line_starts if line_starts is not None else line_start_offsets(block)
    grouped: List[Tuple[int, List[Span]]] = []
    for start, end in sorted(spans):
        line_number = bisect.bisect_right(starts, start) - 1
        line_start = starts[line_number]
        local = (start - line_start, end - line_start)
        if grouped and grouped[-1][0] == line_number:
            grouped[-1][1].append(local)
        else:
            grouped.append((line_number, [local]))

    results: List[SearchResult] = []
    for line_number, local_spans in grouped:
        line_start = starts[line_number]
        newline = block.find("\n", line_start)
        line_text = block[line_start:] if newline == -1 else block[line_start:newline]
        results.extend(
            build_line_results(
                file_path,
                first_line_index + line_number,
                line_text,
                local_spans,
                workspace_folders,
            )
        )
    return results
