"""Value types shared by the search and replace core."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

DEFAULT_MAX_RESULTS = 10000


class SearchScope(str, Enum):
    """Subset of the filesystem a search is restricted to."""

    PROJECT = "project"
    DIRECTORY = "directory"
    MODULE = "module"
    FILE = "file"


class RootKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class SearchOptions:
    """Match options for a single search request."""

    match_case: bool = False
    whole_word: bool = False
    use_regex: bool = False
    multiline: bool = False
    file_mask: str = ""

    def with_file_mask(self, file_mask: str) -> "SearchOptions":
        return replace(self, file_mask=file_mask)


@dataclass(frozen=True)
class SearchRequest:
    """A query plus everything needed to resolve where to run it."""

    query: str
    scope: SearchScope = SearchScope.PROJECT
    options: SearchOptions = field(default_factory=SearchOptions)
    directory_path: Optional[str] = None
    module_path: Optional[str] = None
    file_path: Optional[str] = None
    max_results: int = DEFAULT_MAX_RESULTS
    smart_excludes_enabled: bool = True

    @property
    def effective_max_results(self) -> int:
        """Result cap clamped to at least one match."""
        try:
            value = int(self.max_results or DEFAULT_MAX_RESULTS)
        except (TypeError, ValueError):
            value = DEFAULT_MAX_RESULTS
        return max(1, value)


@dataclass(frozen=True)
class RootSpec:
    """A concrete filesystem path that bounds one search invocation."""

    fs_path: str
    kind: RootKind


@dataclass(frozen=True)
class MatchRange:
    """Offsets into the trimmed preview line."""

    start: int
    end: int

    def to_dict(self) -> Dict[str, int]:
        return {"start": self.start, "end": self.end}


@dataclass(frozen=True)
class SearchResult:
    """A single match location.

    ``line`` and ``character`` are 0-based coordinates into the raw file
    text, ``length`` counts characters of the matched text, and the preview
    ranges are relative to ``preview`` (the line with surrounding whitespace
    removed).
    """

    uri: str
    file_name: str
    relative_path: str
    line: int
    character: int
    length: int
    preview: str
    preview_match_range: MatchRange
    preview_match_ranges: List[MatchRange] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the camelCase field names the UI layer consumes."""
        return {
            "uri": self.uri,
            "fileName": self.file_name,
            "relativePath": self.relative_path,
            "line": self.line,
            "character": self.character,
            "length": self.length,
            "preview": self.preview,
            "previewMatchRange": self.preview_match_range.to_dict(),
            "previewMatchRanges": [r.to_dict() for r in self.preview_match_ranges],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SearchResult":
        primary = data.get("previewMatchRange") or {"start": 0, "end": 0}
        ranges = data.get("previewMatchRanges") or [primary]
        return cls(
            uri=data["uri"],
            file_name=data["fileName"],
            relative_path=data["relativePath"],
            line=int(data["line"]),
            character=int(data["character"]),
            length=int(data["length"]),
            preview=data.get("preview", ""),
            preview_match_range=MatchRange(int(primary["start"]), int(primary["end"])),
            preview_match_ranges=[MatchRange(int(r["start"]), int(r["end"])) for r in ranges],
        )
