"""Search orchestration: query compilation, ripgrep and the fallback walker."""

from .engine import SearchEngine
from .file_mask import matches_file_mask, validate_file_mask
from .query import compile_query, validate_regex

__all__ = [
    "SearchEngine",
    "compile_query",
    "matches_file_mask",
    "validate_file_mask",
    "validate_regex",
]
