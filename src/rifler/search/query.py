"""
Query compilation: turns a raw query plus match options into a validated
matching rule.

The compiled query carries two renditions of the same rule:
- ``regex``: a Python pattern used by the in-process walker
- ``process_pattern`` / ``fixed_strings``: what is handed to ripgrep

Metacharacters are escaped with a fixed set (``. * + ? ^ $ { } ( ) | [ ] \\``)
rather than ``re.escape`` so the escaped text is also valid ripgrep syntax.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Pattern

from ..errors import InputRejectedError, InvalidPatternError, UnsafePatternError
from ..models import SearchOptions

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2

_METACHARACTERS = re.compile(r"[.*+?^${}()|\[\]\\]")

# Shapes known to cause catastrophic backtracking. Heuristic only.
_DANGEROUS_SEQUENCES = [
    # nested quantified groups: (a+)+ / (x*)*
    re.compile(r"(\([^)]*([*+]{1,})[^)]*\))+[+*]"),
    # quantifier applied to bare digits: 1+ / 9*
    re.compile(r"([^\\]|^)\d+\s*[*+]{1,}"),
    # quantified class stacked with another quantifier: [a-z]+*
    re.compile(r"\[[^\]]*\][*+]{1,}\s*[?+*]{1,}"),
]


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class CompiledQuery:
    """A validated matching rule."""

    query: str
    regex: Pattern[str]
    process_pattern: str
    fixed_strings: bool
    ignore_case: bool
    whole_word: bool
    multiline: bool
    spans_lines: bool


def escape_regex(text: str) -> str:
    return _METACHARACTERS.sub(lambda m: "\\" + m.group(0), text)


def _compile_flags(options: SearchOptions) -> int:
    # ripgrep always treats ^ and $ as line anchors
    flags = re.MULTILINE
    if not options.match_case:
        flags |= re.IGNORECASE
    return flags


def validate_regex(pattern: str, use_regex: bool, multiline: bool = False) -> ValidationResult:
    """Check whether ``pattern`` can be compiled in the requested mode."""
    if not pattern:
        return ValidationResult(False, "Search pattern cannot be empty")

    if not use_regex:
        # Literal mode escapes everything
        return ValidationResult(True)

    flags = re.MULTILINE if multiline else 0
    try:
        re.compile(pattern, flags)
    except re.error as e:
        return ValidationResult(False, f"Invalid regex: {e}")
    return ValidationResult(True)


def is_valid_regex_pattern(pattern: str) -> bool:
    if not pattern:
        return False
    try:
        re.compile(pattern)
    except re.error:
        return False
    return True


def is_safe_regex(pattern: str) -> bool:
    """Reject patterns whose shape suggests exponential backtracking."""
    if not is_valid_regex_pattern(pattern):
        return False
    return not any(seq.search(pattern) for seq in _DANGEROUS_SEQUENCES)


def is_searchable_query(query: str) -> bool:
    return bool(query) and len(query.strip()) >= MIN_QUERY_LENGTH


def compile_query(query: str, options: SearchOptions) -> CompiledQuery:
    """Compile a query into a matching rule.

    Raises:
        InputRejectedError: If the query is shorter than two characters
        InvalidPatternError: If the regex does not compile
        UnsafePatternError: If the regex matches a catastrophic-backtracking shape
    """
    if not is_searchable_query(query):
        raise InputRejectedError(
            f"Query must contain at least {MIN_QUERY_LENGTH} non-whitespace characters"
        )

    # Multiline regexes may cross lines through escapes such as \n or \s
    spans_lines = options.multiline and (options.use_regex or "\n" in query)

    if options.use_regex:
        validation = validate_regex(query, True, options.multiline)
        if not validation.is_valid:
            raise InvalidPatternError(query, validation.error or "invalid pattern")
        if not is_safe_regex(query):
            raise UnsafePatternError(query)
        pattern = query
    else:
        pattern = escape_regex(query)

    if spans_lines:
        # Literal newlines become \n tokens; '.' keeps excluding '\n'
        pattern = pattern.replace("\r\n", "\n").replace("\n", "\\n")

    fixed_strings = not options.use_regex and not spans_lines
    process_pattern = query if fixed_strings else pattern

    if options.whole_word:
        pattern = f"(?<!\\w)(?:{pattern})(?!\\w)"

    try:
        regex = re.compile(pattern, _compile_flags(options))
    except re.error as e:
        raise InvalidPatternError(query, str(e))

    return CompiledQuery(
        query=query,
        regex=regex,
        process_pattern=process_pattern,
        fixed_strings=fixed_strings,
        ignore_case=not options.match_case,
        whole_word=options.whole_word,
        multiline=options.multiline,
        spans_lines=spans_lines,
    )


def build_search_regex(query: str, options: SearchOptions) -> Optional[Pattern[str]]:
    """Compile ``query`` to a Python pattern, or None when it is rejected."""
    try:
        return compile_query(query, options).regex
    except InputRejectedError as e:
        logger.debug(f"Query rejected: {e}")
        return None
