"""
File mask matching.

A mask is a comma or semicolon separated list of ``*``/``?`` globs matched
against a bare file name, case-insensitively. Tokens prefixed with ``!`` are
excludes, and an exclude always wins over any include.

Examples:
    >>> matches_file_mask("app.ts", "*.ts, *.js")
    True
    >>> matches_file_mask("app.test.ts", "*.ts; !*.test.ts")
    False
"""

import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional, Pattern, Tuple

_GLOB_SPECIALS = re.compile(r"[.+^${}()|\[\]\\]")
_TOKEN_SEPARATORS = re.compile(r"[,;]")


@dataclass(frozen=True)
class MaskValidationResult:
    is_valid: bool
    message: Optional[str] = None
    fallback_to_all: bool = False


@dataclass(frozen=True)
class FileMask:
    includes: List[str] = field(default_factory=list)
    excludes: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.includes and not self.excludes


def split_mask_tokens(file_mask: str) -> List[Tuple[str, bool]]:
    """Return ``(pattern, is_exclude)`` pairs, dropping empty tokens."""
    trimmed = (file_mask or "").strip()
    if not trimmed:
        return []

    tokens: List[Tuple[str, bool]] = []
    for raw in _TOKEN_SEPARATORS.split(trimmed):
        token = raw.strip()
        if not token:
            continue
        is_exclude = token.startswith("!")
        pattern = token[1:].strip() if is_exclude else token
        if pattern:
            tokens.append((pattern, is_exclude))
    return tokens


def parse_file_mask(file_mask: str) -> FileMask:
    mask = FileMask()
    for pattern, is_exclude in split_mask_tokens(file_mask):
        (mask.excludes if is_exclude else mask.includes).append(pattern)
    return mask


def glob_to_regex(pattern: str) -> str:
    escaped = _GLOB_SPECIALS.sub(lambda m: "\\" + m.group(0), pattern)
    return "^" + escaped.replace("*", ".*").replace("?", ".") + "$"


@lru_cache(maxsize=256)
def _compile_mask(file_mask: str) -> Tuple[Tuple[Pattern[str], ...], Tuple[Pattern[str], ...]]:
    mask = parse_file_mask(file_mask)
    includes = tuple(re.compile(glob_to_regex(p), re.IGNORECASE | re.DOTALL) for p in mask.includes)
    excludes = tuple(re.compile(glob_to_regex(p), re.IGNORECASE | re.DOTALL) for p in mask.excludes)
    return includes, excludes


def matches_file_mask(file_name: str, file_mask: str) -> bool:
    """Check a bare file name against a mask. An empty mask matches everything."""
    if not (file_mask or "").strip():
        return True

    includes, excludes = _compile_mask(file_mask.strip())
    if not includes and not excludes:
        return True

    included = not includes or any(r.match(file_name) for r in includes)
    excluded = any(r.match(file_name) for r in excludes)
    return included and not excluded


def validate_file_mask(file_mask: str) -> MaskValidationResult:
    """Check that every token compiles; invalid masks fall back to match-all."""
    if not (file_mask or "").strip():
        return MaskValidationResult(True)

    try:
        _compile_mask(file_mask.strip())
    except re.error as e:
        return MaskValidationResult(
            False,
            message=f"Invalid file mask (falling back to match all): {e}",
            fallback_to_all=True,
        )
    return MaskValidationResult(True)


def mask_to_glob_args(file_mask: str) -> List[str]:
    """Translate a mask into ripgrep ``--glob`` arguments."""
    args: List[str] = []
    for pattern, is_exclude in split_mask_tokens(file_mask):
        args.extend(["--glob", f"!{pattern}" if is_exclude else pattern])
    return args
