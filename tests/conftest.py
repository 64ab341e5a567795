"""
Shared pytest fixtures for Rifler tests.

Provides a temporary workspace, a local filesystem provider bound to it,
and factories for fake ripgrep executables and ripgrep JSON events.
"""

import json
import shutil
import stat
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from rifler.config import RG_PATH_ENV_VAR, Config
from rifler.filesystem import LocalFileSystemProvider
from rifler.utils.exception_logger import ExceptionLogger


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """Keep the developer's ripgrep override and the exception log out of tests."""
    monkeypatch.delenv(RG_PATH_ENV_VAR, raising=False)
    ExceptionLogger._instance = None
    yield
    ExceptionLogger._instance = None


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture
def provider(workspace: Path) -> LocalFileSystemProvider:
    return LocalFileSystemProvider([str(workspace)])


@pytest.fixture
def fallback_config() -> Config:
    """Config that never starts ripgrep."""
    return Config(use_ripgrep=False)


@pytest.fixture
def rg_match_event() -> Callable[..., Dict]:
    """Build a ``"type": "match"`` event the way ``rg --json`` prints it."""

    def factory(path: str, line_number: int, text: str, submatches: List[tuple]) -> Dict:
        raw = text.encode("utf-8")
        return {
            "type": "match",
            "data": {
                "path": {"text": path},
                "lines": {"text": text},
                "line_number": line_number,
                "absolute_offset": 0,
                "submatches": [
                    {"match": {"text": raw[s:e].decode("utf-8")}, "start": s, "end": e}
                    for s, e in submatches
                ],
            },
        }

    return factory


def _shell_quote(text: str) -> str:
    return "'" + text.replace("'", "'\\''") + "'"


@pytest.fixture
def make_fake_rg(tmp_path: Path) -> Callable[..., str]:
    """Create an executable shell script that prints events like ``rg --json``.

    The returned factory accepts:
        events: dicts (dumped as JSON) or raw strings, printed one per line
        exit_code: exit status after printing
        hang: keep running after printing, until killed
        args_file: file that receives the arguments, one per line

    Only shell builtins and absolute paths are used, so the script keeps
    working when a test empties PATH.
    """
    counter = {"n": 0}
    sleep_binary = shutil.which("sleep") or "/bin/sleep"

    def factory(
        events: List[object],
        exit_code: int = 0,
        hang: bool = False,
        args_file: Optional[Path] = None,
    ) -> str:
        counter["n"] += 1
        script = tmp_path / f"fake-rg-{counter['n']}"
        body = ["#!/bin/sh"]
        if args_file is not None:
            body.append(f'for a in "$@"; do printf "%s\\n" "$a"; done > {_shell_quote(str(args_file))}')
        for event in events:
            line = event if isinstance(event, str) else json.dumps(event)
            body.append(f"printf '%s\\n' {_shell_quote(line)}")
        body.append(f"exec {sleep_binary} 30" if hang else f"exit {exit_code}")
        script.write_text("\n".join(body) + "\n")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(script)

    return factory


@pytest.fixture
def empty_path(tmp_path: Path, monkeypatch) -> Path:
    """Point PATH at an empty directory so a bare ``rg`` cannot be found."""
    empty = tmp_path / "empty-bin"
    empty.mkdir()
    monkeypatch.setenv("PATH", str(empty))
    return empty
