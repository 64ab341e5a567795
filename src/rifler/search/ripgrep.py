"""
ripgrep process orchestration.

Runs ``rg --json`` against the resolved roots and turns its streamed match
events into SearchResults. The binary is located by trying an ordered list
of candidates (environment override, configured path, copies bundled with
the host application, then ``rg`` on PATH); candidates that are missing,
not executable or in the wrong format are skipped, anything else aborts.

ripgrep exits 0 when matches were found and 1 when none were; both are a
clean run. Any other exit code is a failure the caller may recover from.
"""

import asyncio
import base64
import errno
import json
import logging
import os
import sys
from dataclasses import dataclass
from typing import AsyncIterator, Iterable, List, Optional, Sequence, Tuple, Union

from ..config import RG_PATH_ENV_VAR, Config
from ..errors import ProcessAbnormalExitError, ProcessUnavailableError
from ..models import SearchResult
from .file_mask import mask_to_glob_args
from .query import CompiledQuery
from .results import build_block_results, byte_offset_to_char_offset

logger = logging.getLogger(__name__)

EXE_NAME = "rg.exe" if sys.platform == "win32" else "rg"

# Not found, wrong executable format, permission denied
RETRYABLE_SPAWN_ERRNOS = {errno.ENOENT, errno.ENOEXEC, errno.EACCES}

# rg --json emits one line per match; minified files make for long lines
STREAM_LIMIT = 32 * 1024 * 1024

STDERR_TAIL_BYTES = 4096


def get_ripgrep_command_candidates(config: Optional[Config] = None) -> List[str]:
    """Ordered, deduplicated list of ripgrep executables to try."""
    config = config or Config()
    candidates: List[str] = []

    override = os.environ.get(RG_PATH_ENV_VAR, "").strip()
    if override:
        candidates.append(override)

    if config.rg_path:
        candidates.append(config.rg_path)

    if config.app_root:
        # Editor installs ship ripgrep either in node_modules or unpacked next to an asar
        candidates.append(
            os.path.join(config.app_root, "node_modules", "@vscode", "ripgrep", "bin", EXE_NAME)
        )
        candidates.append(
            os.path.join(
                config.app_root, "node_modules.asar.unpacked", "@vscode", "ripgrep", "bin", EXE_NAME
            )
        )

    candidates.append("rg")

    return list(dict.fromkeys(candidates))


def file_seems_present(command: str) -> bool:
    """Pre-check absolute candidates; bare names must go through PATH lookup."""
    if not os.path.isabs(command):
        return True
    return os.path.exists(command)


@dataclass(frozen=True)
class Started:
    process: asyncio.subprocess.Process
    command: str


@dataclass(frozen=True)
class Retryable:
    command: str
    reason: str


@dataclass(frozen=True)
class Fatal:
    command: str
    error: BaseException


SpawnOutcome = Union[Started, Retryable, Fatal]


async def try_spawn(command: str, args: Sequence[str]) -> SpawnOutcome:
    try:
        process = await asyncio.create_subprocess_exec(
            command,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=STREAM_LIMIT,
        )
    except OSError as e:
        if e.errno in RETRYABLE_SPAWN_ERRNOS:
            code = errno.errorcode.get(e.errno, "unknown")
            return Retryable(command, f"{code}: {e.strerror or e}")
        return Fatal(command, e)
    return Started(process, command)


async def spawn_with_fallback(commands: Iterable[str], args: Sequence[str]) -> Started:
    """Start the first candidate that can be spawned.

    Raises:
        ProcessUnavailableError: If every candidate failed with a retryable error
        OSError: If a candidate failed with any other error
    """
    attempts: List[Tuple[str, str]] = []
    for command in commands:
        if not file_seems_present(command):
            logger.debug(f"Skipping missing ripgrep candidate: {command}")
            continue

        outcome = await try_spawn(command, args)
        if isinstance(outcome, Started):
            logger.debug(f"Started ripgrep: {command}")
            return outcome
        if isinstance(outcome, Retryable):
            logger.debug(f"ripgrep candidate failed, trying next: {command} ({outcome.reason})")
            attempts.append((outcome.command, outcome.reason))
            continue
        raise outcome.error

    raise ProcessUnavailableError(attempts)


def build_ripgrep_args(
    compiled: CompiledQuery,
    roots: Sequence[str],
    file_mask: str = "",
    smart_excludes_enabled: bool = True,
    exclude_dirs: Iterable[str] = (),
) -> List[str]:
    args = ["--json", "--no-config"]

    if compiled.fixed_strings:
        args.append("--fixed-strings")
    if compiled.ignore_case:
        args.append("--ignore-case")
    if compiled.whole_word:
        args.append("--word-regexp")
    if compiled.multiline:
        # Never --multiline-dotall: '.' must not cross lines
        args.append("--multiline")
    if not smart_excludes_enabled:
        args.append("--no-ignore")

    mask_args = mask_to_glob_args(file_mask)
    if mask_args:
        # File masks are case-insensitive, like the fallback walker's
        args.append("--glob-case-insensitive")
        args.extend(mask_args)

    if smart_excludes_enabled:
        for exclude in exclude_dirs:
            args.extend(["--glob", f"!{exclude}/**"])

    args.extend(["-e", compiled.process_pattern, "--"])
    args.extend(roots)
    return args


@dataclass(frozen=True)
class RipgrepMatch:
    """A parsed ``"type": "match"`` event."""

    path: str
    text: str
    raw: bytes
    line_number: int
    submatches: List[Tuple[int, int]]


def _decode_data(value: dict) -> Tuple[str, bytes]:
    if "text" in value:
        text = value["text"]
        return text, text.encode("utf-8")
    raw = base64.b64decode(value["bytes"])
    return raw.decode("utf-8", errors="replace"), raw


def parse_ripgrep_line(line: Union[str, bytes]) -> Optional[RipgrepMatch]:
    """Parse one JSON line; anything that is not a match event yields None."""
    try:
        event = json.loads(line)
    except (ValueError, TypeError):
        logger.debug(f"Skipping non-JSON line from ripgrep output: {line[:100]!r}")
        return None

    if not isinstance(event, dict) or event.get("type") != "match":
        return None

    try:
        data = event["data"]
        path, _ = _decode_data(data["path"])
        text, raw = _decode_data(data["lines"])
        submatches = [(int(m["start"]), int(m["end"])) for m in data.get("submatches") or []]
        return RipgrepMatch(
            path=path,
            text=text,
            raw=raw,
            line_number=int(data["line_number"]),
            submatches=submatches,
        )
    except (KeyError, TypeError, ValueError) as e:
        logger.debug(f"Skipping malformed ripgrep match event: {e}")
        return None


def match_to_results(
    match: RipgrepMatch, workspace_folders: Optional[Iterable[str]] = None
) -> List[SearchResult]:
    """Convert one ripgrep match event into results, one per submatch.

    A line with several submatches yields several results sharing the same
    preview, matching what the fallback walker reports for that line.
    """
    if not match.submatches:
        return []

    spans = [
        (
            byte_offset_to_char_offset(match.raw, start),
            byte_offset_to_char_offset(match.raw, end),
        )
        for start, end in match.submatches
    ]

    block = match.text
    if block.endswith("\n"):
        block = block[:-1]
    if block.endswith("\r"):
        block = block[:-1]

    return build_block_results(
        match.path, match.line_number - 1, block, spans, workspace_folders
    )


async def iter_ripgrep_matches(stream: asyncio.StreamReader) -> AsyncIterator[RipgrepMatch]:
    """Yield match events from ripgrep's stdout until EOF."""
    while True:
        try:
            line = await stream.readline()
        except ValueError as e:
            logger.debug(f"Skipping oversized ripgrep output line: {e}")
            continue
        if not line:
            return
        match = parse_ripgrep_line(line)
        if match is not None:
            yield match


class RipgrepSearch:
    """A single ripgrep invocation.

    ``run`` collects results until the process exits or the result cap is
    reached, at which point the process is killed and the collected results
    are returned. ``cancel`` kills the process and waits for it to exit.
    """

    def __init__(
        self,
        compiled: CompiledQuery,
        roots: Sequence[str],
        max_results: int,
        candidates: Sequence[str],
        workspace_folders: Optional[Sequence[str]] = None,
        file_mask: str = "",
        smart_excludes_enabled: bool = True,
        exclude_dirs: Iterable[str] = (),
    ):
        self.compiled = compiled
        self.roots = list(roots)
        self.max_results = max(1, max_results)
        self.candidates = list(candidates)
        self.workspace_folders = list(workspace_folders or [])
        self.args = build_ripgrep_args(
            compiled, self.roots, file_mask, smart_excludes_enabled, exclude_dirs
        )
        self.command: Optional[str] = None
        self.capped = False
        self._process: Optional[asyncio.subprocess.Process] = None
        self._cancelled = False
        self._stderr_tail = b""

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def run(self) -> List[SearchResult]:
        """Run the search.

        Raises:
            ProcessUnavailableError: If no candidate could be started
            ProcessAbnormalExitError: If ripgrep exited with a code other than 0/1
        """
        started = await spawn_with_fallback(self.candidates, self.args)
        self._process = started.process
        self.command = started.command

        results: List[SearchResult] = []
        if self._cancelled:
            await self._terminate()
            return results

        stderr_task = asyncio.create_task(self._drain_stderr())
        try:
            async for match in iter_ripgrep_matches(self._process.stdout):
                if self._cancelled:
                    break
                for result in match_to_results(match, self.workspace_folders):
                    results.append(result)
                    if len(results) >= self.max_results:
                        self.capped = True
                        break
                if self.capped:
                    break
        finally:
            if self.capped or self._cancelled:
                await self._terminate()

        returncode = await self._process.wait()
        await stderr_task

        if self.capped or self._cancelled:
            return results
        if returncode < 0:
            logger.debug(f"ripgrep terminated by signal {-returncode}")
            return results
        if returncode in (0, 1):
            return results

        raise ProcessAbnormalExitError(
            returncode, self._stderr_tail.decode("utf-8", errors="replace")
        )

    async def cancel(self) -> None:
        self._cancelled = True
        await self._terminate()

    async def _terminate(self) -> None:
        process = self._process
        if process is None:
            return
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        await process.wait()

    async def _drain_stderr(self) -> None:
        # Keeps ripgrep from blocking on a full stderr pipe
        stream = self._process.stderr if self._process else None
        if stream is None:
            return
        while True:
            chunk = await stream.read(65536)
            if not chunk:
                return
            self._stderr_tail = (self._stderr_tail + chunk)[-STDERR_TAIL_BYTES:]
