"""Exception types raised inside the search and replace core."""

from typing import List, Optional, Tuple


class RiflerError(Exception):
    """Base exception for Rifler errors."""

    pass


class InputRejectedError(RiflerError):
    """Raised when a query or file mask cannot be searched."""

    pass


class InvalidPatternError(InputRejectedError):
    """Raised when a regex pattern fails to compile."""

    def __init__(self, pattern: str, engine_message: str):
        super().__init__(f"Invalid regex: {engine_message}")
        self.pattern = pattern
        self.engine_message = engine_message


class UnsafePatternError(InputRejectedError):
    """Raised when a regex pattern looks prone to catastrophic backtracking."""

    def __init__(self, pattern: str):
        super().__init__(f"Rejected potentially unsafe regex pattern: {pattern}")
        self.pattern = pattern


class ProcessUnavailableError(RiflerError):
    """Raised when no search binary candidate could be started."""

    def __init__(self, attempts: List[Tuple[str, str]]):
        detail = "; ".join(f"{command} ({reason})" for command, reason in attempts)
        super().__init__(f"Failed to spawn ripgrep. Attempts: {detail or 'none'}")
        self.attempts = attempts


class ProcessAbnormalExitError(RiflerError):
    """Raised when the search binary exits with a code other than 0 or 1."""

    def __init__(self, returncode: Optional[int], stderr: str = ""):
        message = f"ripgrep exited with code {returncode}"
        if stderr:
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class SecurityViolationError(RiflerError):
    """Raised when a replace target resolves outside the workspace."""

    def __init__(self, target: str):
        super().__init__(f"Path is outside the workspace: {target}")
        self.target = target


class EditApplyError(RiflerError):
    """Raised when a workspace edit cannot be applied."""

    pass
