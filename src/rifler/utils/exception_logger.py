"""Exception log for failures the search and replace core swallows.

Searches never raise to their caller and replacements report through a
notifier, so the underlying exceptions would otherwise be lost. When
initialized, every captured exception is appended to
``<project>/.rifler/error_<timestamp>_<pid>.log`` as a JSON document with
its stack trace and the operation context.
"""

import json
import os
import threading
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional


class ExceptionLogger:
    """Appends captured exceptions to a per-process log file."""

    _instance: Optional["ExceptionLogger"] = None
    log_file_path: Optional[Path] = None

    def __init__(self, log_file_path: Path):
        self.log_file_path = log_file_path
        self._lock = threading.Lock()

    @classmethod
    def initialize(cls, project_root: Path) -> "ExceptionLogger":
        """Initialize the process-wide logger (idempotent).

        Tests that need a fresh instance reset ``cls._instance = None``.

        Args:
            project_root: Directory whose ``.rifler`` folder receives the log

        Returns:
            The shared ExceptionLogger instance
        """
        if cls._instance is not None:
            return cls._instance

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_dir = project_root / ".rifler"
        log_dir.mkdir(parents=True, exist_ok=True)

        log_file_path = log_dir / f"error_{timestamp}_{os.getpid()}.log"
        log_file_path.touch()

        cls._instance = cls(log_file_path)
        return cls._instance

    @classmethod
    def get_instance(cls) -> Optional["ExceptionLogger"]:
        return cls._instance

    def log_exception(
        self,
        exception: BaseException,
        thread_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Append one exception with its context.

        Args:
            exception: The exception to record
            thread_name: Thread the exception occurred on (defaults to current)
            context: Operation details, e.g. the query or the target path
        """
        if not self.log_file_path:
            return

        stack = "".join(
            traceback.format_exception(
                type(exception), exception, exception.__traceback__
            )
        )
        log_entry = {
            "timestamp": datetime.now().isoformat(),
            "thread": thread_name or threading.current_thread().name,
            "exception_type": type(exception).__name__,
            "exception_message": str(exception),
            "stack_trace": stack,
            "context": context or {},
        }

        with self._lock:
            with open(self.log_file_path, "a") as f:
                f.write(json.dumps(log_entry, indent=2, default=str))
                f.write("\n---\n")

    def install_thread_exception_hook(self) -> None:
        """Route uncaught thread exceptions (e.g. from asyncio.to_thread) here."""

        def global_thread_exception_handler(args):
            self.log_exception(
                exception=args.exc_value,
                thread_name=args.thread.name if args.thread else None,
                context={"exc_type": args.exc_type.__name__},
            )

        threading.excepthook = global_thread_exception_handler


def log_swallowed(exception: BaseException, **context: Any) -> None:
    """Record an exception the caller is about to swallow, if logging is on."""
    instance = ExceptionLogger.get_instance()
    if instance is not None:
        instance.log_exception(exception, context=context)
