"""Tests for the swallowed-exception log."""

import json
import os
import threading

from rifler.utils.exception_logger import ExceptionLogger, log_swallowed


def _entries(path):
    chunks = [c for c in path.read_text().split("\n---\n") if c.strip()]
    return [json.loads(c) for c in chunks]


class TestExceptionLogger:
    def test_initialize_creates_per_process_log(self, tmp_path):
        logger = ExceptionLogger.initialize(tmp_path)

        assert logger.log_file_path.parent == tmp_path / ".rifler"
        assert logger.log_file_path.name.startswith("error_")
        assert logger.log_file_path.name.endswith(f"_{os.getpid()}.log")
        assert logger.log_file_path.exists()
        assert ExceptionLogger.initialize(tmp_path / "other") is logger

    def test_log_exception_writes_context_and_stack(self, tmp_path):
        logger = ExceptionLogger.initialize(tmp_path)
        try:
            raise RuntimeError("boom")
        except RuntimeError as e:
            logger.log_exception(e, context={"query": "needle"})

        [entry] = _entries(logger.log_file_path)
        assert entry["exception_type"] == "RuntimeError"
        assert entry["exception_message"] == "boom"
        assert entry["context"] == {"query": "needle"}
        assert "raise RuntimeError" in entry["stack_trace"]
        assert entry["thread"] == threading.current_thread().name

    def test_log_swallowed_without_initialization_is_a_no_op(self, tmp_path):
        log_swallowed(ValueError("ignored"), path="x")
        assert not (tmp_path / ".rifler").exists()

    def test_log_swallowed_appends(self, tmp_path):
        logger = ExceptionLogger.initialize(tmp_path)

        log_swallowed(ValueError("first"), operation="replace_all")
        log_swallowed(OSError("second"), operation="save_document", path="/w/a.txt")

        entries = _entries(logger.log_file_path)
        assert [e["exception_message"] for e in entries] == ["first", "second"]
        assert entries[1]["context"] == {"operation": "save_document", "path": "/w/a.txt"}

    def test_thread_hook_records_uncaught_exceptions(self, tmp_path, monkeypatch):
        monkeypatch.setattr(threading, "excepthook", threading.excepthook)
        logger = ExceptionLogger.initialize(tmp_path)
        logger.install_thread_exception_hook()

        def fail():
            raise KeyError("worker")

        thread = threading.Thread(target=fail, name="worker-1")
        thread.start()
        thread.join()

        [entry] = _entries(logger.log_file_path)
        assert entry["thread"] == "worker-1"
        assert entry["context"] == {"exc_type": "KeyError"}
