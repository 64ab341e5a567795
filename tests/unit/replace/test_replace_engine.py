"""Tests for ReplaceEngine: replace_one, replace_all and the workspace boundary."""

from pathlib import Path
from typing import List
from unittest.mock import AsyncMock, patch

import pytest

from rifler.filesystem import LocalFileSystemProvider
from rifler.models import SearchOptions, SearchScope
from rifler.replacer import NOTHING_TO_REPLACE, Notifier, ReplaceEngine
from rifler.search.engine import SearchEngine
from rifler.search.results import build_line_results


class RecordingNotifier(Notifier):
    def __init__(self):
        self.infos: List[str] = []
        self.errors: List[str] = []

    def show_info(self, message: str) -> None:
        self.infos.append(message)

    def show_error(self, message: str) -> None:
        self.errors.append(message)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def replacer(provider, fallback_config, notifier) -> ReplaceEngine:
    return ReplaceEngine(SearchEngine(provider, fallback_config), notifier)


class TestReplaceAll:
    @pytest.mark.asyncio
    async def test_replaces_every_occurrence_and_refreshes_once(
        self, workspace: Path, replacer: ReplaceEngine, notifier
    ):
        target = workspace / "words.txt"
        target.write_text(
            "word_to_replace at start\n"
            "middle word_to_replace and word_to_replace\n"
            "untouched line\n"
        )
        refresh = AsyncMock()

        outcome = await replacer.replace_all(
            "word_to_replace",
            "new_word",
            SearchScope.PROJECT,
            SearchOptions(),
            on_refresh=refresh,
        )

        content = target.read_text()
        assert content.count("word_to_replace") == 0
        assert content.count("new_word") == 3
        assert content.endswith("untouched line\n")
        assert refresh.await_count == 1
        assert outcome.success is True
        assert outcome.replaced == 3
        assert outcome.files == [str(target)]
        assert notifier.infos == ["Replaced 3 occurrences."]

    @pytest.mark.asyncio
    async def test_replacement_of_different_length(self, workspace: Path, replacer: ReplaceEngine):
        target = workspace / "a.py"
        target.write_text("x = foo + foo\nfoo()\n")

        await replacer.replace_all("foo", "b", SearchScope.FILE, SearchOptions(), file_path=str(target))

        assert target.read_text() == "x = b + b\nb()\n"

    @pytest.mark.asyncio
    async def test_respects_scope(self, workspace: Path, replacer: ReplaceEngine):
        inside = workspace / "in"
        inside.mkdir()
        (inside / "a.txt").write_text("token\n")
        (workspace / "b.txt").write_text("token\n")

        await replacer.replace_all(
            "token", "done", SearchScope.DIRECTORY, SearchOptions(), directory_path=str(inside)
        )

        assert (inside / "a.txt").read_text() == "done\n"
        assert (workspace / "b.txt").read_text() == "token\n"

    @pytest.mark.asyncio
    async def test_nothing_to_replace(self, workspace: Path, replacer: ReplaceEngine, notifier):
        (workspace / "a.txt").write_text("nothing\n")
        refresh = AsyncMock()

        outcome = await replacer.replace_all(
            "absent_term", "x", SearchScope.PROJECT, SearchOptions(), on_refresh=refresh
        )

        assert outcome.success is False
        assert outcome.message == NOTHING_TO_REPLACE
        assert notifier.infos == [NOTHING_TO_REPLACE]
        refresh.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_target_outside_workspace_aborts_without_changes(
        self, workspace: Path, tmp_path: Path, replacer: ReplaceEngine, notifier
    ):
        inside = workspace / "inside.txt"
        inside.write_text("secret\n")
        outside = tmp_path / "outside.txt"
        outside.write_text("secret\n")
        results = build_line_results(str(inside), 0, "secret", [(0, 6)]) + build_line_results(
            str(outside), 0, "secret", [(0, 6)]
        )

        with patch.object(replacer.engine, "search", AsyncMock(return_value=results)):
            outcome = await replacer.replace_all("secret", "x", SearchScope.PROJECT, SearchOptions())

        assert outcome.success is False
        assert notifier.errors and "outside workspace" in notifier.errors[0]
        assert inside.read_text() == "secret\n"
        assert outside.read_text() == "secret\n"

    @pytest.mark.asyncio
    async def test_stale_coordinates_fail_atomically(
        self, workspace: Path, replacer: ReplaceEngine, notifier
    ):
        good = workspace / "good.txt"
        good.write_text("value\n")
        short = workspace / "short.txt"
        short.write_text("v\n")
        results = build_line_results(str(good), 0, "value", [(0, 5)]) + build_line_results(
            str(short), 3, "value", [(0, 5)]
        )

        with patch.object(replacer.engine, "search", AsyncMock(return_value=results)):
            outcome = await replacer.replace_all("value", "x", SearchScope.PROJECT, SearchOptions())

        assert outcome.success is False
        assert notifier.errors == ["Failed to apply replacements."]
        assert good.read_text() == "value\n"
        assert replacer.provider.open_documents() == {}

    @pytest.mark.asyncio
    async def test_failed_save_is_reported_not_raised(
        self, workspace: Path, replacer: ReplaceEngine
    ):
        (workspace / "a.txt").write_text("old\n")
        (workspace / "b.txt").write_text("old\n")
        real_save = replacer.provider.save_document

        async def flaky_save(path):
            if path.endswith("a.txt"):
                raise OSError("disk full")
            await real_save(path)

        with patch.object(replacer.provider, "save_document", side_effect=flaky_save):
            outcome = await replacer.replace_all("old", "new", SearchScope.PROJECT, SearchOptions())

        assert outcome.success is True
        assert [Path(p).name for p in outcome.failed_saves] == ["a.txt"]
        assert (workspace / "b.txt").read_text() == "new\n"
        assert (workspace / "a.txt").read_text() == "old\n"

    @pytest.mark.asyncio
    async def test_refresh_errors_are_contained(self, workspace: Path, replacer: ReplaceEngine):
        (workspace / "a.txt").write_text("old\n")
        refresh = AsyncMock(side_effect=RuntimeError("view gone"))

        outcome = await replacer.replace_all(
            "old", "new", SearchScope.PROJECT, SearchOptions(), on_refresh=refresh
        )

        assert outcome.success is True
        assert refresh.await_count == 1


class TestReplaceOne:
    @pytest.mark.asyncio
    async def test_replaces_single_match(self, workspace: Path, replacer: ReplaceEngine):
        target = workspace / "a.txt"
        target.write_text("one two one\n")

        ok = await replacer.replace_one(target.as_uri(), 0, 8, 3, "three")

        assert ok is True
        assert target.read_text() == "one two three\n"

    @pytest.mark.asyncio
    async def test_rejects_uri_outside_workspace(
        self, workspace: Path, tmp_path: Path, replacer: ReplaceEngine, notifier
    ):
        outside = tmp_path / "outside.txt"
        outside.write_text("abc\n")

        ok = await replacer.replace_one(outside.as_uri(), 0, 0, 3, "xyz")

        assert ok is False
        assert outside.read_text() == "abc\n"
        assert notifier.errors[0].startswith("Could not replace text:")

    @pytest.mark.asyncio
    async def test_rejects_traversal(self, workspace: Path, replacer: ReplaceEngine):
        escape = f"{workspace.as_uri()}/../escape.txt"
        (workspace.parent / "escape.txt").write_text("abc\n")

        assert await replacer.replace_one(escape, 0, 0, 3, "xyz") is False
        assert (workspace.parent / "escape.txt").read_text() == "abc\n"

    @pytest.mark.asyncio
    async def test_rejects_non_file_scheme(self, replacer: ReplaceEngine):
        assert await replacer.replace_one("untitled:Untitled-1", 0, 0, 1, "x") is False

    @pytest.mark.asyncio
    async def test_out_of_range_edit_fails(self, workspace: Path, replacer: ReplaceEngine):
        target = workspace / "a.txt"
        target.write_text("short\n")

        assert await replacer.replace_one(target.as_uri(), 5, 0, 3, "x") is False
        assert target.read_text() == "short\n"

    @pytest.mark.asyncio
    async def test_no_workspace_allows_any_file(self, tmp_path: Path, fallback_config):
        target = tmp_path / "loose.txt"
        target.write_text("abc\n")
        replacer = ReplaceEngine(SearchEngine(LocalFileSystemProvider([]), fallback_config))

        assert await replacer.replace_one(target.as_uri(), 0, 0, 3, "xyz") is True
        assert target.read_text() == "xyz\n"
