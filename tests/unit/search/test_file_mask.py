"""Unit tests for file mask matching."""

import pytest

from rifler.search.file_mask import (
    glob_to_regex,
    mask_to_glob_args,
    matches_file_mask,
    parse_file_mask,
    validate_file_mask,
)


class TestMatchesFileMask:
    @pytest.mark.parametrize("mask", ["", "   ", ",;", " , ; "])
    def test_empty_mask_matches_everything(self, mask):
        assert matches_file_mask("anything.bin", mask)

    def test_include_patterns(self):
        assert matches_file_mask("app.ts", "*.ts")
        assert matches_file_mask("app.js", "*.ts, *.js")
        assert matches_file_mask("app.js", "*.ts;*.js")
        assert not matches_file_mask("app.py", "*.ts, *.js")

    def test_question_mark_matches_one_character(self):
        assert matches_file_mask("a1.txt", "a?.txt")
        assert not matches_file_mask("a12.txt", "a?.txt")

    def test_case_insensitive(self):
        assert matches_file_mask("README.MD", "*.md")

    def test_anchored(self):
        assert not matches_file_mask("app.tsx", "*.ts")

    def test_dots_are_literal(self):
        assert not matches_file_mask("appxts", "app.ts")

    def test_exclude_only_mask(self):
        assert matches_file_mask("app.ts", "!*.test.ts")
        assert not matches_file_mask("app.test.ts", "!*.test.ts")

    @pytest.mark.parametrize(
        "mask",
        ["*.ts, !*.test.ts", "!*.test.ts, *.ts", "*, !app.test.ts", "app.test.ts; !app.test.ts"],
    )
    def test_exclude_always_wins(self, mask):
        assert not matches_file_mask("app.test.ts", mask)

    def test_idempotent(self):
        for _ in range(3):
            assert matches_file_mask("x.py", "*.py, !y*") is True
            assert matches_file_mask("y.py", "*.py, !y*") is False

    def test_bare_exclamation_is_ignored(self):
        assert matches_file_mask("a.py", "!, *.py")


def test_parse_file_mask():
    mask = parse_file_mask(" *.ts ; !*.spec.ts, ,*.js ")
    assert mask.includes == ["*.ts", "*.js"]
    assert mask.excludes == ["*.spec.ts"]
    assert parse_file_mask("").is_empty


def test_glob_to_regex():
    assert glob_to_regex("*.py") == "^.*\\.py$"
    assert glob_to_regex("a?(b)") == "^a.\\(b\\)$"


def test_validate_file_mask_accepts_globs():
    assert validate_file_mask("").is_valid
    result = validate_file_mask("*.py, !test_*")
    assert result.is_valid
    assert result.fallback_to_all is False


def test_mask_to_glob_args():
    assert mask_to_glob_args("*.py, !test_*.py") == ["--glob", "*.py", "--glob", "!test_*.py"]
    assert mask_to_glob_args("") == []
