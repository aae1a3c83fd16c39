"""Tests for buffer slicing helpers used by expandRequest."""

from __future__ import annotations

from voicecode.server.expand import (
    EXPANDERS,
    extract_first_test_failure,
    extract_last_error_stack,
    extract_latest_diff,
)

TWO_DIFFS = (
    "$ git diff\n"
    "diff --git a/one.py b/one.py\n"
    "--- a/one.py\n"
    "+++ b/one.py\n"
    "@@ -1 +1 @@\n"
    "-old\n"
    "+new\n"
    "diff --git a/two.py b/two.py\n"
    "--- a/two.py\n"
    "+++ b/two.py\n"
    "@@ -1 +1 @@\n"
    "-before\n"
    "+after\n"
)


class TestExtractLatestDiff:
    def test_latest_git_diff_only(self) -> None:
        diff = extract_latest_diff(TWO_DIFFS)
        assert diff.startswith("diff --git a/two.py b/two.py")
        assert "+after" in diff
        assert "one.py" not in diff

    def test_plain_unified_diff(self) -> None:
        buf = "--- a.txt\n+++ b.txt\n@@ -1 +1 @@\n-x\n+y\n"
        assert extract_latest_diff(buf) == buf.strip()

    def test_no_diff(self) -> None:
        assert extract_latest_diff("nothing to see") == ""


class TestExtractFirstTestFailure:
    def test_jest_block(self, sample_test_output: str) -> None:
        block = extract_first_test_failure(sample_test_output)
        assert block.startswith("FAIL src/b.test.ts")
        assert "expected 3 received 4" in block
        assert "Tests:" not in block

    def test_pytest_block(self) -> None:
        buf = (
            "============ FAILURES ============\n"
            "____ test_add ____\n"
            "    assert 1 == 2\n"
            "E   AssertionError\n"
            "____ test_sub ____\n"
            "    assert 0\n"
        )
        block = extract_first_test_failure(buf)
        assert block.startswith("____ test_add ____")
        assert "AssertionError" in block
        assert "test_sub" not in block

    def test_none(self) -> None:
        assert extract_first_test_failure("all good\n") == ""


class TestExtractLastErrorStack:
    def test_last_error_with_frames(self, sample_test_output: str) -> None:
        block = extract_last_error_stack(sample_test_output)
        assert block.splitlines() == [
            "Error: something broke",
            "    at add (src/b.ts:3:9)",
            "    at run (src/index.ts:10:1)",
        ]

    def test_none(self) -> None:
        assert extract_last_error_stack("fine\nstill fine") == ""


class TestExpanders:
    def test_registry(self) -> None:
        assert set(EXPANDERS) == {"diff", "first-failure", "last-error"}
        assert EXPANDERS["diff"].mime == "text/x-diff"
        assert EXPANDERS["last-error"].title == "Last error"
