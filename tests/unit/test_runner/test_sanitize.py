"""Tests for input sanitization and output cleaning."""

from __future__ import annotations

from voicecode.runner.models import RunErrorKind, RunResult
from voicecode.runner.sanitize import clean_output, sanitize_text, strip_control


class TestSanitizeText:
    def test_keeps_tabs_and_newlines(self) -> None:
        assert strip_control("a\tb\nc\r\n") == "a\tb\nc\r\n"

    def test_strips_controls_and_whitespace(self) -> None:
        assert sanitize_text("  \x00run\x08 tests\x7f  ", 100) == ("run tests", False)

    def test_truncation_flag(self) -> None:
        clean, truncated = sanitize_text("abcdef", 3)
        assert clean == "abc"
        assert truncated is True

    def test_none_becomes_empty(self) -> None:
        assert sanitize_text(None, 10) == ("", False)

    def test_unicode_preserved(self) -> None:
        assert sanitize_text("café ✓", 10) == ("café ✓", False)


class TestCleanOutput:
    def test_removes_color_codes(self) -> None:
        assert clean_output("\x1b[1;32mPASS\x1b[0m done") == "PASS done"

    def test_removes_title_sequence(self) -> None:
        assert clean_output("\x1b]0;user@host\x07$ ls") == "$ ls"


class TestRunResult:
    def test_error_payload(self) -> None:
        result = RunResult.failure(
            RunErrorKind.TIMEOUT, "Command timed out after 5s", status=504, preview="partial"
        )
        assert result.to_error_payload() == {
            "error": "timeout",
            "message": "Command timed out after 5s",
            "preview": "partial",
        }

    def test_error_payload_without_preview(self) -> None:
        result = RunResult.failure(RunErrorKind.EMPTY_INPUT, "Please provide some text.", status=400)
        assert "preview" not in result.to_error_payload()
