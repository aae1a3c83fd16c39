"""On-demand slices of the output buffer.

Pull the most useful part of a long output on request: the latest
unified diff, the first failing test, or the last error with its stack.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

_GIT_DIFF_RE = re.compile(r"^diff --git .*$", re.MULTILINE)
_UNIFIED_HEADER_RE = re.compile(r"^---\s+.*\n\+\+\+\s+.*$", re.MULTILINE)
_MINUS_HEADER_RE = re.compile(r"^---\s+", re.MULTILINE)
_FAIL_RE = re.compile(r"^(FAIL|✖|x)\b.*$", re.MULTILINE | re.IGNORECASE)
_FAIL_END_RE = re.compile(r"\n\s*\n|^PASS\b|^FAIL\b|^Test Suites?:", re.MULTILINE)
_BULLET_FAIL_RE = re.compile(r"^\s*[●✖x].*$", re.MULTILINE | re.IGNORECASE)
_PYTEST_FAIL_RE = re.compile(r"^_{3,} .+ _{3,}$", re.MULTILINE)
_PYTEST_END_RE = re.compile(r"^(_{3,} .+ _{3,}|={3,}.*={3,})$", re.MULTILINE)
_BLANK_BLOCK_RE = re.compile(r"\n\s*\n")
_ERROR_LINE_RE = re.compile(r"\b(Error|Unhandled|Exception)\b")
_STACK_FRAME_RE = re.compile(r"^\s+at\s+")


def extract_latest_diff(buf: str) -> str:
    """Return the last ``diff --git`` block, or the last ``---/+++`` hunk set."""
    starts = [m.start() for m in _GIT_DIFF_RE.finditer(buf)]
    if starts:
        start = starts[-1]
        return buf[start:].strip()

    headers = [m.start() for m in _UNIFIED_HEADER_RE.finditer(buf)]
    if headers:
        start = headers[-1]
        nxt = _MINUS_HEADER_RE.search(buf, start + 1)
        end = nxt.start() if nxt else len(buf)
        return buf[start:end].strip()
    return ""


def extract_first_test_failure(buf: str) -> str:
    """Return the first failing-test block (Jest/Vitest or pytest style)."""
    m = _FAIL_RE.search(buf)
    if m:
        rest = buf[m.start():]
        end = _FAIL_END_RE.search(rest, 1)
        return (rest[: end.start()] if end else rest).strip()

    m = _PYTEST_FAIL_RE.search(buf)
    if m:
        rest = buf[m.start():]
        end = _PYTEST_END_RE.search(rest, 1)
        return (rest[: end.start()] if end else rest).strip()

    m = _BULLET_FAIL_RE.search(buf)
    if m:
        rest = buf[m.start():]
        end = _BLANK_BLOCK_RE.search(rest)
        return (rest[: end.start()] if end else rest).strip()
    return ""


def extract_last_error_stack(buf: str) -> str:
    """Return the last error line plus the stack frames that follow it."""
    lines = re.split(r"\r?\n", buf)
    start = -1
    for i, line in enumerate(lines):
        if _ERROR_LINE_RE.search(line):
            start = i
    if start == -1:
        return ""

    chunk: list[str] = []
    for i in range(start, len(lines)):
        chunk.append(lines[i])
        if i > start and not lines[i].strip():
            break
    for line in lines[start + len(chunk):]:
        if _STACK_FRAME_RE.match(line):
            chunk.append(line)
        else:
            break
    return "\n".join(chunk).strip()


@dataclass(frozen=True)
class ExpandKind:
    extract: Callable[[str], str]
    title: str
    mime: str = "text/plain"


EXPANDERS: dict[str, ExpandKind] = {
    "diff": ExpandKind(extract_latest_diff, "Latest diff", "text/x-diff"),
    "first-failure": ExpandKind(extract_first_test_failure, "First failing test"),
    "last-error": ExpandKind(extract_last_error_stack, "Last error"),
}
