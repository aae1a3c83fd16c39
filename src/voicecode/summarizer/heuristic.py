"""Deterministic regex-driven summarizer.

Needs no network access. Looks at the tail of the output for errors,
file changes, durations and test results and turns them into a handful
of bullets.
"""

from __future__ import annotations

import re

from voicecode.summarizer.base import Summarizer
from voicecode.summarizer.models import Summary

MAX_CHARS = 8000
MAX_LINES = 500
RECENT_LINES = 200
MAX_HEURISTIC_BULLETS = 5

_ERROR_RE = re.compile(
    r"(error|failed|failure|exception|traceback|segmentation fault|panic:|unable to)",
    re.IGNORECASE,
)
_FILE_RE = re.compile(
    r"\b([\w./-]+\.(?:js|ts|tsx|jsx|json|md|css|scss|html|py|rb|go|java|rs|kt|sh|yml|yaml|toml))\b"
)
_CHANGE_RE = re.compile(r"(added|modified|changed|created|deleted|renamed)", re.IGNORECASE)
_DURATION_RE = re.compile(
    r"\b(\d+(?:\.\d+)?)(ms|s|sec|seconds|min|minutes|h|hours)\b", re.IGNORECASE
)
_TEST_RE = re.compile(
    r"(tests?|specs?)\b.*\b(pass|passed|fail|failed|skipped|todo)\b", re.IGNORECASE
)


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def _error_bullets(lines: list[str]) -> list[str]:
    bullets = []
    for line in lines:
        if _ERROR_RE.search(line):
            bullets.append(f"Error: {line.strip()[:180]}")
        if len(bullets) >= 2:
            break
    return bullets


def _change_bullets(lines: list[str]) -> tuple[list[str], list[str]]:
    bullets: list[str] = []
    files: list[str] = []
    for line in lines:
        files.extend(m.group(1) for m in _FILE_RE.finditer(line))
        if _CHANGE_RE.search(line):
            bullets.append(f"Change: {line.strip()[:160]}")
        if len(bullets) >= 2:
            break
    return bullets, _unique(files)


def _duration_bullet(lines: list[str]) -> str | None:
    durations: list[str] = []
    for line in lines:
        durations.extend(f"{m.group(1)}{m.group(2)}" for m in _DURATION_RE.finditer(line))
        if len(durations) > 6:
            break
    if durations:
        return f"Durations seen: {', '.join(_unique(durations)[:4])}"
    return None


def _test_bullet(lines: list[str]) -> str | None:
    for line in lines:
        if _TEST_RE.search(line):
            return f"Tests: {line.strip()[:160]}"
    return None


def summarize_bullets(raw_text: str | None) -> list[str]:
    """Derive up to five bullets from the most recent output."""
    text = (raw_text or "")[-MAX_CHARS:]
    recent = re.split(r"\r?\n", text)[-MAX_LINES:]
    bullets = _error_bullets(recent)

    changes, files = _change_bullets(recent[-RECENT_LINES:])
    bullets.extend(changes)
    if len(bullets) < MAX_HEURISTIC_BULLETS and files:
        bullets.append(f"Files mentioned: {', '.join(files[:5])}")

    if len(bullets) < MAX_HEURISTIC_BULLETS:
        duration = _duration_bullet(recent[-RECENT_LINES:])
        if duration:
            bullets.append(duration)

    if len(bullets) < MAX_HEURISTIC_BULLETS:
        tests = _test_bullet(recent)
        if tests:
            bullets.append(tests)

    if not bullets:
        bullets.append(f"Output: {len(recent)} line(s), showing recent activity.")

    return bullets[:MAX_HEURISTIC_BULLETS]


class HeuristicSummarizer(Summarizer):
    """Local summarizer; always available, never raises."""

    name = "heuristic"

    async def summarize(self, text: str) -> Summary:
        return Summary.from_bullets(summarize_bullets(text))

    async def health(self) -> dict[str, object]:
        return {"ok": True}
