"""Normalized summary schema shared by every summarizer.

Callers never branch on which engine produced a summary: heuristic and
model output are both coerced into ``Summary``.
"""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SCHEMA_VERSION = "1.0"
MAX_BULLETS = 6
MAX_ACTIONS = 6


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FileChange(_WireModel):
    path: str
    adds: int = 0
    dels: int = 0


class TestFailure(_WireModel):
    __test__ = False

    name: str = ""
    message: str = ""


class TestReport(_WireModel):
    __test__ = False

    passed: int = 0
    failed: int = 0
    failures: list[TestFailure] = Field(default_factory=list)


class ErrorEntry(_WireModel):
    type: str = ""
    message: str = ""
    file: str | None = None
    line: int | None = None


class Metrics(_WireModel):
    duration_ms: int | None = None
    commands_run: int | None = None
    exit_code: int | None = None


class Summary(_WireModel):
    version: str = SCHEMA_VERSION
    bullets: list[str] = Field(default_factory=list)
    files_changed: list[FileChange] = Field(default_factory=list)
    tests: TestReport = Field(default_factory=TestReport)
    errors: list[ErrorEntry] = Field(default_factory=list)
    actions: list[str] = Field(default_factory=list)
    metrics: Metrics = Field(default_factory=Metrics)

    @classmethod
    def from_bullets(cls, bullets: list[str]) -> Summary:
        return cls(bullets=list(bullets))

    def is_empty(self) -> bool:
        return not (
            self.bullets
            or self.files_changed
            or self.errors
            or self.actions
            or self.tests.passed
            or self.tests.failed
            or self.tests.failures
        )

    def to_wire(self) -> dict[str, Any]:
        """camelCase dict for the client, without unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


def _number(value: Any, default: int | None = 0) -> int | None:
    if isinstance(value, bool):
        return int(value)
    try:
        n = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(n):
        return default
    return int(n)


def _list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def normalize_summary(obj: Any) -> Summary:
    """Coerce loosely shaped JSON (e.g. model output) into a ``Summary``.

    Unknown fields are ignored, wrong types fall back to defaults and
    entries missing their identifying fields are dropped.
    """
    data = _dict(obj)
    tests = _dict(data.get("tests"))
    metrics = _dict(data.get("metrics"))

    files = []
    for f in _list(data.get("filesChanged")):
        f = _dict(f)
        path = str(f.get("path") or "")
        if path:
            files.append(FileChange(path=path, adds=_number(f.get("adds")), dels=_number(f.get("dels"))))

    failures = []
    for t in _list(tests.get("failures")):
        t = _dict(t)
        failure = TestFailure(name=str(t.get("name") or ""), message=str(t.get("message") or ""))
        if failure.name or failure.message:
            failures.append(failure)

    errors = []
    for e in _list(data.get("errors")):
        e = _dict(e)
        entry = ErrorEntry(
            type=str(e.get("type") or ""),
            message=str(e.get("message") or ""),
            file=str(e["file"]) if e.get("file") else None,
            line=_number(e.get("line"), default=None) if e.get("line") is not None else None,
        )
        if entry.type or entry.message:
            errors.append(entry)

    return Summary(
        bullets=[b for b in _list(data.get("bullets")) if isinstance(b, str)][:MAX_BULLETS],
        files_changed=files,
        tests=TestReport(
            passed=_number(tests.get("passed")),
            failed=_number(tests.get("failed")),
            failures=failures,
        ),
        errors=errors,
        actions=[str(a) for a in _list(data.get("actions")) if a][:MAX_ACTIONS],
        metrics=Metrics(
            duration_ms=_number(metrics.get("durationMs"), default=None),
            commands_run=_number(metrics.get("commandsRun"), default=None),
            exit_code=_number(metrics.get("exitCode"), default=None),
        ),
    )


def naive_merge(summaries: list[Summary]) -> Summary:
    """Merge chunk summaries locally when the model cannot reduce them."""
    bullets: list[str] = []
    files: dict[str, FileChange] = {}
    actions: list[str] = []
    merged = Summary()
    for s in summaries:
        for b in s.bullets:
            if len(bullets) < MAX_BULLETS and b not in bullets:
                bullets.append(b)
        for f in s.files_changed:
            prev = files.setdefault(f.path, FileChange(path=f.path))
            prev.adds += f.adds
            prev.dels += f.dels
        merged.tests.passed += s.tests.passed
        merged.tests.failed += s.tests.failed
        merged.tests.failures.extend(s.tests.failures)
        merged.errors.extend(s.errors)
        for a in s.actions:
            if a not in actions:
                actions.append(a)
    merged.bullets = bullets
    merged.files_changed = list(files.values())
    merged.actions = actions[:MAX_ACTIONS]
    return merged
