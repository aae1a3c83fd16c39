"""Shared test fixtures for the voicecode test suite.

Provides common fixtures used across unit tests: runners that spawn the
current interpreter, a recording send function, a mock PTY manager and
sample terminal output.
"""

from __future__ import annotations

import sys
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from voicecode.config.settings import SummaryEngineKind
from voicecode.runner.command import CommandRunner
from voicecode.session.manager import PtySessionManager, SessionConfig
from voicecode.summarizer.engine import SummaryEngine


class Recorder:
    """Collects outbound messages sent to a fake client."""

    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []

    async def __call__(self, payload: dict[str, Any]) -> None:
        self.messages.append(payload)

    def of_type(self, kind: str) -> list[dict[str, Any]]:
        return [m for m in self.messages if m.get("type") == kind]

    def types(self) -> list[str]:
        return [m.get("type", "") for m in self.messages]


# ---------------------------------------------------------------------------
# Runner Fixtures
# ---------------------------------------------------------------------------


def _python_runner(script: str, **kwargs: Any) -> CommandRunner:
    return CommandRunner(command=sys.executable, args=["-c", script], **kwargs)


@pytest.fixture
def make_runner():
    """Factory for runners executing ``python -c script <text>``."""
    return _python_runner


@pytest.fixture
def echo_runner() -> CommandRunner:
    """A runner that prints its argument to stdout."""
    return _python_runner("import sys; print(sys.argv[1])")


@pytest.fixture
def failing_runner() -> CommandRunner:
    """A runner that writes to stderr and exits with code 2."""
    return _python_runner("import sys; sys.stderr.write('bad things'); sys.exit(2)")


# ---------------------------------------------------------------------------
# Session Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_session_config() -> SessionConfig:
    return SessionConfig(shell="/bin/sh", args=[], cwd="/tmp", cols=80, rows=24)


@pytest.fixture
def mock_manager(sample_session_config: SessionConfig) -> MagicMock:
    """A PtySessionManager stand-in that is not running."""
    manager = MagicMock(spec=PtySessionManager)
    manager.is_running = False
    manager.get_buffer.return_value = ""
    manager.config = sample_session_config
    manager.start = AsyncMock()
    manager.stop = AsyncMock(return_value=True)
    manager.reset = AsyncMock(return_value=None)
    manager.write = AsyncMock()
    manager.close = AsyncMock()
    manager.interrupt.return_value = False
    return manager


# ---------------------------------------------------------------------------
# Summary Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def heuristic_engine() -> SummaryEngine:
    return SummaryEngine(SummaryEngineKind.HEURISTIC)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def sample_test_output() -> str:
    """Terminal output from a failing test run with a diff."""
    return (
        "$ npm test\n"
        "PASS src/a.test.ts\n"
        "FAIL src/b.test.ts\n"
        "  ● adds numbers\n"
        "    expected 3 received 4\n"
        "\n"
        "Tests: 1 failed, 1 passed, 2 total\n"
        "Time: 1.2 s\n"
        "modified: src/b.ts\n"
        "Error: something broke\n"
        "    at add (src/b.ts:3:9)\n"
        "    at run (src/index.ts:10:1)\n"
    )
