"""Subprocess runner module for voicecode.

Spawns the configured command once per prompt, either buffered or
streaming output chunks to caller-supplied callbacks.

Public API:
    CommandRunner -- Buffered and streaming runs
    RunResult -- Outcome of a run
    RunErrorKind -- Failure categories
"""

from voicecode.runner.command import CommandRunner
from voicecode.runner.models import RunErrorKind, RunResult
from voicecode.runner.sanitize import sanitize_text

__all__ = ["CommandRunner", "RunErrorKind", "RunResult", "sanitize_text"]
