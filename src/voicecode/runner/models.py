"""Result models for one-shot command runs."""

from __future__ import annotations

import enum

from pydantic import BaseModel, Field


class RunErrorKind(str, enum.Enum):
    """Why a run did not succeed."""

    EMPTY_INPUT = "empty_input"
    SPAWN_ERROR = "spawn_error"
    TIMEOUT = "timeout"
    COMMAND_FAILED = "command_failed"


class RunResult(BaseModel):
    """Outcome of a single command run.

    Failures are reported as values rather than exceptions so callers can
    forward them straight to a client.
    """

    ok: bool
    text: str | None = None
    error: RunErrorKind | None = None
    message: str | None = None
    status: int = 200
    preview: str | None = None
    details: str | None = None
    stdout: str = ""
    stderr: str = ""
    input_truncated: bool = False
    stdout_truncated: bool = False
    stderr_truncated: bool = False
    exit_code: int | None = None
    duration_ms: int | None = Field(default=None, ge=0)

    @classmethod
    def failure(
        cls,
        error: RunErrorKind,
        message: str,
        status: int,
        **kwargs: object,
    ) -> RunResult:
        return cls(ok=False, error=error, message=message, status=status, **kwargs)

    def to_error_payload(self) -> dict[str, object]:
        """Client-facing error fields (``error``, ``message``, ``preview``)."""
        payload: dict[str, object] = {
            "error": self.error.value if self.error else RunErrorKind.COMMAND_FAILED.value,
            "message": self.message or "Command failed.",
        }
        if self.preview:
            payload["preview"] = self.preview
        return payload
