"""One-shot command runner.

Spawns the configured command once per prompt with the sanitized prompt
text as its final argument. The command is executed directly, never
through a shell, so metacharacters in the prompt have no effect.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import time
from typing import Awaitable, Callable

from voicecode.config.settings import RunnerConfig
from voicecode.runner.models import RunErrorKind, RunResult
from voicecode.runner.sanitize import clean_output, sanitize_text

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str], Awaitable[None]]

READ_SIZE = 4096


class _Capture:
    """Accumulates one output stream up to a size cap."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.text = ""
        self.truncated = False

    def add(self, chunk: str) -> bool:
        """Append a chunk; returns False if the cap was already reached."""
        if len(self.text) >= self.limit:
            self.truncated = True
            return False
        self.text += chunk
        if len(self.text) > self.limit:
            self.text = self.text[: self.limit]
            self.truncated = True
        return True


class CommandRunner:
    """Runs the configured command for each prompt, buffered or streaming."""

    def __init__(
        self,
        command: str = "echo",
        args: list[str] | None = None,
        timeout: float = 5.0,
        max_input: int = 2000,
        max_stdout: int = 64 * 1024,
        max_stderr: int = 16 * 1024,
    ) -> None:
        self._command = command
        self._args = list(args or [])
        self._timeout = timeout
        self._max_input = max_input
        self._max_stdout = max_stdout
        self._max_stderr = max_stderr

    @classmethod
    def from_config(cls, config: RunnerConfig) -> CommandRunner:
        return cls(
            command=config.command,
            args=config.args,
            timeout=config.timeout,
            max_input=config.max_input,
            max_stdout=config.max_stdout,
            max_stderr=config.max_stderr,
        )

    @property
    def timeout(self) -> float:
        return self._timeout

    def describe(self) -> dict[str, object]:
        return {
            "command": self._command,
            "args": list(self._args),
            "timeout": self._timeout,
            "max_input": self._max_input,
            "max_stdout": self._max_stdout,
            "max_stderr": self._max_stderr,
        }

    async def run(self, text: str) -> RunResult:
        """Run the command and return once it exits."""
        return await self._execute(text)

    async def run_stream(
        self,
        text: str,
        on_stdout: ChunkCallback | None = None,
        on_stderr: ChunkCallback | None = None,
    ) -> RunResult:
        """Run the command, passing each sanitized output chunk to the callbacks."""
        return await self._execute(text, on_stdout=on_stdout, on_stderr=on_stderr)

    async def _execute(
        self,
        raw_text: str,
        on_stdout: ChunkCallback | None = None,
        on_stderr: ChunkCallback | None = None,
    ) -> RunResult:
        text, input_truncated = sanitize_text(raw_text, self._max_input)
        if not text:
            return RunResult.failure(
                RunErrorKind.EMPTY_INPUT, "Please provide some text.", status=400
            )

        started = time.monotonic()
        logger.debug(
            "Spawning %s %s (input preview: %r)", self._command, self._args, text[:120]
        )
        try:
            proc = await asyncio.create_subprocess_exec(
                self._command,
                *self._args,
                text,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.debug("Spawn failed for %s: %s", self._command, e)
            return RunResult.failure(
                RunErrorKind.SPAWN_ERROR,
                "Command failed to start.",
                status=500,
                details=str(e),
            )

        stdout = _Capture(self._max_stdout)
        stderr = _Capture(self._max_stderr)
        timed_out = False
        try:
            await asyncio.wait_for(
                asyncio.gather(
                    self._pump(proc.stdout, stdout, on_stdout),
                    self._pump(proc.stderr, stderr, on_stderr),
                    proc.wait(),
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            timed_out = True
            _kill(proc)
            await proc.wait()
        except BaseException:
            # A cancelled run must not leave its child running.
            if proc.returncode is None:
                logger.debug("Run cancelled, killing process %d", proc.pid)
                _kill(proc)
                await proc.wait()
            raise

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.debug(
            "Process %d exited code=%s after %dms (out=%d err=%d%s%s)",
            proc.pid, proc.returncode, duration_ms, len(stdout.text), len(stderr.text),
            " timed out" if timed_out else "",
            " stdout truncated" if stdout.truncated else "",
        )

        common = dict(
            input_truncated=input_truncated,
            stdout_truncated=stdout.truncated,
            stderr_truncated=stderr.truncated,
            exit_code=proc.returncode,
            duration_ms=duration_ms,
        )

        if timed_out:
            return RunResult.failure(
                RunErrorKind.TIMEOUT,
                f"Command timed out after {round(self._timeout)}s",
                status=504,
                stdout=stdout.text,
                stderr=stderr.text,
                preview=(stderr.text.strip() or stdout.text.strip() or None),
                **common,
            )

        out = stdout.text.strip()
        err = stderr.text.strip()
        if proc.returncode == 0:
            notes = " ".join(
                note
                for note, flag in (
                    ("[input truncated]", input_truncated),
                    ("[output truncated]", stdout.truncated),
                )
                if flag
            )
            return RunResult(
                ok=True,
                text=f"{out}\n{notes}".strip() if notes else out,
                stdout=out,
                stderr=err,
                **common,
            )

        return RunResult.failure(
            RunErrorKind.COMMAND_FAILED,
            f"Command failed (code {proc.returncode}).",
            status=500,
            preview=err or out or "No output",
            stdout=out,
            stderr=err,
            **common,
        )

    @staticmethod
    async def _pump(
        stream: asyncio.StreamReader | None,
        capture: _Capture,
        callback: ChunkCallback | None,
    ) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await stream.read(READ_SIZE)
            final = not data
            chunk = clean_output(decoder.decode(data, final=final))
            if chunk and not capture.truncated:
                if capture.add(chunk) and callback is not None:
                    try:
                        await callback(chunk)
                    except Exception as e:
                        logger.debug("Output callback failed: %s", e)
            if final:
                return


def _kill(proc: asyncio.subprocess.Process) -> None:
    try:
        proc.kill()
    except ProcessLookupError:
        pass
