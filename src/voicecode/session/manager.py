"""Shared interactive shell session on a pseudo-terminal.

At most one shell process runs at a time. Its output is kept in a
bounded ring buffer and published to every subscriber's channel.
"""

from __future__ import annotations

import asyncio
import codecs
import enum
import fcntl
import logging
import os
import pty
import signal
import struct
import termios
from dataclasses import dataclass, field

from voicecode.config.settings import PtyConfig
from voicecode.session.buffer import RingBuffer
from voicecode.session.events import ExitEvent, OutputEvent, SessionEvent, Subscription

logger = logging.getLogger(__name__)

READ_SIZE = 4096
INTERRUPT_BYTE = b"\x03"  # Ctrl+C
WRITE_POLL = 0.1


class SessionState(str, enum.Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"


@dataclass(frozen=True)
class SessionConfig:
    shell: str
    args: list[str]
    cwd: str
    cols: int
    rows: int
    env: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "shell": self.shell,
            "args": list(self.args),
            "cwd": self.cwd,
            "cols": self.cols,
            "rows": self.rows,
        }


@dataclass(frozen=True)
class StartResult:
    ok: bool
    config: SessionConfig
    pid: int | None = None
    already_running: bool = False


@dataclass
class _ShellProcess:
    process: asyncio.subprocess.Process
    master_fd: int
    config: SessionConfig
    eof: asyncio.Event = field(default_factory=asyncio.Event)
    monitor: asyncio.Task[None] | None = None


class PtySessionManager:
    """Owns the single shared shell process and its output buffer.

    ``start``, ``stop`` and ``reset`` are serialized by a lock. Process exit
    is observed by a monitor task which publishes an ``ExitEvent`` and
    returns the manager to ``STOPPED``.
    """

    def __init__(
        self,
        shell: str = "/bin/bash",
        args: list[str] | None = None,
        cwd: str | None = None,
        cols: int = 120,
        rows: int = 30,
        max_buffer: int = 100 * 1024,
        subscriber_queue_size: int = 1024,
        stop_grace: float = 0.5,
    ) -> None:
        self._defaults = SessionConfig(
            shell=shell,
            args=list(args if args is not None else ["-i"]),
            cwd=cwd or os.getcwd(),
            cols=cols,
            rows=rows,
        )
        self._buffer = RingBuffer(max_buffer)
        self._subscriber_queue_size = subscriber_queue_size
        self._stop_grace = stop_grace
        self._subscribers: set[Subscription] = set()
        self._lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()
        self._state = SessionState.STOPPED
        self._current: _ShellProcess | None = None
        self._last_config: SessionConfig | None = None

    @classmethod
    def from_config(cls, config: PtyConfig) -> PtySessionManager:
        return cls(
            shell=config.shell,
            args=config.args,
            cwd=config.cwd,
            cols=config.cols,
            rows=config.rows,
            max_buffer=config.max_buffer,
            subscriber_queue_size=config.subscriber_queue_size,
        )

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == SessionState.RUNNING and self._current is not None

    @property
    def config(self) -> SessionConfig | None:
        """Configuration of the running session, or of the last one started."""
        if self._current is not None:
            return self._current.config
        return self._last_config

    @property
    def pid(self) -> int | None:
        return self._current.process.pid if self._current else None

    def get_buffer(self) -> str:
        return self._buffer.text()

    # -- subscriptions -----------------------------------------------------

    def subscribe(self, maxsize: int | None = None) -> Subscription:
        sub = Subscription(maxsize or self._subscriber_queue_size, self._subscribers.discard)
        self._subscribers.add(sub)
        return sub

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _publish(self, event: SessionEvent) -> None:
        for sub in list(self._subscribers):
            try:
                sub.publish(event)
            except Exception as e:
                logger.debug("Dropping event for subscriber: %s", e)

    # -- lifecycle ---------------------------------------------------------

    async def start(self, options: dict | None = None) -> StartResult:
        """Start the shell, or report the running one."""
        async with self._lock:
            if self._current is not None:
                logger.debug("Shell already running (pid=%d)", self._current.process.pid)
                return StartResult(
                    ok=True, config=self._current.config, already_running=True
                )
            return await self._spawn(self._merge_options(options or {}))

    async def stop(self) -> bool:
        """Terminate the shell. Returns False if nothing was running."""
        async with self._lock:
            return await self._terminate()

    async def reset(self) -> StartResult | None:
        """Restart the shell with the last configuration used."""
        async with self._lock:
            config = self.config
            await self._terminate()
            if config is None:
                return None
            return await self._spawn(config)

    async def write(self, data: str) -> None:
        """Send input data to the shell via the pty."""
        current = self._current
        if current is None or not self.is_running:
            raise SessionNotRunningError("PTY not running")
        pending = memoryview(data.encode())
        async with self._write_lock:
            while pending:
                if self._current is not current:
                    raise SessionNotRunningError("PTY stopped during write")
                try:
                    written = os.write(current.master_fd, pending)
                except BlockingIOError:
                    # Terminal input queue is full; wait for the shell to drain it
                    await _wait_writable(current.master_fd, WRITE_POLL)
                    continue
                except OSError as e:
                    raise SessionError(f"Failed to write to shell: {e}") from e
                pending = pending[written:]

    def interrupt(self) -> bool:
        """Send Ctrl+C to the foreground process, leaving the shell alive."""
        current = self._current
        if current is None:
            return False
        try:
            os.write(current.master_fd, INTERRUPT_BYTE)
            logger.debug("Sent SIGINT (Ctrl+C) to shell")
            return True
        except OSError as e:
            logger.debug("Interrupt failed: %s", e)
            return False

    def resize(self, cols: int, rows: int) -> SessionConfig:
        """Change the terminal dimensions without restarting."""
        current = self._current
        if current is None:
            raise SessionNotRunningError("PTY not running")
        if cols <= 0 or rows <= 0:
            raise ValueError("cols and rows must be positive")
        _set_winsize(current.master_fd, rows, cols)
        current.config = SessionConfig(
            shell=current.config.shell,
            args=current.config.args,
            cwd=current.config.cwd,
            cols=cols,
            rows=rows,
            env=current.config.env,
        )
        self._last_config = current.config
        logger.debug("Resized shell to %dx%d", cols, rows)
        return current.config

    # -- internals ---------------------------------------------------------

    def _merge_options(self, options: dict) -> SessionConfig:
        base = self._last_config or self._defaults
        args = options.get("args")
        if isinstance(args, str):
            args = args.split()
        return SessionConfig(
            shell=options.get("cmd") or options.get("shell") or self._defaults.shell,
            args=list(args) if args is not None else list(self._defaults.args),
            cwd=options.get("cwd") or self._defaults.cwd,
            cols=int(options.get("cols") or base.cols),
            rows=int(options.get("rows") or base.rows),
            env={str(k): str(v) for k, v in (options.get("env") or {}).items()},
        )

    async def _spawn(self, config: SessionConfig) -> StartResult:
        self._state = SessionState.STARTING
        try:
            master_fd, slave_fd = pty.openpty()
        except OSError as e:
            self._state = SessionState.STOPPED
            raise SessionStartError(f"Failed to allocate a pty: {e}") from e
        _set_winsize(slave_fd, config.rows, config.cols)

        env = os.environ.copy()
        env.update(config.env)
        env["TERM"] = "xterm-256color"
        env["COLUMNS"] = str(config.cols)
        env["LINES"] = str(config.rows)

        logger.debug("Starting shell %s %s in %s", config.shell, config.args, config.cwd)
        try:
            process = await asyncio.create_subprocess_exec(
                config.shell,
                *config.args,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                cwd=config.cwd,
                env=env,
                start_new_session=True,
                preexec_fn=_acquire_controlling_tty,
            )
        except (OSError, ValueError) as e:
            os.close(master_fd)
            os.close(slave_fd)
            self._state = SessionState.STOPPED
            raise SessionStartError(f"Failed to start {config.shell}: {e}") from e
        os.close(slave_fd)

        flags = fcntl.fcntl(master_fd, fcntl.F_GETFL)
        fcntl.fcntl(master_fd, fcntl.F_SETFL, flags | os.O_NONBLOCK)

        self._buffer.clear()
        current = _ShellProcess(process=process, master_fd=master_fd, config=config)
        self._current = current
        self._last_config = config

        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        loop = asyncio.get_running_loop()
        loop.add_reader(master_fd, self._on_readable, current, decoder)
        current.monitor = asyncio.create_task(self._monitor(current))

        self._state = SessionState.RUNNING
        logger.info(
            "Started shell %s (pid=%d, %dx%d)",
            config.shell, process.pid, config.cols, config.rows,
        )
        return StartResult(ok=True, config=config, pid=process.pid)

    def _on_readable(self, current: _ShellProcess, decoder: codecs.IncrementalDecoder) -> None:
        try:
            data = os.read(current.master_fd, READ_SIZE)
        except BlockingIOError:
            return
        except OSError:
            # EIO once the slave side has closed
            data = b""
        if not data:
            asyncio.get_running_loop().remove_reader(current.master_fd)
            current.eof.set()
            return
        self._buffer.append(data)
        text = decoder.decode(data)
        if text:
            self._publish(OutputEvent(text))

    async def _monitor(self, current: _ShellProcess) -> None:
        returncode = await current.process.wait()
        try:
            await asyncio.wait_for(current.eof.wait(), timeout=1.0)
        except asyncio.TimeoutError:
            logger.debug("Shell output did not reach EOF after exit")
        loop = asyncio.get_running_loop()
        loop.remove_reader(current.master_fd)
        try:
            os.close(current.master_fd)
        except OSError:
            pass

        if self._current is current:
            self._current = None
            self._state = SessionState.STOPPED
        event = ExitEvent(
            exit_code=returncode if returncode >= 0 else None,
            signal=-returncode if returncode < 0 else None,
        )
        logger.info("Shell exited (pid=%d, code=%s)", current.process.pid, returncode)
        self._publish(event)

    async def _terminate(self) -> bool:
        current = self._current
        if current is None:
            return False
        pid = current.process.pid
        _signal_group(pid, signal.SIGTERM)
        try:
            await asyncio.wait_for(asyncio.shield(current.process.wait()), self._stop_grace)
        except asyncio.TimeoutError:
            _signal_group(pid, signal.SIGKILL)
        if current.monitor is not None:
            await current.monitor
        logger.info("Shell stopped")
        return True

    async def close(self) -> None:
        """Stop the shell and close every subscription."""
        await self.stop()
        for sub in list(self._subscribers):
            sub.close()


def _set_winsize(fd: int, rows: int, cols: int) -> None:
    winsize = struct.pack("HHHH", rows, cols, 0, 0)
    fcntl.ioctl(fd, termios.TIOCSWINSZ, winsize)


async def _wait_writable(fd: int, timeout: float) -> None:
    loop = asyncio.get_running_loop()
    ready = loop.create_future()

    def _on_writable() -> None:
        if not ready.done():
            ready.set_result(None)

    loop.add_writer(fd, _on_writable)
    try:
        await asyncio.wait_for(ready, timeout)
    except asyncio.TimeoutError:
        pass
    finally:
        loop.remove_writer(fd)


def _acquire_controlling_tty() -> None:
    # Runs in the child after setsid(); stdin is the pty slave
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


def _signal_group(pid: int, sig: int) -> None:
    try:
        os.killpg(pid, sig)
    except (ProcessLookupError, PermissionError):
        try:
            os.kill(pid, sig)
        except ProcessLookupError:
            pass


class SessionError(Exception):
    """Raised when shell session operations fail."""


class SessionStartError(SessionError):
    """Raised when the shell process cannot be launched."""


class SessionNotRunningError(SessionError):
    """Raised when an operation needs a running shell and none is active."""
