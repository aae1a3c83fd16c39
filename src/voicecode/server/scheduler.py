"""Debounced, single-worker summary scheduling for one connection."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class SummaryScheduler:
    """Coalesces bursts of output into one summarization pass.

    Each ``trigger`` restarts the quiet window; a pass runs only once no
    trigger arrived for ``delay`` seconds. A single worker task runs the
    passes, so two passes never overlap. Triggers that arrive while a pass
    is running lead to exactly one follow-up pass.
    """

    def __init__(
        self,
        run_pass: Callable[[], Awaitable[None]],
        on_status: Callable[[bool], Awaitable[None]],
        delay: float = 0.5,
    ) -> None:
        self._run_pass = run_pass
        self._on_status = on_status
        self._delay = delay
        self._wake = asyncio.Event()
        self._pending = False
        self._running = False
        self._closed = False
        self._worker: asyncio.Task[None] | None = None
        self._status_tasks: set[asyncio.Future[None]] = set()
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def pending(self) -> bool:
        return self._pending

    @property
    def running(self) -> bool:
        return self._running

    @property
    def closed(self) -> bool:
        return self._closed

    def trigger(self) -> None:
        if self._closed:
            return
        if not self._pending and not self._running:
            self._notify(True)
        self._pending = True
        self._wake.set()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._work())

    def cancel_pending(self) -> None:
        """Drop a trigger that has not started its pass yet."""
        self._pending = False
        self._wake.clear()

    async def settle(self) -> None:
        """Drop pending work and wait until no pass is running."""
        self.cancel_pending()
        await self._idle.wait()

    def close(self) -> None:
        """Stop scheduling. A pass already running is allowed to finish."""
        self._closed = True
        self._pending = False
        self._wake.set()

    async def wait_idle(self) -> None:
        """Wait for the worker to finish (used by tests and shutdown)."""
        if self._worker is not None:
            await self._worker

    async def _work(self) -> None:
        while not self._closed:
            self._wake.clear()
            # Debounce: restart the window on every new trigger
            while not self._closed:
                try:
                    await asyncio.wait_for(self._wake.wait(), self._delay)
                except asyncio.TimeoutError:
                    break
                self._wake.clear()
            if self._closed or not self._pending:
                return
            self._pending = False
            self._running = True
            self._idle.clear()
            try:
                await self._run_pass()
            except Exception as e:
                logger.debug("Summary pass failed: %s", e)
            finally:
                self._running = False
                self._idle.set()
            if self._closed:
                return
            if not self._pending:
                await self._on_status_safe(False)
                if not self._pending:
                    return

    def _notify(self, running: bool) -> None:
        task = asyncio.ensure_future(self._on_status_safe(running))
        self._status_tasks.add(task)
        task.add_done_callback(self._status_tasks.discard)

    async def _on_status_safe(self, running: bool) -> None:
        try:
            await self._on_status(running)
        except Exception as e:
            logger.debug("Summary status callback failed: %s", e)
