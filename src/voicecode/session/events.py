"""Session events and per-subscriber channels."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutputEvent:
    data: str


@dataclass(frozen=True)
class ExitEvent:
    exit_code: int | None
    signal: int | None = None

    def to_info(self) -> dict[str, int | None]:
        return {"exitCode": self.exit_code, "signal": self.signal}


SessionEvent = Union[OutputEvent, ExitEvent]


class Subscription:
    """A buffered channel of session events for one consumer.

    Publishing never blocks: when the queue is full the oldest event is
    dropped to make room, so a slow consumer only loses its own backlog.
    """

    def __init__(self, maxsize: int, on_close: Callable[[Subscription], None]) -> None:
        self._queue: asyncio.Queue[SessionEvent | None] = asyncio.Queue(maxsize=maxsize)
        self._on_close = on_close
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, event: SessionEvent) -> None:
        if self._closed:
            return
        while True:
            try:
                self._queue.put_nowait(event)
                return
            except asyncio.QueueFull:
                try:
                    self._queue.get_nowait()
                except asyncio.QueueEmpty:
                    pass
                self.dropped += 1
                if self.dropped == 1:
                    logger.warning("Subscriber is falling behind, dropping oldest events")

    async def get(self) -> SessionEvent | None:
        """Next event, or None once the subscription is closed."""
        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._on_close(self)
        # Wake a consumer blocked in get()
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    def __aiter__(self) -> AsyncIterator[SessionEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[SessionEvent]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event
