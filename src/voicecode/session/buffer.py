"""Bounded byte buffer for recent terminal output."""

from __future__ import annotations


class RingBuffer:
    """Keeps the most recent ``capacity`` bytes, evicting the oldest first."""

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._data = bytearray()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._data)

    def append(self, chunk: bytes) -> None:
        if not chunk:
            return
        self._data.extend(chunk)
        excess = len(self._data) - self._capacity
        if excess > 0:
            del self._data[:excess]

    def clear(self) -> None:
        self._data.clear()

    def getvalue(self) -> bytes:
        return bytes(self._data)

    def text(self) -> str:
        # Eviction may split a multi-byte sequence at the front
        return self._data.decode("utf-8", errors="ignore")
