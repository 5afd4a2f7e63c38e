"""
A bounded in-memory byte pipe between two coroutines.

`open_relay()` returns a writer end and a reader end that share one buffer.
The writer suspends while the buffer is full, so the producer can run no
further ahead of the consumer than the configured capacity. Either side can
close its end: closing the writer signals end-of-stream (optionally with an
error delivered to the reader), closing the reader makes further writes fail
with `RelayClosedError`.
"""

import asyncio
from collections import deque
from typing import AsyncIterator, Deque, Optional, Tuple


class RelayClosedError(Exception):
    """Raised when writing to a relay whose reader has gone away."""

    pass


class _RelayBuffer:
    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("Relay capacity must be positive.")
        self.capacity: int = capacity
        self.chunks: Deque[bytes] = deque()
        self.buffered: int = 0
        self.eof: bool = False
        self.error: Optional[BaseException] = None
        self.reader_closed: bool = False
        self.condition: asyncio.Condition = asyncio.Condition()

    def has_room(self, size: int) -> bool:
        # A chunk larger than the capacity is admitted into an empty buffer.
        return self.buffered == 0 or self.buffered + size <= self.capacity


class RelayWriter:
    """The producing end of a relay."""

    def __init__(self, buffer: _RelayBuffer) -> None:
        self._buffer: _RelayBuffer = buffer

    async def write(self, data: bytes) -> None:
        """
        Appends data, waiting while the relay is full.

        Raises:
            RelayClosedError: If the reader has closed its end or the writer
                was already closed.
        """
        if not data:
            return
        buf: _RelayBuffer = self._buffer
        async with buf.condition:
            await buf.condition.wait_for(
                lambda: buf.reader_closed or buf.eof or buf.has_room(len(data))
            )
            if buf.reader_closed:
                raise RelayClosedError("Relay reader is closed.")
            if buf.eof:
                raise RelayClosedError("Relay writer is closed.")
            buf.chunks.append(bytes(data))
            buf.buffered += len(data)
            buf.condition.notify_all()

    async def close(self, error: Optional[BaseException] = None) -> None:
        """
        Signals end-of-stream. With `error`, the reader raises it instead of
        returning the remaining data.
        """
        buf: _RelayBuffer = self._buffer
        async with buf.condition:
            if buf.eof:
                return
            buf.eof = True
            buf.error = error
            if error is not None:
                buf.chunks.clear()
                buf.buffered = 0
            buf.condition.notify_all()


class RelayReader:
    """The consuming end of a relay."""

    def __init__(self, buffer: _RelayBuffer) -> None:
        self._buffer: _RelayBuffer = buffer

    async def read(self) -> bytes:
        """
        Returns the next chunk, or `b""` once the writer has closed and the
        buffer is drained.

        Raises:
            BaseException: The error the writer closed the relay with.
        """
        buf: _RelayBuffer = self._buffer
        async with buf.condition:
            await buf.condition.wait_for(lambda: bool(buf.chunks) or buf.eof)
            if buf.error is not None:
                raise buf.error
            if not buf.chunks:
                return b""
            chunk: bytes = buf.chunks.popleft()
            buf.buffered -= len(chunk)
            buf.condition.notify_all()
            return chunk

    async def close(self) -> None:
        """Discards buffered data and makes pending and future writes fail."""
        buf: _RelayBuffer = self._buffer
        async with buf.condition:
            buf.reader_closed = True
            buf.chunks.clear()
            buf.buffered = 0
            buf.condition.notify_all()

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iter()

    async def _iter(self) -> AsyncIterator[bytes]:
        while True:
            chunk: bytes = await self.read()
            if not chunk:
                return
            yield chunk


def open_relay(capacity: int = 1024**2) -> Tuple[RelayWriter, RelayReader]:
    """
    Creates a relay holding at most `capacity` buffered bytes.

    Returns:
        Tuple[RelayWriter, RelayReader]: The writer and reader ends.
    """
    buffer: _RelayBuffer = _RelayBuffer(capacity)
    return RelayWriter(buffer), RelayReader(buffer)
