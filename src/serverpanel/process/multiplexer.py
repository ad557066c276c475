"""Fan-out of a process's output byte stream to independent consumers.

A process handle owns one OutputMultiplexer. Each HTTP response that wants
to see the output subscribes, receives every chunk published from that
moment on, and unsubscribes when it is done or its client goes away.
Nothing is buffered for late subscribers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_CHUNKS = 1024

# Queued in place of a chunk to mark the end of the stream.
_EOF = None


class OutputSubscription:
    """One consumer's view of a multiplexed output stream.

    Iterate it (``async for chunk in subscription``) or call :meth:`get`
    directly. Iteration stops when the stream ends. A subscription that
    fell too far behind raises :class:`StreamError` from :meth:`get`.
    """

    def __init__(self, mux: OutputMultiplexer, max_chunks: int) -> None:
        self._mux = mux
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue(maxsize=max_chunks + 1)
        self._max_chunks = max_chunks
        self._closed = False
        self._finished = False
        self._overflowed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def get(self, timeout: float | None = None) -> bytes | None:
        """Return the next chunk, or None once the stream has ended.

        Raises:
            StreamError: If this subscription was detached for falling behind.
            asyncio.TimeoutError: If ``timeout`` elapses with no chunk.
        """
        if self._finished:
            return None
        if timeout is None:
            chunk = await self._queue.get()
        else:
            chunk = await asyncio.wait_for(self._queue.get(), timeout)
        if chunk is _EOF:
            self._finished = True
            if self._overflowed:
                raise StreamError(
                    f"Output consumer fell more than {self._max_chunks} chunks behind"
                )
            return None
        return chunk

    def close(self) -> None:
        """Detach from the stream. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._mux._discard(self)

    def _push(self, chunk: bytes) -> bool:
        if self._queue.qsize() >= self._max_chunks:
            self._overflowed = True
            self._finish()
            return False
        self._queue.put_nowait(chunk)
        return True

    def _finish(self) -> None:
        # The extra queue slot is reserved for the end marker.
        self._closed = True
        self._queue.put_nowait(_EOF)

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self.get()
            if chunk is None:
                return
            yield chunk


class OutputMultiplexer:
    """Publishes chunks to every live subscription, in order."""

    def __init__(self, max_chunks: int = DEFAULT_QUEUE_CHUNKS) -> None:
        self._max_chunks = max_chunks
        self._subscribers: list[OutputSubscription] = []
        self._closed = False
        self._bytes_published = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def bytes_published(self) -> int:
        return self._bytes_published

    def subscribe(self) -> OutputSubscription:
        """Attach a new consumer. On a closed stream it ends immediately."""
        sub = OutputSubscription(self, self._max_chunks)
        if self._closed:
            sub._finish()
        else:
            self._subscribers.append(sub)
        return sub

    def publish(self, chunk: bytes) -> None:
        if self._closed or not chunk:
            return
        self._bytes_published += len(chunk)
        for sub in list(self._subscribers):
            if not sub._push(chunk):
                self._subscribers.remove(sub)
                logger.warning(
                    "Detached slow output consumer (more than %d chunks queued)",
                    self._max_chunks,
                )

    def close(self) -> None:
        """End the stream for every subscriber. Idempotent."""
        if self._closed:
            return
        self._closed = True
        subscribers, self._subscribers = self._subscribers, []
        for sub in subscribers:
            sub._finish()
        logger.debug(
            "Output stream closed (%d bytes, %d consumers)",
            self._bytes_published, len(subscribers),
        )

    def _discard(self, sub: OutputSubscription) -> None:
        try:
            self._subscribers.remove(sub)
        except ValueError:
            pass


class StreamError(Exception):
    """Raised when forwarding output to a single consumer fails."""
