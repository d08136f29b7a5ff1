"""Live event transport -- the job's connection to the submitting client.

The pipeline never waits on the consumer.  ``QueueTransport`` buffers events
in an unbounded ``asyncio.Queue``; the HTTP layer drains it into an SSE
response.  Once the consumer goes away or the transport is closed, further
sends are silently dropped.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Protocol

from coding_worker.worker.models.events import WorkerEvent


class LiveTransport(Protocol):
    """Best-effort delivery to the connected client.  Never raises."""

    async def send(self, event: WorkerEvent) -> None: ...

    def close(self) -> None: ...


class QueueTransport:
    def __init__(self) -> None:
        self._queue: asyncio.Queue[WorkerEvent | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, event: WorkerEvent) -> None:
        if self._closed:
            return
        self._queue.put_nowait(event)

    def close(self) -> None:
        """End the stream after the events already queued."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    def disconnect(self) -> None:
        """Consumer went away; drop everything from now on."""
        self._closed = True

    async def stream(self) -> AsyncIterator[WorkerEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event
