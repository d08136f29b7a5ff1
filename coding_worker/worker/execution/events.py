"""Event fan-out for a single job.

Every event goes to three places:

1. the live transport (client stream) -- best effort;
2. the session's local append-only log -- synchronous, skipped while the
   session root does not exist yet;
3. the remote sink, if configured -- dispatched as a background task so the
   pipeline never waits on the network.

The sequence index of each event is assigned synchronously, in emission
order, before any delivery is attempted.  Remote chunks are therefore
strictly increasing per session even when some writes fail or complete out
of order.  In-flight remote writes are awaited (bounded) by ``drain`` during
finalization.

A sink failure is logged and never aborts the pipeline.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from loguru import logger

from coding_worker.worker.execution.remote import build_chunk
from coding_worker.worker.models.events import WorkerEvent, build_event

if TYPE_CHECKING:
    from coding_worker.worker.execution.remote import RemoteSink, SinkRef
    from coding_worker.worker.execution.transport import LiveTransport
    from coding_worker.worker.managers.sessions import SessionFiles
    from coding_worker.worker.models.enums import EventType


class EventSink:
    def __init__(
        self,
        *,
        transport: LiveTransport,
        files: SessionFiles,
        remote: RemoteSink | None = None,
        remote_ref: SinkRef | None = None,
    ) -> None:
        self._transport = transport
        self._files = files
        self._remote = remote if remote_ref is not None else None
        self._remote_ref = remote_ref
        self._session_id: str | None = None
        self._sequence = 0
        self._pending: set[asyncio.Task[None]] = set()
        self._terminal_sent = False

    # -- State -----------------------------------------------------------------

    def bind_session(self, session_id: str) -> None:
        """Start writing the local log for *session_id*."""
        self._session_id = session_id

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def next_index(self) -> int:
        return self._sequence

    @property
    def terminal_sent(self) -> bool:
        return self._terminal_sent

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # -- Emission --------------------------------------------------------------

    async def emit(self, event_type: EventType, **fields: Any) -> WorkerEvent:
        """Build, validate and publish one event."""
        event = build_event(event_type, **fields)
        await self.publish(event)
        return event

    async def publish(self, event: WorkerEvent) -> None:
        if event.is_terminal:
            if self._terminal_sent:
                logger.warning("Dropping second terminal event ({}) for session {}", event.type, self._session_id)
                return
            self._terminal_sent = True

        index = self._sequence
        self._sequence += 1

        try:
            await self._transport.send(event)
        except Exception:
            logger.exception("Live transport rejected event #{} ({})", index, event.type)

        if self._session_id is not None:
            try:
                self._files.append_event(self._session_id, event)
            except Exception:
                logger.exception("Could not append event #{} to local log of session {}", index, self._session_id)

        if self._remote is not None and self._remote_ref is not None:
            task = asyncio.create_task(self._remote.append_chunk(self._remote_ref, build_chunk(index, event)))
            self._pending.add(task)
            task.add_done_callback(self._on_remote_done)

    def _on_remote_done(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Remote event write failed: {}", exc)

    def close_live(self) -> None:
        """End the client stream.  Local and remote delivery are unaffected."""
        self._transport.close()

    # -- Remote status ---------------------------------------------------------

    async def report_status(self, update: dict[str, Any]) -> bool:
        """Send a status update to the remote sink.  Best effort."""
        if self._remote is None or self._remote_ref is None:
            return False
        try:
            await self._remote.update_status(self._remote_ref, update)
        except Exception as exc:
            logger.warning("Remote status update ({}) failed: {}", update.get("status"), exc)
            return False
        return True

    async def drain(self, timeout: float | None) -> bool:
        """Wait for in-flight remote writes.  Cancels the stragglers on timeout."""
        if not self._pending:
            return True
        logger.debug("Draining {} pending remote writes", len(self._pending))
        _, still_pending = await asyncio.wait(set(self._pending), timeout=timeout)
        if not still_pending:
            return True
        logger.warning("{} remote writes still pending after {}s, cancelling", len(still_pending), timeout)
        for task in still_pending:
            task.cancel()
        await asyncio.gather(*still_pending, return_exceptions=True)
        return False
