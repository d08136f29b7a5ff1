"""Unit tests for EventSink fan-out and QueueTransport."""

from __future__ import annotations

import asyncio
import json

import pytest

from coding_worker.worker.execution.events import EventSink
from coding_worker.worker.execution.transport import QueueTransport
from coding_worker.worker.managers.sessions import EVENT_LOG_FILENAME, SessionFiles
from coding_worker.worker.models.enums import ErrorCode, EventType
from coding_worker.worker.models.events import build_event


def _sink(transport, files, remote=None, ref=None) -> EventSink:
    return EventSink(transport=transport, files=files, remote=remote, remote_ref=ref)


async def test_emit_reaches_transport_and_local_log(transport, files: SessionFiles) -> None:
    sink = _sink(transport, files)
    files.create_session_root("s1")
    sink.bind_session("s1")

    await sink.emit(EventType.MESSAGE, message="hello")

    assert transport.types == ["message"]
    assert [e.payload for e in files.read_events("s1")] == [{"message": "hello"}]


async def test_local_log_skipped_until_bound(transport, files: SessionFiles) -> None:
    sink = _sink(transport, files)
    await sink.emit(EventType.MESSAGE, message="early")

    assert transport.types == ["message"]
    assert files.list_local() == []


async def test_sequence_strictly_increasing_despite_failures(transport, files, remote, sink_ref) -> None:
    remote.fail_indexes = {1, 3}
    remote.delays = {0: 0.05}  # first write lands last
    sink = _sink(transport, files, remote, sink_ref)

    for i in range(6):
        await sink.emit(EventType.MESSAGE, message=f"m{i}")
    assert sink.next_index == 6
    assert await sink.drain(timeout=2.0) is True

    delivered = sorted(chunk["index"] for chunk in remote.chunks)
    assert delivered == [0, 2, 4, 5]
    payloads = {chunk["index"]: chunk["payload"]["message"] for chunk in remote.chunks}
    assert all(payloads[i] == f"m{i}" for i in delivered)


async def test_remote_disabled_without_ref(transport, files, remote) -> None:
    sink = _sink(transport, files, remote, None)
    await sink.emit(EventType.MESSAGE, message="x")
    assert sink.pending_count == 0
    assert await sink.report_status({"status": "active"}) is False
    assert remote.chunks == []


async def test_report_status_failure_is_swallowed(transport, files, remote, sink_ref) -> None:
    remote.status_error = RuntimeError("503")
    sink = _sink(transport, files, remote, sink_ref)
    assert await sink.report_status({"status": "active"}) is False

    remote.status_error = None
    assert await sink.report_status({"status": "completed"}) is True
    assert remote.statuses == [{"status": "completed"}]


async def test_drain_timeout_cancels_stragglers(transport, files, remote, sink_ref) -> None:
    remote.delays = {0: 10.0}
    sink = _sink(transport, files, remote, sink_ref)
    await sink.emit(EventType.MESSAGE, message="slow")

    assert await sink.drain(timeout=0.05) is False
    assert sink.pending_count == 0
    assert remote.chunks == []


async def test_only_one_terminal_event(transport, files) -> None:
    sink = _sink(transport, files)
    await sink.emit(EventType.ERROR, error="boom", code=ErrorCode.INTERNAL_ERROR)
    await sink.emit(EventType.COMPLETED, session_id="s1", duration_ms=1)

    assert transport.types == ["error"]
    assert sink.terminal_sent is True


async def test_transport_failure_does_not_abort(files) -> None:
    class BrokenTransport:
        async def send(self, event) -> None:
            raise RuntimeError("socket closed")

        def close(self) -> None:
            pass

    sink = _sink(BrokenTransport(), files)
    files.create_session_root("s1")
    sink.bind_session("s1")
    await sink.emit(EventType.MESSAGE, message="still logged")

    assert len(files.read_events("s1")) == 1


async def test_unwritable_event_does_not_abort_or_corrupt_log(transport, files: SessionFiles) -> None:
    sink = _sink(transport, files)
    root = files.create_session_root("s1")
    sink.bind_session("s1")

    await sink.emit(EventType.MESSAGE, message="bad \ud800 surrogate")
    await sink.emit(EventType.MESSAGE, message="fine")

    assert transport.types == ["message", "message"]
    assert sink.next_index == 2
    lines = (root / EVENT_LOG_FILENAME).read_text(encoding="utf-8").splitlines()
    assert all(json.loads(line) for line in lines)
    assert files.read_events("s1")[-1].payload == {"message": "fine"}


# ---------------------------------------------------------------------------
# QueueTransport
# ---------------------------------------------------------------------------


async def test_queue_transport_streams_until_closed() -> None:
    transport = QueueTransport()
    await transport.send(build_event(EventType.MESSAGE, message="a"))
    await transport.send(build_event(EventType.MESSAGE, message="b"))
    transport.close()
    await transport.send(build_event(EventType.MESSAGE, message="dropped"))

    received = [e.payload["message"] async for e in transport.stream()]
    assert received == ["a", "b"]


async def test_queue_transport_disconnect_drops_events() -> None:
    transport = QueueTransport()
    transport.disconnect()
    await transport.send(build_event(EventType.MESSAGE, message="x"))
    assert transport.closed is True

    async def first() -> None:
        async for _ in transport.stream():
            return

    # Already closed, so no end-of-stream marker is queued either.
    transport.close()
    with pytest.raises(TimeoutError):
        await asyncio.wait_for(first(), timeout=0.05)
