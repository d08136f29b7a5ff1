"""Job finalization -- runs on every path, success or failure.

Steps, in order:

1. upload the session root to durable storage (if it exists);
2. emit exactly one terminal event (``completed`` or ``error``) and end the
   client stream;
3. report the final status to the remote sink (best effort);
4. wait for in-flight remote writes (bounded);
5. delete the local session root.

An upload failure on an otherwise successful job turns the outcome into an
error, since the session's changes would otherwise be lost silently.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from anyio import to_thread
from loguru import logger

from coding_worker.worker.errors import classify_error
from coding_worker.worker.execution.remote import build_status_update
from coding_worker.worker.models.enums import ErrorCode, EventType, JobState, RemoteStatus

if TYPE_CHECKING:
    from coding_worker.worker.execution.events import EventSink
    from coding_worker.worker.managers.sessions import SessionFiles
    from coding_worker.worker.store.base import SessionStorage


@dataclass
class JobOutcome:
    """What happened to one job.  Returned to the HTTP layer."""

    session_id: str | None
    state: JobState
    duration_ms: int
    error: str | None = None
    code: ErrorCode | None = None
    commit_hash: str | None = None

    @property
    def ok(self) -> bool:
        return self.state == JobState.TERMINATED_OK


def describe_error(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class Finalizer:
    def __init__(
        self,
        *,
        files: SessionFiles,
        storage: SessionStorage,
        events: EventSink,
        drain_timeout: float | None = 10.0,
    ) -> None:
        self._files = files
        self._storage = storage
        self._events = events
        self._drain_timeout = drain_timeout

    async def finalize(
        self,
        *,
        session_id: str | None,
        local_session_id: str | None,
        started: float,
        error: BaseException | None,
        commit_hash: str | None = None,
    ) -> JobOutcome:
        """Finish the job.

        ``session_id`` is the session whose files are uploaded and reported;
        it is ``None`` when the job failed before a session was established.
        ``local_session_id`` names the local directory to delete, which can be
        set even without ``session_id`` (a resume that failed mid-download).
        """
        # -- Upload ------------------------------------------------------------
        if session_id is not None and self._files.exists(session_id):
            try:
                await self._storage.upload(session_id, self._files.session_root(session_id))
                logger.info("Session {} uploaded to durable storage", session_id)
            except Exception as exc:
                logger.exception("Upload of session {} failed", session_id)
                if error is None:
                    error = exc

        duration_ms = int((time.monotonic() - started) * 1000)

        # -- Terminal event ----------------------------------------------------
        if error is None:
            assert session_id is not None  # noqa: S101
            outcome = JobOutcome(
                session_id=session_id,
                state=JobState.TERMINATED_OK,
                duration_ms=duration_ms,
                commit_hash=commit_hash,
            )
            await self._events.emit(EventType.COMPLETED, session_id=session_id, duration_ms=duration_ms)
        else:
            outcome = JobOutcome(
                session_id=session_id,
                state=JobState.TERMINATED_ERROR,
                duration_ms=duration_ms,
                error=describe_error(error),
                code=classify_error(error),
                commit_hash=commit_hash,
            )
            await self._events.emit(EventType.ERROR, error=outcome.error, code=outcome.code)
        self._events.close_live()

        # -- Remote status -----------------------------------------------------
        status = RemoteStatus.COMPLETED if outcome.ok else RemoteStatus.ERROR
        await self._events.report_status(build_status_update(status, completed_at=datetime.now(tz=UTC)))
        await self._events.drain(self._drain_timeout)

        # -- Cleanup -----------------------------------------------------------
        for sid in {s for s in (session_id, local_session_id) if s}:
            try:
                await to_thread.run_sync(self._files.remove, sid)
            except OSError:
                logger.exception("Could not remove local workspace of session {}", sid)

        logger.info(
            "Job finished: session={} state={} duration={}ms code={}",
            session_id,
            outcome.state,
            duration_ms,
            outcome.code,
        )
        return outcome
