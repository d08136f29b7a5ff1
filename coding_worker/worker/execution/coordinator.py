"""Job coordinator -- drives one job from request to cleanup.

State machine::

    init -> resolving_session -> materializing_workspace -> executing
         -> postprocessing -> finalizing -> terminated_ok | terminated_error

Any failure jumps straight to ``finalizing``; the ``Finalizer`` then emits
the single terminal event and removes the workspace.  A coordinator runs
exactly once.

The caller (HTTP layer) is responsible for:

- Holding the job gate (one job per process)
- Supplying the live transport and draining it to the client
- Running ``run()`` in a task decoupled from the client connection
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from loguru import logger

from coding_worker.worker.errors import WorkerError
from coding_worker.worker.execution.adapter import ExecutionAdapter
from coding_worker.worker.execution.events import EventSink
from coding_worker.worker.execution.finalizer import Finalizer, JobOutcome
from coding_worker.worker.execution.naming import SessionNamer
from coding_worker.worker.execution.postprocess import AutoCommit
from coding_worker.worker.execution.remote import SinkRef, build_status_update
from coding_worker.worker.execution.resolver import ResolvedSession, SessionResolver, validate_request
from coding_worker.worker.execution.workspace import WorkspaceMaterializer
from coding_worker.worker.models.enums import EventType, JobState, RemoteStatus
from coding_worker.worker.providers.factory import create_provider, normalize_provider
from coding_worker.worker.summarize import Summarizer, create_summarizer

if TYPE_CHECKING:
    from coding_worker.worker.execution.remote import RemoteSink
    from coding_worker.worker.execution.transport import LiveTransport
    from coding_worker.worker.managers.sessions import SessionFiles
    from coding_worker.worker.models.request import JobRequest
    from coding_worker.worker.providers.base import ExecutionCapability
    from coding_worker.worker.settings import WorkerSettings
    from coding_worker.worker.store.base import SessionStorage
    from coding_worker.worker.vcs.git import GitClient

ProviderFactory = Callable[[str, "WorkerSettings"], "ExecutionCapability"]
SummarizerFactory = Callable[[str | None, str], Summarizer | None]


class CoordinatorAlreadyRunError(RuntimeError):
    """``JobCoordinator.run`` was called a second time."""


def sink_ref_for(request: JobRequest) -> SinkRef | None:
    sink = request.status_sink
    if sink is None or not sink.id or not sink.token:
        return None
    return SinkRef(session_id=sink.id, token=sink.token)


class JobCoordinator:
    def __init__(
        self,
        request: JobRequest,
        *,
        settings: WorkerSettings,
        files: SessionFiles,
        storage: SessionStorage,
        git: GitClient,
        transport: LiveTransport,
        remote: RemoteSink | None = None,
        provider_factory: ProviderFactory = create_provider,
        summarizer_factory: SummarizerFactory = create_summarizer,
    ) -> None:
        self._request = request
        self._settings = settings
        self._files = files
        self._storage = storage
        self._git = git
        self._provider_factory = provider_factory
        self._summarizer_factory = summarizer_factory
        self.events = EventSink(transport=transport, files=files, remote=remote, remote_ref=sink_ref_for(request))
        self._state = JobState.INIT
        self._resolved: ResolvedSession | None = None

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def resolved(self) -> ResolvedSession | None:
        return self._resolved

    def _transition(self, state: JobState) -> None:
        logger.debug("Job state: {} -> {}", self._state, state)
        self._state = state

    # -- Entry point -----------------------------------------------------------

    async def run(self) -> JobOutcome:
        if self._state != JobState.INIT:
            msg = f"Coordinator already ran (state={self._state})"
            raise CoordinatorAlreadyRunError(msg)

        started = time.monotonic()
        error: BaseException | None = None
        commit_hash: str | None = None
        cancelled = False

        try:
            commit_hash = await self._pipeline()
        except asyncio.CancelledError as exc:
            logger.warning("Job cancelled in state {}", self._state)
            error = exc
            cancelled = True
        except WorkerError as exc:
            logger.error("Job failed in state {}: [{}] {}", self._state, exc.code, exc)
            error = exc
        except Exception as exc:
            logger.exception("Job failed in state {}", self._state)
            error = exc

        self._transition(JobState.FINALIZING)
        finalizer = Finalizer(
            files=self._files,
            storage=self._storage,
            events=self.events,
            drain_timeout=self._settings.remote_drain_timeout,
        )
        outcome = await finalizer.finalize(
            session_id=self.events.session_id,
            local_session_id=self._local_session_id(),
            started=started,
            error=error,
            commit_hash=commit_hash,
        )
        self._transition(outcome.state)
        if cancelled:
            raise asyncio.CancelledError
        return outcome

    def _local_session_id(self) -> str | None:
        if self._resolved is not None:
            return self._resolved.session_id
        if self._state != JobState.INIT and self._request.is_resuming and self._request.resume_session_id:
            return self._request.resume_session_id.strip()
        return None

    # -- Pipeline --------------------------------------------------------------

    async def _pipeline(self) -> str | None:
        request = self._request
        settings = self._settings
        events = self.events
        started_at = datetime.now(tz=UTC)

        validate_request(request)
        assert request.user_request is not None  # noqa: S101
        assert request.provider is not None  # noqa: S101
        assert request.credentials is not None  # noqa: S101

        # -- Resolve -----------------------------------------------------------
        self._transition(JobState.RESOLVING_SESSION)
        resolver = SessionResolver(files=self._files, storage=self._storage, git=self._git, events=events)
        resolved = await resolver.resolve(request)
        self._resolved = resolved

        provider = normalize_provider(request.provider)
        await events.emit(
            EventType.CONNECTED,
            session_id=resolved.session_id,
            resuming=resolved.is_resuming,
            resumed_from=resolved.session_id if resolved.is_resuming else None,
            provider=provider,
        )

        # -- Materialize -------------------------------------------------------
        self._transition(JobState.MATERIALIZING_WORKSPACE)
        summarizer = self._summarizer_factory(request.credentials, settings.summarizer_model)
        namer = SessionNamer(
            files=self._files,
            events=events,
            summarizer=summarizer,
            branch_prefix=settings.branch_prefix,
        )
        name = await namer.name(resolved, request.user_request, with_branch=request.repository is not None)

        materializer = WorkspaceMaterializer(git=self._git, files=self._files, events=events)
        await materializer.materialize(
            resolved,
            request.repository,
            branch_name=name.branch_name if name else None,
        )
        await events.report_status(build_status_update(RemoteStatus.ACTIVE, started_at=started_at))

        # -- Execute -----------------------------------------------------------
        self._transition(JobState.EXECUTING)
        capability = self._provider_factory(provider, settings)
        await events.emit(EventType.MESSAGE, message=f"Executing with {capability.name}")
        adapter = ExecutionAdapter(
            capability=capability,
            files=self._files,
            events=events,
            timeout=settings.execution_timeout,
        )
        await adapter.run(resolved, request.user_request, request.credentials, request.provider_options)

        # -- Post-process ------------------------------------------------------
        self._transition(JobState.POSTPROCESSING)
        auto_commit = AutoCommit(git=self._git, events=events, summarizer=summarizer)
        return await auto_commit.run(resolved, enabled=request.should_auto_commit)
