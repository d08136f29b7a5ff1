"""Session resolution -- request validation, new sessions and resume.

``validate_request`` runs before anything touches disk or the network.
``SessionResolver.resolve`` then produces a ``ResolvedSession``:

- **new**: fresh uuid, empty session root, default metadata saved at once;
- **resume**: session files downloaded from durable storage, metadata loaded;
- **recovery**: a resumed session whose workspace directory is missing is
  rebuilt by re-cloning the recorded repository.  A recorded branch that no
  longer exists falls back to the remote default branch, and the branch
  actually checked out is written back to the metadata.
"""

from __future__ import annotations

import shutil
import uuid
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING

from anyio import to_thread
from loguru import logger

from coding_worker.worker.errors import (
    InvalidRequestError,
    SessionNotFoundError,
    WorkspaceRecoveryFailedError,
)
from coding_worker.worker.models.enums import EventType, RepositoryStage
from coding_worker.worker.models.session import SessionMetadata
from coding_worker.worker.providers.factory import is_provider_supported, normalize_provider, supported_providers
from coding_worker.worker.vcs.git import BranchNotFoundError

if TYPE_CHECKING:
    from coding_worker.worker.execution.events import EventSink
    from coding_worker.worker.managers.sessions import SessionFiles
    from coding_worker.worker.models.request import JobRequest
    from coding_worker.worker.store.base import SessionStorage
    from coding_worker.worker.vcs.git import GitClient


@dataclass
class ResolvedSession:
    session_id: str
    is_resuming: bool
    metadata: SessionMetadata
    session_root: Path
    workspace_path: Path
    recovered: bool = False


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


def validate_request(request: JobRequest) -> None:
    """Reject malformed jobs.  Raises ``InvalidRequestError``; performs no I/O."""
    if _blank(request.user_request):
        raise InvalidRequestError("Missing required field: userRequest", field="user_request")
    if _blank(request.provider):
        raise InvalidRequestError("Missing required field: codingAssistantProvider", field="provider")
    if _blank(request.credentials):
        raise InvalidRequestError("Missing required field: codingAssistantAuthentication", field="credentials")

    assert request.provider is not None  # noqa: S101
    if not is_provider_supported(request.provider):
        msg = f"Unsupported provider: {request.provider}. Supported providers: {', '.join(supported_providers())}"
        raise InvalidRequestError(msg, field="provider")

    if request.resume_session_id is not None and _blank(request.resume_session_id):
        raise InvalidRequestError("resumeSessionId must not be blank", field="resume_session_id")
    if request.repository is not None and request.is_resuming:
        msg = "Cannot combine a repository with resumeSessionId; resumed sessions keep their own repository"
        raise InvalidRequestError(msg, field="repository")
    if request.repository is not None and _blank(request.repository.url):
        raise InvalidRequestError("Repository is missing its url", field="repository")

    sink = request.status_sink
    if sink is not None and (_blank(sink.id) or _blank(sink.token)):
        raise InvalidRequestError("Status sink requires both an id and an access token", field="status_sink")


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class SessionResolver:
    def __init__(
        self,
        *,
        files: SessionFiles,
        storage: SessionStorage,
        git: GitClient,
        events: EventSink | None = None,
    ) -> None:
        self._files = files
        self._storage = storage
        self._git = git
        self._events = events

    async def resolve(self, request: JobRequest) -> ResolvedSession:
        if request.is_resuming:
            assert request.resume_session_id is not None  # noqa: S101
            return await self._resume(request.resume_session_id.strip())
        assert request.provider is not None  # noqa: S101
        return self._create(normalize_provider(request.provider))

    def _create(self, provider: str) -> ResolvedSession:
        session_id = str(uuid.uuid4())
        root = self._files.create_session_root(session_id)
        metadata = SessionMetadata.new(session_id, provider)
        self._files.save_metadata(metadata)
        if self._events is not None:
            self._events.bind_session(session_id)
        logger.info("New session {} ({})", session_id, provider)
        return ResolvedSession(
            session_id=session_id,
            is_resuming=False,
            metadata=metadata,
            session_root=root,
            workspace_path=root,
        )

    async def _resume(self, session_id: str) -> ResolvedSession:
        root = self._files.session_root(session_id)
        if not await self._storage.download(session_id, root):
            raise SessionNotFoundError(session_id)

        metadata = self._files.load_metadata(session_id)
        if metadata is None:
            raise SessionNotFoundError(session_id)
        if self._events is not None:
            self._events.bind_session(session_id)

        workspace = self._files.execution_path(session_id, metadata)
        recovered = False
        if not workspace.is_dir():
            metadata = await self._recover(metadata, root)
            self._files.save_metadata(metadata)
            workspace = self._files.execution_path(session_id, metadata)
            recovered = True

        logger.info("Resumed session {} (workspace={}, recovered={})", session_id, workspace, recovered)
        return ResolvedSession(
            session_id=session_id,
            is_resuming=True,
            metadata=metadata,
            session_root=root,
            workspace_path=workspace,
            recovered=recovered,
        )

    async def _recover(self, metadata: SessionMetadata, root: Path) -> SessionMetadata:
        repo = metadata.repository
        if repo is None:
            msg = f"Workspace of session {metadata.session_id} is missing and has no repository to rebuild it from"
            raise WorkspaceRecoveryFailedError(msg)

        target = root / repo.cloned_path
        logger.warning("Workspace {} missing, re-cloning {} (branch={})", target, repo.url, repo.branch)
        await self._message(f"Recovering workspace from {repo.url}")

        try:
            try:
                await self._git.clone(repo.url, target, repo.branch)
            except BranchNotFoundError:
                logger.warning("Branch '{}' no longer exists, falling back to the default branch", repo.branch)
                await to_thread.run_sync(partial(shutil.rmtree, target, ignore_errors=True))
                await self._git.clone(repo.url, target)
            branch = await self._git.current_branch(target)
        except Exception as exc:
            msg = f"Could not recover workspace of session {metadata.session_id}: {exc}"
            raise WorkspaceRecoveryFailedError(msg) from exc

        if self._events is not None:
            await self._events.emit(
                EventType.REPOSITORY_PROGRESS,
                stage=RepositoryStage.COMPLETED,
                message=f"Workspace recovered (branch: {branch})",
                target_path=str(target),
            )
        return metadata.model_copy(update={"repository": repo.model_copy(update={"branch": branch})})

    async def _message(self, text: str) -> None:
        if self._events is not None:
            await self._events.emit(EventType.MESSAGE, message=text)
