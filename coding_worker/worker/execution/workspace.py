"""Workspace materialization for new repository-backed sessions.

Clones (or updates) the requested repository inside the session root,
records where it landed in the metadata, and optionally creates the working
branch derived from the session name.  Branch creation is best effort.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from coding_worker.worker.models.enums import EventType, RepositoryStage
from coding_worker.worker.models.session import RepositoryInfo

if TYPE_CHECKING:
    from coding_worker.worker.execution.events import EventSink
    from coding_worker.worker.execution.resolver import ResolvedSession
    from coding_worker.worker.managers.sessions import SessionFiles
    from coding_worker.worker.models.request import RepositorySpec
    from coding_worker.worker.vcs.git import GitClient


class WorkspaceMaterializer:
    def __init__(self, *, git: GitClient, files: SessionFiles, events: EventSink) -> None:
        self._git = git
        self._files = files
        self._events = events

    async def materialize(
        self,
        resolved: ResolvedSession,
        repository: RepositorySpec | None,
        *,
        branch_name: str | None = None,
    ) -> ResolvedSession:
        """Populate the workspace of a new session.  Resumed sessions are left as they are."""
        if resolved.is_resuming or repository is None or not repository.url:
            return resolved

        await self._events.emit(EventType.MESSAGE, message=f"Pulling repository: {repository.url}")
        result = await self._git.pull_repository(
            repository.url,
            resolved.session_root,
            branch=repository.branch,
            directory=repository.directory,
            access_token=repository.access_token,
        )

        resolved.metadata.repository = RepositoryInfo(
            url=repository.url,
            branch=result.branch,
            cloned_path=result.target_path.relative_to(resolved.session_root).as_posix(),
        )
        self._files.save_metadata(resolved.metadata)
        resolved.workspace_path = result.target_path

        await self._events.emit(
            EventType.REPOSITORY_PROGRESS,
            stage=RepositoryStage.COMPLETED,
            message="Repository cloned successfully" if result.was_cloned else "Repository updated successfully",
            target_path=str(result.target_path),
        )

        if branch_name:
            await self.create_branch(resolved, branch_name)
        return resolved

    async def create_branch(self, resolved: ResolvedSession, branch_name: str) -> bool:
        """Create and check out *branch_name* if it does not exist yet.  Never raises."""
        path = resolved.workspace_path
        try:
            if await self._git.branch_exists(path, branch_name):
                logger.info("Branch {} already exists, keeping current checkout", branch_name)
                return False
            await self._git.create_branch(path, branch_name)
        except Exception:
            logger.exception("Could not create branch {} (continuing)", branch_name)
            return False

        repo = resolved.metadata.repository
        if repo is not None:
            repo.branch_name = branch_name
            self._files.save_metadata(resolved.metadata)
        await self._events.emit(
            EventType.BRANCH_CREATED,
            branch_name=branch_name,
            message=f"Created branch: {branch_name}",
        )
        return True
