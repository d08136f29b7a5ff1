"""Auto-commit of the agent's changes.

Runs after a successful execution on repository-backed sessions.  Stages
are reported as ``commit_progress`` events::

    analyzing -> generating_message -> committing -> completed

Nothing is emitted when the working tree is clean.  A failure at any stage
is reported as a single ``completed`` event describing it; it never changes
the job outcome.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from coding_worker.worker.models.enums import CommitStage, EventType
from coding_worker.worker.summarize import generate_commit_message

if TYPE_CHECKING:
    from coding_worker.worker.execution.events import EventSink
    from coding_worker.worker.execution.resolver import ResolvedSession
    from coding_worker.worker.summarize import Summarizer
    from coding_worker.worker.vcs.git import GitClient


class AutoCommit:
    def __init__(self, *, git: GitClient, events: EventSink, summarizer: Summarizer | None) -> None:
        self._git = git
        self._events = events
        self._summarizer = summarizer

    async def run(self, resolved: ResolvedSession, *, enabled: bool) -> str | None:
        """Commit pending changes.  Returns the commit hash, or ``None`` if nothing was committed."""
        if not enabled or resolved.metadata.repository is None:
            return None

        path = resolved.workspace_path
        try:
            if not await self._git.has_changes(path):
                logger.info("No changes to commit in {}", path)
                return None

            await self._progress(CommitStage.ANALYZING, "Analyzing changes...")
            status = await self._git.status(path)
            diff = await self._git.diff(path)

            await self._progress(CommitStage.GENERATING_MESSAGE, "Generating commit message...")
            commit_message = await generate_commit_message(self._summarizer, status, diff)

            await self._progress(CommitStage.COMMITTING, "Committing changes...", commit_message=commit_message)
            commit_hash = await self._git.commit_all(path, commit_message)
        except Exception as exc:
            logger.exception("Auto-commit failed (non-critical)")
            await self._progress(CommitStage.COMPLETED, f"Auto-commit failed (non-critical): {exc}")
            return None

        logger.info("Committed {} in {}", commit_hash, path)
        await self._progress(
            CommitStage.COMPLETED,
            "Changes committed successfully",
            commit_message=commit_message,
            commit_hash=commit_hash,
        )
        return commit_hash

    async def _progress(self, stage: CommitStage, message: str, **extra: str) -> None:
        await self._events.emit(EventType.COMMIT_PROGRESS, stage=stage, message=message, **extra)
