"""Session naming for new sessions.

Names the session from the user's request and, for repository-backed
sessions, derives the working branch name from it.  Skipped entirely when no
summarizer is available.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from coding_worker.worker.models.enums import EventType
from coding_worker.worker.summarize import generate_branch_name, generate_session_name

if TYPE_CHECKING:
    from coding_worker.worker.execution.events import EventSink
    from coding_worker.worker.execution.resolver import ResolvedSession
    from coding_worker.worker.managers.sessions import SessionFiles
    from coding_worker.worker.summarize import Summarizer


@dataclass(frozen=True)
class SessionName:
    session_name: str
    branch_name: str | None = None


class SessionNamer:
    def __init__(
        self,
        *,
        files: SessionFiles,
        events: EventSink,
        summarizer: Summarizer | None,
        branch_prefix: str = "webedt",
    ) -> None:
        self._files = files
        self._events = events
        self._summarizer = summarizer
        self._branch_prefix = branch_prefix

    async def name(self, resolved: ResolvedSession, user_request: str, *, with_branch: bool) -> SessionName | None:
        if self._summarizer is None or resolved.is_resuming:
            return None

        session_name = await generate_session_name(self._summarizer, user_request)
        branch_name = None
        if with_branch:
            short_id = resolved.session_id.split("-", 1)[0]
            branch_name = generate_branch_name(session_name, short_id, self._branch_prefix)

        resolved.metadata.session_name = session_name
        self._files.save_metadata(resolved.metadata)
        logger.info("Session {} named '{}' (branch={})", resolved.session_id, session_name, branch_name)

        await self._events.emit(EventType.SESSION_NAMED, session_name=session_name, branch_name=branch_name)
        return SessionName(session_name=session_name, branch_name=branch_name)
