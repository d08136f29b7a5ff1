"""Durable session storage interface.

The worker's local workspace is ephemeral: a job downloads the session's
files at start and uploads them again at the end.  The session storage holds
the durable copy (workspace files, ``.session-metadata.json`` and the event
log) keyed by session id.  The interface is async to support both local
filesystem and remote (S3) backends.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class SessionStorage(Protocol):
    """Async protocol for moving a session directory in and out of durable storage."""

    async def download(self, session_id: str, dest: Path) -> bool:
        """Populate *dest* with the stored session files.

        Returns ``False`` (leaving *dest* untouched) if nothing is stored.
        """
        ...

    async def upload(self, session_id: str, source: Path) -> None:
        """Replace the stored copy with the contents of *source*."""
        ...

    async def list_sessions(self) -> list[str]:
        """Return the ids of all stored sessions."""
        ...

    async def delete(self, session_id: str) -> None:
        """Delete all stored data for a session.  No-op if not found."""
        ...
