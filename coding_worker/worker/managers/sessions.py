"""Session file manager -- owns the local layout of a session workspace.

Layout (keyed by session id)::

    {work_root}/session-{session_id}/                  session root
    {work_root}/session-{session_id}/.session-metadata.json
    {work_root}/session-{session_id}/.stream-events.jsonl
    {work_root}/session-{session_id}/{cloned_path}/    repository (optional)

The directory name is a pure function of the session id, so two sessions can
never collide.  The whole session root is what gets uploaded to durable
storage at the end of a job and deleted afterwards.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import tempfile
from pathlib import Path

from loguru import logger

from coding_worker.worker.models.events import WorkerEvent
from coding_worker.worker.models.session import SessionMetadata

METADATA_FILENAME = ".session-metadata.json"
EVENT_LOG_FILENAME = ".stream-events.jsonl"


class SessionFiles:
    """Local workspace bookkeeping.  Stateless beyond the work root."""

    def __init__(self, work_root: str | Path) -> None:
        self._root = Path(work_root)

    @property
    def work_root(self) -> Path:
        return self._root

    # -- Paths -----------------------------------------------------------------

    def session_root(self, session_id: str) -> Path:
        return self._root / f"session-{session_id}"

    def execution_path(self, session_id: str, metadata: SessionMetadata | None) -> Path:
        """Directory the agent works in: the clone if there is one, else the session root."""
        root = self.session_root(session_id)
        if metadata is not None and metadata.repository is not None:
            return root / metadata.repository.cloned_path
        return root

    # -- Lifecycle -------------------------------------------------------------

    def create_session_root(self, session_id: str) -> Path:
        path = self.session_root(session_id)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def exists(self, session_id: str) -> bool:
        return self.session_root(session_id).is_dir()

    def remove(self, session_id: str) -> None:
        """Delete the session root.  No-op if it does not exist."""
        path = self.session_root(session_id)
        if path.exists():
            shutil.rmtree(path)

    def list_local(self) -> list[str]:
        if not self._root.is_dir():
            return []
        prefix = "session-"
        return sorted(
            entry.name[len(prefix) :]
            for entry in self._root.iterdir()
            if entry.is_dir() and entry.name.startswith(prefix)
        )

    # -- Metadata --------------------------------------------------------------

    def save_metadata(self, metadata: SessionMetadata) -> None:
        """Overwrite the metadata record (last write wins)."""
        metadata.touch()
        path = self.session_root(metadata.session_id) / METADATA_FILENAME
        _atomic_write(path, metadata.to_json())

    def load_metadata(self, session_id: str) -> SessionMetadata | None:
        """Read the metadata record, or ``None`` if it is absent."""
        path = self.session_root(session_id) / METADATA_FILENAME
        if not path.is_file():
            return None
        return SessionMetadata.model_validate_json(path.read_text(encoding="utf-8"))

    # -- Event log -------------------------------------------------------------

    def append_event(self, session_id: str, event: WorkerEvent) -> bool:
        """Append one event to the session log.

        Returns ``False`` without touching disk when the session root does not
        exist yet (e.g. validation failed before any workspace was created).
        """
        root = self.session_root(session_id)
        if not root.is_dir():
            return False
        line = (event.model_dump_json() + "\n").encode("utf-8")
        with (root / EVENT_LOG_FILENAME).open("ab") as f:
            f.write(line)
        return True

    def read_events(self, session_id: str) -> list[WorkerEvent]:
        path = self.session_root(session_id) / EVENT_LOG_FILENAME
        if not path.is_file():
            return []
        events: list[WorkerEvent] = []
        for line in path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                events.append(WorkerEvent.model_validate_json(line))
            except ValueError:
                logger.warning("Skipping unreadable event log line in session {}", session_id)
        return events


def _atomic_write(path: Path, data: str) -> None:
    """Write data atomically: temp file + rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
        os.rename(tmp_path, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise
