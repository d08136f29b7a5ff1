"""Local filesystem session storage.

Mirrors session directories under a data root with optional namespace
prefix::

    {data_root}/{prefix}/sessions/{session_id}/...

When prefix is None, the path collapses to::

    {data_root}/sessions/{session_id}/...

Uses ``anyio.to_thread.run_sync`` for non-blocking file I/O.

Uploads are atomic: the tree is copied to a temporary sibling directory and
swapped into place, so a crash mid-upload never leaves a half-written copy
behind the session id.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import tempfile
from functools import partial
from pathlib import Path

from anyio import to_thread


class LocalSessionStorage:
    """Local filesystem implementation of the SessionStorage protocol."""

    def __init__(self, data_root: str | Path, prefix: str | None = None) -> None:
        base = Path(data_root)
        if prefix:
            base = base / prefix
        self._base = base / "sessions"

    def _session_dir(self, session_id: str) -> Path:
        return self._base / session_id

    async def download(self, session_id: str, dest: Path) -> bool:
        stored = self._session_dir(session_id)
        return await to_thread.run_sync(partial(_copy_into, stored, Path(dest)))

    async def upload(self, session_id: str, source: Path) -> None:
        await to_thread.run_sync(partial(_atomic_replace_tree, Path(source), self._session_dir(session_id)))

    async def list_sessions(self) -> list[str]:
        return await to_thread.run_sync(partial(_list_dirs, self._base))

    async def delete(self, session_id: str) -> None:
        await to_thread.run_sync(partial(_rmtree, self._session_dir(session_id)))


# -- Sync helpers (run in thread pool) -----------------------------------------


def _copy_into(stored: Path, dest: Path) -> bool:
    if not stored.is_dir():
        return False
    dest.mkdir(parents=True, exist_ok=True)
    shutil.copytree(stored, dest, symlinks=True, dirs_exist_ok=True)
    return True


def _atomic_replace_tree(source: Path, target: Path) -> None:
    """Copy *source* next to *target*, then swap it in.

    The staging directory is created in the same parent so the final
    ``os.rename`` is atomic on POSIX.
    """
    target.parent.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp"))
    retired = target.with_name(f".{target.name}.old")
    try:
        shutil.copytree(source, staging, symlinks=True, dirs_exist_ok=True)
        if target.exists():
            _rmtree(retired)
            os.rename(target, retired)
        os.rename(staging, target)
    except BaseException:
        with contextlib.suppress(OSError):
            shutil.rmtree(staging)
        raise
    _rmtree(retired)


def _list_dirs(base: Path) -> list[str]:
    if not base.is_dir():
        return []
    return sorted(p.name for p in base.iterdir() if p.is_dir() and not p.name.startswith("."))


def _rmtree(path: Path) -> None:
    """Remove directory tree.  No-op if path doesn't exist."""
    if path.exists():
        shutil.rmtree(path)
