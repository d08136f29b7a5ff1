"""Shared test fixtures.

Every test gets settings rooted in its own temporary directory, a fresh
settings cache, and no ``WORKER_*`` variables leaking in from the
environment running the tests.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest

from coding_worker.worker.managers.sessions import SessionFiles
from coding_worker.worker.settings import WorkerSettings, _get_settings_cached
from coding_worker.worker.store.local import LocalSessionStorage


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for key in list(os.environ):
        if key.startswith("WORKER_"):
            monkeypatch.delenv(key)
    _get_settings_cached.cache_clear()
    yield
    _get_settings_cached.cache_clear()


@pytest.fixture
def settings(tmp_path: Path) -> WorkerSettings:
    return WorkerSettings(
        _env_file=None,
        work_root=str(tmp_path / "work"),
        data_root=str(tmp_path / "data"),
        exit_after_job=False,
        remote_drain_timeout=2.0,
    )


@pytest.fixture
def files(settings: WorkerSettings) -> SessionFiles:
    return SessionFiles(settings.work_root)


@pytest.fixture
def storage(settings: WorkerSettings) -> LocalSessionStorage:
    return LocalSessionStorage(settings.data_root)
