"""Process-wide worker context.

Holds the long-lived collaborators built during app startup (storage, git,
remote sink, gate) together with the single job's live references.  Stored
on ``app.state.worker`` and handed to route handlers through ``deps``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field

from coding_worker.worker.execution.coordinator import ProviderFactory, SummarizerFactory
from coding_worker.worker.execution.finalizer import JobOutcome
from coding_worker.worker.execution.remote import RemoteSink
from coding_worker.worker.gate import JobGate
from coding_worker.worker.managers.sessions import SessionFiles
from coding_worker.worker.providers.factory import create_provider
from coding_worker.worker.settings import WorkerSettings
from coding_worker.worker.store.base import SessionStorage
from coding_worker.worker.summarize import create_summarizer
from coding_worker.worker.vcs.git import GitClient


@dataclass
class WorkerContext:
    settings: WorkerSettings
    files: SessionFiles
    storage: SessionStorage
    git: GitClient
    gate: JobGate = field(default_factory=JobGate)
    remote: RemoteSink | None = None

    # -- Pluggable factories (fakes in tests) ----------------------------------
    provider_factory: ProviderFactory = create_provider
    summarizer_factory: SummarizerFactory = create_summarizer
    exit_hook: Callable[[bool], None] | None = None
    """Called ``exit_delay`` seconds after the job; receives whether it succeeded."""

    # -- Live references (set once the job starts) -----------------------------
    job_task: asyncio.Task[JobOutcome] | None = None
    outcome: JobOutcome | None = None
