"""Fakes for the worker's collaborators (git, provider, summarizer, sinks)."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest

from coding_worker.worker.execution.events import EventSink
from coding_worker.worker.execution.remote import SinkRef
from coding_worker.worker.managers.sessions import SessionFiles
from coding_worker.worker.models.events import WorkerEvent
from coding_worker.worker.providers.base import OnEvent, ProviderEvent, ProviderOptions
from coding_worker.worker.vcs.git import BranchNotFoundError, PullResult, extract_repo_name

# ---------------------------------------------------------------------------
# Git
# ---------------------------------------------------------------------------


class FakeGit:
    """In-memory stand-in for ``GitClient``.  Clones create a ``.git`` dir."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.default_branch = "main"
        self.missing_branches: set[str] = set()
        self.existing_branches: set[str] = set()
        self.changes = True
        self.commit_hash = "0123456789abcdef0123456789abcdef01234567"
        self.clone_error: Exception | None = None
        self.commit_error: Exception | None = None
        self.create_branch_error: Exception | None = None
        self._checkouts: dict[Path, str] = {}

    async def clone(self, url: str, target: Path, branch: str | None = None, *, access_token: str | None = None) -> None:
        self.calls.append(("clone", url, target, branch, access_token))
        if self.clone_error is not None:
            raise self.clone_error
        if branch and branch in self.missing_branches:
            raise BranchNotFoundError(branch, f"fatal: Remote branch {branch} not found in upstream origin")
        (target / ".git").mkdir(parents=True)
        (target / "README.md").write_text("# repo\n")
        self._checkouts[target] = branch or self.default_branch

    async def current_branch(self, path: Path) -> str:
        return self._checkouts.get(path, self.default_branch)

    async def pull_repository(
        self,
        url: str,
        workspace_root: Path,
        *,
        branch: str | None = None,
        directory: str | None = None,
        access_token: str | None = None,
    ) -> PullResult:
        target = workspace_root / (directory or extract_repo_name(url))
        await self.clone(url, target, branch, access_token=access_token)
        return PullResult(target_path=target, was_cloned=True, branch=branch or self.default_branch)

    async def branch_exists(self, path: Path, name: str) -> bool:
        return name in self.existing_branches

    async def create_branch(self, path: Path, name: str) -> None:
        self.calls.append(("create_branch", path, name))
        if self.create_branch_error is not None:
            raise self.create_branch_error
        self._checkouts[path] = name

    async def has_changes(self, path: Path) -> bool:
        return self.changes

    async def status(self, path: Path) -> str:
        return "## main\n M README.md\n"

    async def diff(self, path: Path) -> str:
        return "diff --git a/README.md b/README.md\n+hello\n"

    async def commit_all(self, path: Path, message: str) -> str:
        self.calls.append(("commit_all", path, message))
        if self.commit_error is not None:
            raise self.commit_error
        return self.commit_hash


# ---------------------------------------------------------------------------
# Provider / summarizer
# ---------------------------------------------------------------------------


class FakeCapability:
    name = "fake-agent"

    def __init__(self, payloads: list[Any] | None = None, error: Exception | None = None) -> None:
        self.payloads = payloads or []
        self.error = error
        self.calls: list[tuple[str, ProviderOptions]] = []
        self.on_execute: Any = None

    async def execute(self, user_text: str, options: ProviderOptions, on_event: OnEvent) -> None:
        self.calls.append((user_text, options))
        if self.on_execute is not None:
            self.on_execute(options)
        for payload in self.payloads:
            await on_event(ProviderEvent("assistant_message", payload))
        if self.error is not None:
            raise self.error


class FakeSummarizer:
    def __init__(self, response: str = "Add login page", error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.response


# ---------------------------------------------------------------------------
# Sinks
# ---------------------------------------------------------------------------


class RecordingTransport:
    def __init__(self) -> None:
        self.events: list[WorkerEvent] = []
        self.closed = False

    async def send(self, event: WorkerEvent) -> None:
        if not self.closed:
            self.events.append(event)

    def close(self) -> None:
        self.closed = True

    @property
    def types(self) -> list[str]:
        return [e.type.value for e in self.events]


class FakeRemote:
    """Records chunks and status updates; can fail or delay chosen indexes."""

    def __init__(self) -> None:
        self.chunks: list[dict[str, Any]] = []
        self.statuses: list[dict[str, Any]] = []
        self.fail_indexes: set[int] = set()
        self.delays: dict[int, float] = {}
        self.status_error: Exception | None = None

    async def append_chunk(self, ref: SinkRef, chunk: dict[str, Any]) -> None:
        index = chunk["index"]
        if index in self.delays:
            await asyncio.sleep(self.delays[index])
        if index in self.fail_indexes:
            msg = f"remote rejected chunk {index}"
            raise RuntimeError(msg)
        self.chunks.append(chunk)

    async def update_status(self, ref: SinkRef, update: dict[str, Any]) -> None:
        if self.status_error is not None:
            raise self.status_error
        self.statuses.append(update)

    async def aclose(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def git() -> FakeGit:
    return FakeGit()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def sink_ref() -> SinkRef:
    return SinkRef(session_id="remote-1", token="tok")  # noqa: S106


@pytest.fixture
def events(transport: RecordingTransport, files: SessionFiles) -> EventSink:
    return EventSink(transport=transport, files=files)


@pytest.fixture
def fake_git_cls() -> type[FakeGit]:
    return FakeGit


@pytest.fixture
def capability_cls() -> type[FakeCapability]:
    return FakeCapability


@pytest.fixture
def summarizer_cls() -> type[FakeSummarizer]:
    return FakeSummarizer
