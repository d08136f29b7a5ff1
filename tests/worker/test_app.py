"""HTTP-level tests for the worker app (httpx ASGITransport, fake collaborators)."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sse_starlette.sse import AppStatus

from coding_worker.worker.app import app
from coding_worker.worker.context import WorkerContext
from coding_worker.worker.models.enums import WorkerStatus

JOB = {"userRequest": "add a readme", "codingAssistantProvider": "claude-code", "codingAssistantAuthentication": "x"}


@pytest.fixture(autouse=True)
def _reset_sse_status() -> None:
    # The exit event is bound to the loop that created it; every test runs its own loop.
    AppStatus.should_exit = False
    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None


@pytest.fixture
def worker(settings, files, storage, git, capability_cls) -> WorkerContext:
    capability = capability_cls(payloads=[{"type": "assistant", "text": "done"}])
    return WorkerContext(
        settings=settings,
        files=files,
        storage=storage,
        git=git,
        provider_factory=lambda name, _settings: capability,
        summarizer_factory=lambda credentials, model: None,
    )


@pytest.fixture
async def client(worker: WorkerContext) -> AsyncIterator[AsyncClient]:
    """The app lifespan does NOT run under ASGITransport, so the context is pre-set."""
    app.state.worker = worker
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    del app.state.worker


def _sse_events(body: str) -> list[dict[str, Any]]:
    return [json.loads(line[len("data:") :]) for line in body.splitlines() if line.startswith("data:")]


# ---------------------------------------------------------------------------
# Health / status
# ---------------------------------------------------------------------------


async def test_health(client: AsyncClient, worker: WorkerContext) -> None:
    resp = await client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["workerStatus"] == "idle"
    assert body["workspace"] == str(worker.files.work_root)
    assert "timestamp" in body


async def test_status(client: AsyncClient) -> None:
    resp = await client.get("/status")
    assert resp.status_code == 200
    assert resp.json()["status"] == "idle"


async def test_not_initialised() -> None:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        resp = await ac.get("/status")
    assert resp.status_code == 503


# ---------------------------------------------------------------------------
# Execute
# ---------------------------------------------------------------------------


async def test_execute_streams_job(client: AsyncClient, worker: WorkerContext, storage) -> None:
    resp = await client.post("/execute", json=JOB)
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")

    events = _sse_events(resp.text)
    assert [e["type"] for e in events] == ["connected", "message", "execution", "completed"]
    session_id = events[0]["payload"]["session_id"]
    assert events[-1]["payload"]["session_id"] == session_id

    assert worker.job_task is not None
    outcome = await worker.job_task
    assert outcome.ok
    assert worker.gate.status == WorkerStatus.TERMINATED
    assert session_id in await storage.list_sessions()

    status = await client.get("/status")
    assert status.json()["status"] == "terminated"


async def test_execute_invalid_request(client: AsyncClient, worker: WorkerContext) -> None:
    resp = await client.post("/execute", json={**JOB, "codingAssistantProvider": "codex"})

    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "invalid_request"
    assert body["field"] == "provider"
    assert "codex" in body["message"]
    assert worker.gate.status == WorkerStatus.IDLE
    assert worker.files.list_local() == []


async def test_execute_malformed_body(client: AsyncClient) -> None:
    resp = await client.post("/execute", json={**JOB, "autoCommit": {"not": "a bool"}})
    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_request"


@pytest.mark.parametrize("gate_state", ["busy", "terminated"])
async def test_execute_refused_unless_idle(client: AsyncClient, worker: WorkerContext, gate_state: str) -> None:
    worker.gate.try_acquire("other-job")
    if gate_state == "terminated":
        worker.gate.mark_terminated()

    # Busy wins over validation.
    resp = await client.post("/execute", json={"userRequest": ""})

    assert resp.status_code == 429
    assert resp.headers["Retry-After"] == "5"
    assert resp.json() == {
        "error": "busy",
        "message": "Worker is currently processing another request",
        "retryAfter": 5,
    }


async def test_exit_hook_scheduled(client: AsyncClient, worker: WorkerContext, settings) -> None:
    calls: list[bool] = []
    settings.exit_delay = 0.0
    worker.exit_hook = calls.append

    await client.post("/execute", json=JOB)
    await worker.job_task
    # call_later(0) runs on the next loop iteration.
    for _ in range(5):
        if calls:
            break
        await asyncio.sleep(0.01)
    assert calls == [True]
