"""Worker HTTP surface.

``POST /execute`` accepts one job per process and streams its events as
Server-Sent Events.  The job runs in its own task: a client that disconnects
stops receiving events but never stops the job.  With ``exit_after_job`` set
the process terminates shortly after the job finished (ephemeral container
model).
"""

from __future__ import annotations

import asyncio
import os
import signal
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from sse_starlette.sse import AppStatus, EventSourceResponse

from coding_worker.worker.context import WorkerContext
from coding_worker.worker.deps import Worker
from coding_worker.worker.errors import InvalidRequestError
from coding_worker.worker.execution.coordinator import JobCoordinator
from coding_worker.worker.execution.finalizer import JobOutcome
from coding_worker.worker.execution.remote import RemoteSink
from coding_worker.worker.execution.resolver import validate_request
from coding_worker.worker.execution.transport import QueueTransport
from coding_worker.worker.log import job_context, setup_logging
from coding_worker.worker.managers.sessions import SessionFiles
from coding_worker.worker.models.enums import WorkerStatus
from coding_worker.worker.models.request import JobRequest
from coding_worker.worker.settings import WorkerSettings, get_settings
from coding_worker.worker.store.base import SessionStorage
from coding_worker.worker.store.local import LocalSessionStorage
from coding_worker.worker.vcs.git import GitClient

BUSY_RETRY_AFTER = 5
SHUTDOWN_JOB_TIMEOUT = 30.0


def create_session_storage(settings: WorkerSettings) -> SessionStorage:
    """Create the durable storage backend based on configuration."""
    if settings.session_store == "s3":
        from coding_worker.worker.store.s3 import S3SessionStorage

        if not settings.s3_bucket:
            msg = "WORKER_S3_BUCKET is required when WORKER_SESSION_STORE=s3"
            raise ValueError(msg)
        return S3SessionStorage(
            bucket=settings.s3_bucket,
            endpoint_url=settings.s3_endpoint,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key.get_secret_value() if settings.s3_secret_key else None,
            prefix=settings.data_prefix,
            region=settings.s3_region,
            path_style=settings.s3_path_style,
        )
    return LocalSessionStorage(settings.data_root, prefix=settings.data_prefix)


def terminate_process(ok: bool) -> None:
    """Ask uvicorn to shut down gracefully."""
    logger.info("Job finished ({}), shutting down worker", "ok" if ok else "error")
    os.kill(os.getpid(), signal.SIGTERM)


def build_context(settings: WorkerSettings) -> WorkerContext:
    remote = None
    if settings.status_sink_url:
        remote = RemoteSink(base_url=settings.status_sink_url, timeout_seconds=settings.status_sink_timeout)
    return WorkerContext(
        settings=settings,
        files=SessionFiles(settings.work_root),
        storage=create_session_storage(settings),
        git=GitClient(),
        remote=remote,
        exit_hook=terminate_process if settings.exit_after_job else None,
    )


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # -- Startup ---------------------------------------------------------------
    settings = get_settings()
    setup_logging(settings.log_level, json=settings.log_json)

    logger.info("Coding worker starting (host={}, port={})", settings.host, settings.port)
    prefix_info = f", prefix={settings.data_prefix}" if settings.data_prefix else ""
    logger.info("Work root: {} (store={}{})", settings.work_root, settings.session_store, prefix_info)
    if not settings.status_sink_url:
        logger.warning("WORKER_STATUS_SINK_URL not set -- remote status sink disabled")

    # Let the SSE stream deliver the terminal event before the server closes it.
    AppStatus.disable_automatic_graceful_drain()

    _app.state.worker = build_context(settings)

    yield

    # -- Shutdown --------------------------------------------------------------
    worker: WorkerContext = _app.state.worker
    logger.info("Coding worker shutting down (status={})", worker.gate.status)
    if worker.gate.is_busy:
        await worker.gate.wait_finished(timeout=SHUTDOWN_JOB_TIMEOUT)

    AppStatus.should_exit = True
    if worker.remote is not None:
        await worker.remote.aclose()


app = FastAPI(title="Coding Worker", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def _request_validation_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "invalid_request", "message": "Malformed request body", "details": jsonable_encoder(exc.errors())},
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/health")
async def health(worker: Worker) -> dict[str, Any]:
    return {
        "status": "ok",
        "workspace": str(worker.files.work_root),
        "workerStatus": worker.gate.status,
        "timestamp": datetime.now(tz=UTC).isoformat(),
    }


@app.get("/status")
async def worker_status(worker: Worker) -> dict[str, Any]:
    return {"status": worker.gate.status, "timestamp": datetime.now(tz=UTC).isoformat()}


@app.post("/execute", response_model=None)
async def execute(job: JobRequest, worker: Worker) -> EventSourceResponse | JSONResponse:
    if worker.gate.status != WorkerStatus.IDLE:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                "error": "busy",
                "message": "Worker is currently processing another request",
                "retryAfter": BUSY_RETRY_AFTER,
            },
            headers={"Retry-After": str(BUSY_RETRY_AFTER)},
        )

    try:
        validate_request(job)
    except InvalidRequestError as exc:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": exc.code, "message": str(exc), "field": exc.field},
        )

    job_id = uuid.uuid4().hex
    # No await since the status check, so the gate is still free.
    worker.gate.try_acquire(job_id)

    logger.info("Job {} accepted (provider={}, resume={})", job_id, job.provider, job.resume_session_id)
    transport = QueueTransport()
    coordinator = JobCoordinator(
        job,
        settings=worker.settings,
        files=worker.files,
        storage=worker.storage,
        git=worker.git,
        transport=transport,
        remote=worker.remote,
        provider_factory=worker.provider_factory,
        summarizer_factory=worker.summarizer_factory,
    )
    worker.job_task = asyncio.create_task(_run_job(worker, coordinator, job_id), name=f"job-{job_id}")

    return EventSourceResponse(_stream(transport))


async def _run_job(worker: WorkerContext, coordinator: JobCoordinator, job_id: str) -> JobOutcome:
    with job_context(job_id):
        try:
            outcome = await coordinator.run()
            worker.outcome = outcome
        finally:
            worker.gate.mark_terminated()

    if worker.exit_hook is not None:
        asyncio.get_running_loop().call_later(worker.settings.exit_delay, worker.exit_hook, outcome.ok)
    return outcome


async def _stream(transport: QueueTransport) -> AsyncIterator[dict[str, str]]:
    try:
        async for event in transport.stream():
            yield {"data": event.model_dump_json()}
    finally:
        # Client gone (or stream finished): stop buffering for it.
        transport.disconnect()
