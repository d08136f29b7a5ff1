"""FastAPI dependency injection for the worker context.

Usage in route handlers::

    @app.get("/status")
    async def status(worker: Worker) -> dict:
        ...

Raises HTTP 503 while the context is not initialised (before startup).
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from coding_worker.worker.context import WorkerContext


def get_worker(request: Request) -> WorkerContext:
    worker: WorkerContext | None = getattr(request.app.state, "worker", None)
    if worker is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Worker is not initialised.",
        )
    return worker


Worker = Annotated[WorkerContext, Depends(get_worker)]
"""Annotated dependency: the process-wide worker context."""
