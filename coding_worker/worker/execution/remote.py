"""HTTP client for the remote session store.

The remote store keeps a copy of every event (as indexed chunks) and the
session's lifecycle status, so clients that lost the live stream can catch
up.  Each job carries its own sink reference (remote record id + bearer
token); the base URL comes from ``WORKER_STATUS_SINK_URL``.

Endpoints::

    POST  {base}/sessions/{id}/chunks   {"index", "type", "payload", "timestamp"}
    PATCH {base}/sessions/{id}          {"status", "startedAt"?, "completedAt"?}
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx

from coding_worker.worker.models.enums import RemoteStatus
from coding_worker.worker.models.events import WorkerEvent


@dataclass(frozen=True)
class SinkRef:
    """Remote session record addressed by one job."""

    session_id: str
    token: str


def build_chunk(index: int, event: WorkerEvent) -> dict[str, Any]:
    return {
        "index": index,
        "type": event.type.value,
        "payload": event.payload,
        "timestamp": event.timestamp.isoformat(),
    }


def build_status_update(
    status: RemoteStatus,
    *,
    started_at: datetime | None = None,
    completed_at: datetime | None = None,
) -> dict[str, Any]:
    update: dict[str, Any] = {"status": status.value}
    if started_at is not None:
        update["startedAt"] = started_at.isoformat()
    if completed_at is not None:
        update["completedAt"] = completed_at.isoformat()
    return update


class RemoteSink:
    """Async HTTP wrapper for chunk appends and status updates."""

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_seconds,
            headers={"Accept": "application/json"},
        )
        self._owns_client = client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def append_chunk(self, ref: SinkRef, chunk: dict[str, Any]) -> None:
        """Store one event chunk.  The far end drops duplicate indexes."""
        response = await self._client.post(
            f"/sessions/{ref.session_id}/chunks",
            json=chunk,
            headers=_auth_headers(ref),
        )
        response.raise_for_status()

    async def update_status(self, ref: SinkRef, update: dict[str, Any]) -> None:
        response = await self._client.patch(
            f"/sessions/{ref.session_id}",
            json=update,
            headers=_auth_headers(ref),
        )
        response.raise_for_status()


def _auth_headers(ref: SinkRef) -> dict[str, str]:
    return {"Authorization": f"Bearer {ref.token}"}
