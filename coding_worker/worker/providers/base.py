"""Execution capability interface.

A provider runs the coding agent against a workspace and reports everything
it does through ``on_event``.  Providers that support continuation announce
their own session handle with an initialization payload::

    {"type": "system", "subtype": "init", "session_id": "<handle>"}

The handle is stored by the worker and passed back as
``ProviderOptions.correlation_id`` on the next job of the same session.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from coding_worker.worker.errors import WorkerError

INIT_EVENT_TYPE = "system"
INIT_EVENT_SUBTYPE = "init"


@dataclass
class ProviderEvent:
    """One opaque payload emitted by a provider."""

    kind: str
    data: Any = None


OnEvent = Callable[[ProviderEvent], Awaitable[None]]


@dataclass
class ProviderOptions:
    credentials: str
    workspace_path: Path
    state_dir: Path
    """Session root; providers may keep private state here (uploaded with the session)."""

    correlation_id: str | None = None
    options: dict[str, Any] = field(default_factory=dict)


class ExecutionCapability(Protocol):
    """Runs one user request to completion.  Raises on failure."""

    name: str

    async def execute(self, user_text: str, options: ProviderOptions, on_event: OnEvent) -> None: ...


class ProviderExecutionError(WorkerError):
    """The provider process or SDK reported a failure."""


def init_payload(correlation_id: str, **extra: Any) -> dict[str, Any]:
    return {"type": INIT_EVENT_TYPE, "subtype": INIT_EVENT_SUBTYPE, "session_id": correlation_id, **extra}


def correlation_id_from(event: ProviderEvent) -> str | None:
    """Return the provider's session handle if *event* is an init payload."""
    data = event.data
    if not isinstance(data, dict):
        return None
    if data.get("type") != INIT_EVENT_TYPE or data.get("subtype") != INIT_EVENT_SUBTYPE:
        return None
    session_id = data.get("session_id")
    return str(session_id) if session_id else None
