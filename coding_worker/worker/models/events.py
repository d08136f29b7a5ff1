"""Worker event models.

Events form a closed set of variants.  Each ``EventType`` has exactly one
payload model (``extra="forbid"``) and every event travels in the same
``WorkerEvent`` envelope.  Build events with ``build_event`` so the payload is
validated against its variant before it reaches any sink.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from coding_worker.worker.models.enums import CommitStage, ErrorCode, EventType, RepositoryStage


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ConnectedPayload(_Payload):
    session_id: str
    resuming: bool
    resumed_from: str | None = None
    provider: str


class MessagePayload(_Payload):
    message: str


class RepositoryProgressPayload(_Payload):
    stage: RepositoryStage
    message: str
    target_path: str | None = None


class SessionNamedPayload(_Payload):
    session_name: str
    branch_name: str | None = None


class BranchCreatedPayload(_Payload):
    branch_name: str
    message: str


class CommitProgressPayload(_Payload):
    stage: CommitStage
    message: str
    commit_message: str | None = None
    commit_hash: str | None = None


class ExecutionPayload(_Payload):
    """Opaque passthrough from the execution capability."""

    kind: str
    data: Any = None


class CompletedPayload(_Payload):
    session_id: str
    duration_ms: int


class ErrorPayload(_Payload):
    error: str
    code: ErrorCode


PAYLOAD_TYPES: dict[EventType, type[_Payload]] = {
    EventType.CONNECTED: ConnectedPayload,
    EventType.MESSAGE: MessagePayload,
    EventType.REPOSITORY_PROGRESS: RepositoryProgressPayload,
    EventType.SESSION_NAMED: SessionNamedPayload,
    EventType.BRANCH_CREATED: BranchCreatedPayload,
    EventType.COMMIT_PROGRESS: CommitProgressPayload,
    EventType.EXECUTION: ExecutionPayload,
    EventType.COMPLETED: CompletedPayload,
    EventType.ERROR: ErrorPayload,
}

TERMINAL_EVENTS = frozenset({EventType.COMPLETED, EventType.ERROR})


class WorkerEvent(BaseModel):
    """Wire-format envelope sent to every sink."""

    type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENTS


def build_event(event_type: EventType, **fields: Any) -> WorkerEvent:
    """Validate *fields* against the variant for *event_type* and wrap them.

    Raises ``pydantic.ValidationError`` for unknown or missing fields.
    """
    payload = PAYLOAD_TYPES[event_type](**fields)
    return WorkerEvent(type=event_type, payload=payload.model_dump(mode="json", exclude_none=True))
