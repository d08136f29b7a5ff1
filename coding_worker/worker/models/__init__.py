"""Data models for the coding worker."""

from coding_worker.worker.models.enums import (
    CommitStage,
    ErrorCode,
    EventType,
    JobState,
    RemoteStatus,
    RepositoryStage,
    WorkerStatus,
)
from coding_worker.worker.models.events import WorkerEvent, build_event
from coding_worker.worker.models.request import JobRequest, RepositorySpec, StatusSinkSpec
from coding_worker.worker.models.session import RepositoryInfo, SessionMetadata

__all__ = [
    # Enums
    "CommitStage",
    "ErrorCode",
    "EventType",
    # Request
    "JobRequest",
    "JobState",
    "RemoteStatus",
    # Session
    "RepositoryInfo",
    "RepositorySpec",
    "RepositoryStage",
    "SessionMetadata",
    "StatusSinkSpec",
    # Events
    "WorkerEvent",
    "WorkerStatus",
    "build_event",
]
