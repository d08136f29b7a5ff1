"""Shared enumerations used across the worker."""

from __future__ import annotations

from enum import StrEnum

# -- Job ---------------------------------------------------------------------


class JobState(StrEnum):
    """Orchestrator lifecycle states for a single job."""

    INIT = "init"
    RESOLVING_SESSION = "resolving_session"
    MATERIALIZING_WORKSPACE = "materializing_workspace"
    EXECUTING = "executing"
    POSTPROCESSING = "postprocessing"
    FINALIZING = "finalizing"
    TERMINATED_OK = "terminated_ok"
    TERMINATED_ERROR = "terminated_error"


class WorkerStatus(StrEnum):
    """Externally visible worker state (``GET /status``)."""

    IDLE = "idle"
    BUSY = "busy"
    TERMINATED = "terminated"


class RemoteStatus(StrEnum):
    """Status values reported to the remote status sink."""

    ACTIVE = "active"
    COMPLETED = "completed"
    ERROR = "error"


# -- Errors ------------------------------------------------------------------


class ErrorCode(StrEnum):
    INVALID_REQUEST = "invalid_request"
    SESSION_NOT_FOUND = "session_not_found"
    WORKSPACE_RECOVERY_FAILED = "workspace_recovery_failed"
    AUTH_ERROR = "auth_error"
    REPO_NOT_FOUND = "repo_not_found"
    INTERNAL_ERROR = "internal_error"


# -- Events ------------------------------------------------------------------


class EventType(StrEnum):
    """Event types emitted to observers during a job."""

    CONNECTED = "connected"
    MESSAGE = "message"
    REPOSITORY_PROGRESS = "repository_progress"
    SESSION_NAMED = "session_named"
    BRANCH_CREATED = "branch_created"
    COMMIT_PROGRESS = "commit_progress"
    EXECUTION = "execution"
    COMPLETED = "completed"
    ERROR = "error"


class RepositoryStage(StrEnum):
    MESSAGE = "message"
    COMPLETED = "completed"


class CommitStage(StrEnum):
    ANALYZING = "analyzing"
    GENERATING_MESSAGE = "generating_message"
    COMMITTING = "committing"
    COMPLETED = "completed"
