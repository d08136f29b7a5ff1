"""Job error taxonomy.

Every error raised deliberately by the worker carries an explicit
``ErrorCode`` at the throw site.  The coordinator reads the code through
``classify_error``; anything without one is reported as ``internal_error``.
"""

from __future__ import annotations

from coding_worker.worker.models.enums import ErrorCode


class WorkerError(Exception):
    """Base class for classified job failures."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR


class InvalidRequestError(WorkerError, ValueError):
    """Request fields are missing or mutually exclusive."""

    code = ErrorCode.INVALID_REQUEST

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class SessionNotFoundError(WorkerError, LookupError):
    """Resume target does not exist in durable storage."""

    code = ErrorCode.SESSION_NOT_FOUND

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class WorkspaceRecoveryFailedError(WorkerError):
    """Resume target's files are missing and could not be rebuilt."""

    code = ErrorCode.WORKSPACE_RECOVERY_FAILED


class AuthError(WorkerError):
    """Credentials were rejected by a provider or repository host."""

    code = ErrorCode.AUTH_ERROR


class RepositoryNotFoundError(WorkerError, LookupError):
    """Repository URL or requested branch does not resolve."""

    code = ErrorCode.REPO_NOT_FOUND


def classify_error(exc: BaseException) -> ErrorCode:
    """Return the error code attached to *exc*, or ``internal_error``."""
    if isinstance(exc, WorkerError):
        return exc.code
    return ErrorCode.INTERNAL_ERROR
