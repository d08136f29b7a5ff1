"""Worker configuration loaded from WORKER_* environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class WorkerSettings(BaseSettings):
    """Coding worker settings.

    All fields are read from environment variables with the ``WORKER_`` prefix.
    For example, ``WORKER_LOG_LEVEL=DEBUG`` maps to ``log_level``.

    Provider credentials are **not** managed here -- every job carries its own
    opaque credential string in the request body.
    """

    model_config = SettingsConfigDict(
        env_prefix="WORKER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"
    log_json: bool = False
    """Emit one JSON object per log line instead of the human-readable format."""

    # -- Local workspace -------------------------------------------------------
    work_root: str = "/tmp/coding-worker"  # noqa: S108
    """Ephemeral root for session workspaces (``{work_root}/session-{id}``)."""

    # -- Durable session storage -----------------------------------------------
    session_store: Literal["local", "s3"] = "local"

    data_root: str = "./data"
    """Root directory of the local session store."""

    data_prefix: str | None = None
    """Optional namespace prefix inserted into all storage paths / keys."""

    # S3 (only when session_store = "s3")
    s3_endpoint: str | None = None
    s3_bucket: str | None = None
    s3_region: str | None = None
    s3_access_key: str | None = None
    s3_secret_key: SecretStr | None = None
    s3_path_style: bool = False
    """Use path-style addressing (required by MinIO and some S3-compatible services)."""

    # -- Remote status sink ----------------------------------------------------
    status_sink_url: str | None = None
    """Base URL of the remote event/status store.  Disabled when unset."""

    status_sink_timeout: float = 10.0
    remote_drain_timeout: float = 10.0
    """Seconds to wait for in-flight remote writes before cleanup."""

    # -- Providers -------------------------------------------------------------
    claude_binary: str = "claude"
    default_model: str | None = None
    summarizer_model: str = "anthropic:claude-haiku-4-5-20251001"
    branch_prefix: str = "webedt"

    execution_timeout: float | None = None
    """Optional ceiling (seconds) for a single provider call.  Unbounded when unset."""

    # -- Server ----------------------------------------------------------------
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 5000
    exit_after_job: bool = True
    """Terminate the process once the single job has finished (ephemeral model)."""

    exit_delay: float = 1.0


def get_settings() -> WorkerSettings:
    """Return a cached settings instance.

    Call ``_get_settings_cached.cache_clear()`` in tests to force a re-read after
    overriding env vars.
    """
    return _get_settings_cached()


def _get_settings_cached() -> WorkerSettings:
    return WorkerSettings()


from functools import lru_cache  # noqa: E402

_get_settings_cached = lru_cache(maxsize=1)(_get_settings_cached)
