"""Tests for environment-driven settings."""

from __future__ import annotations

import pytest

from coding_worker.worker.settings import WorkerSettings, _get_settings_cached, get_settings


def test_defaults() -> None:
    settings = WorkerSettings(_env_file=None)
    assert settings.port == 5000
    assert settings.session_store == "local"
    assert settings.status_sink_url is None
    assert settings.exit_after_job is True
    assert settings.execution_timeout is None


def test_env_prefix(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WORKER_PORT", "7000")
    monkeypatch.setenv("WORKER_SESSION_STORE", "s3")
    monkeypatch.setenv("WORKER_S3_SECRET_KEY", "hunter2")
    monkeypatch.setenv("WORKER_EXECUTION_TIMEOUT", "90")

    settings = WorkerSettings(_env_file=None)

    assert settings.port == 7000
    assert settings.session_store == "s3"
    assert settings.s3_secret_key is not None
    assert settings.s3_secret_key.get_secret_value() == "hunter2"
    assert "hunter2" not in repr(settings)
    assert settings.execution_timeout == 90.0


def test_get_settings_is_cached(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WORKER_LOG_LEVEL", "DEBUG")
    first = get_settings()
    monkeypatch.setenv("WORKER_LOG_LEVEL", "WARNING")
    assert get_settings() is first

    _get_settings_cached.cache_clear()
    assert get_settings().log_level == "WARNING"
