"""Session metadata models.

The metadata record is persisted as ``.session-metadata.json`` in the session
root and travels with the session files to durable storage.  It is serialised
with camelCase keys; records written by older workers (``github``,
``providerSessionId``, ``repoUrl``) are still readable.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

_LEGACY_KEYS = {
    "github": "repository",
    "providerSessionId": "externalCorrelationId",
}


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class RepositoryInfo(BaseModel):
    """Repository backing a session workspace."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    url: str
    branch: str
    branch_name: str | None = None
    """Working branch generated from the session name, if any."""

    cloned_path: str
    """Clone location relative to the session root."""

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy(cls, data: Any) -> Any:
        if isinstance(data, dict) and "repoUrl" in data and "url" not in data:
            data = {**data, "url": data["repoUrl"]}
            data.pop("repoUrl")
        return data


class SessionMetadata(BaseModel):
    """Durable per-session record.  Writes are whole-record overwrites."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: str
    provider: str
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    session_name: str | None = None
    external_correlation_id: str | None = None
    """The execution capability's own session handle (not ``session_id``)."""

    repository: RepositoryInfo | None = None

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for old, new in _LEGACY_KEYS.items():
            if old in data and new not in data:
                data[new] = data.pop(old)
        return data

    @classmethod
    def new(cls, session_id: str, provider: str) -> SessionMetadata:
        now = _utcnow()
        return cls(session_id=session_id, provider=provider, created_at=now, updated_at=now)

    def touch(self) -> None:
        self.updated_at = _utcnow()

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)
