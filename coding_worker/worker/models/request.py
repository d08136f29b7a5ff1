"""Job request models.

Defines the wire format accepted by ``POST /execute``.  Field names are
snake_case; the camelCase names used by existing clients (``userRequest``,
``codingAssistantProvider``, ``github``, ``database``, ...) are accepted as
aliases.

Required fields are typed optional on purpose: presence and mutual exclusion
are checked by ``validate_request`` so that a malformed job is reported as
``invalid_request`` instead of a generic schema error.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class RepositorySpec(BaseModel):
    """Repository to clone (or pull) into a new session workspace."""

    model_config = ConfigDict(populate_by_name=True)

    url: str | None = Field(default=None, validation_alias=AliasChoices("url", "repoUrl", "repo_url"))
    branch: str | None = None
    directory: str | None = None
    access_token: str | None = Field(
        default=None, validation_alias=AliasChoices("access_token", "accessToken"), repr=False
    )


class StatusSinkSpec(BaseModel):
    """Remote session record that receives event chunks and status updates."""

    model_config = ConfigDict(populate_by_name=True)

    id: str | None = Field(default=None, validation_alias=AliasChoices("id", "sessionId", "session_id"))
    token: str | None = Field(
        default=None, validation_alias=AliasChoices("token", "accessToken", "access_token"), repr=False
    )


class JobRequest(BaseModel):
    """A single coding-assistant job."""

    model_config = ConfigDict(populate_by_name=True)

    user_request: str | None = Field(default=None, validation_alias=AliasChoices("user_request", "userRequest"))
    provider: str | None = Field(
        default=None, validation_alias=AliasChoices("provider", "codingAssistantProvider")
    )
    credentials: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "credentials",
            "codingAssistantAuthentication",
            "codingAssistantAccessToken",
        ),
        repr=False,
    )
    resume_session_id: str | None = Field(
        default=None, validation_alias=AliasChoices("resume_session_id", "resumeSessionId")
    )
    repository: RepositorySpec | None = Field(default=None, validation_alias=AliasChoices("repository", "github"))
    auto_commit: bool | None = Field(default=None, validation_alias=AliasChoices("auto_commit", "autoCommit"))
    status_sink: StatusSinkSpec | None = Field(
        default=None, validation_alias=AliasChoices("status_sink", "database")
    )
    provider_options: dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("provider_options", "providerOptions")
    )

    @property
    def is_resuming(self) -> bool:
        return bool(self.resume_session_id)

    @property
    def should_auto_commit(self) -> bool:
        """Explicit flag wins; otherwise auto-commit only repository-backed jobs."""
        if self.auto_commit is not None:
            return self.auto_commit
        return self.repository is not None
