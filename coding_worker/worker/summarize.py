"""Short-text generation for session names and commit messages.

A ``Summarizer`` turns a prompt into a short piece of text.  The production
implementation runs a one-shot pydantic-ai agent on a small, fast model; the
prompts are Jinja2 templates rendered with request-derived variables.

Generation is always optional: callers fall back to deterministic text when
no API key can be derived from the job's credentials or when the model call
fails.
"""

from __future__ import annotations

import json
import re
from typing import Any, Protocol

import jinja2
from loguru import logger

SESSION_NAME_MAX = 60
BRANCH_NAME_MAX = 100
BRANCH_SLUG_MAX = 50
DIFF_PROMPT_LIMIT = 4000
FALLBACK_COMMIT_MESSAGE = "chore: auto-commit changes"

SESSION_NAME_TEMPLATE = """\
Generate a concise session name (max {{ max_length }} characters) from this user request. \
The name should be descriptive but brief, suitable for a session title. \
Only return the session name, nothing else.

User request: {{ user_request }}

Session name:"""

COMMIT_MESSAGE_TEMPLATE = """\
Analyze the following git changes and generate a concise, conventional commit message. Follow these rules:
- Use conventional commit format (e.g., "feat:", "fix:", "refactor:", "docs:", etc.)
- Keep the summary line under 72 characters
- Be specific about what changed
- Only return the commit message, nothing else

Git status:
{{ status }}

Git diff:
{{ diff[:diff_limit] }}

Commit message:"""

_env = jinja2.Environment(autoescape=False, keep_trailing_newline=False)  # noqa: S701


def render_prompt(template: str, **variables: Any) -> str:
    return _env.from_string(template).render(**variables)


class Summarizer(Protocol):
    """Generate a short text completion.  May raise on any failure."""

    async def generate(self, prompt: str) -> str: ...


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


def extract_api_key(credentials: str | None) -> str | None:
    """Derive a model API key from the job's opaque credential string.

    Accepts the OAuth credentials JSON (``{"claudeAiOauth": {"accessToken"}}``),
    a JSON object with ``apiKey``, or a bare ``sk-ant-`` key.
    """
    if not credentials:
        return None
    raw = credentials.strip()
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return raw if raw.startswith("sk-ant-") else None

    if not isinstance(parsed, dict):
        return None
    oauth = parsed.get("claudeAiOauth")
    if isinstance(oauth, dict) and oauth.get("accessToken"):
        return str(oauth["accessToken"])
    if parsed.get("apiKey"):
        return str(parsed["apiKey"])
    return None


# ---------------------------------------------------------------------------
# pydantic-ai implementation
# ---------------------------------------------------------------------------


class AgentSummarizer:
    """One-shot pydantic-ai agent used for naming and commit messages."""

    def __init__(self, model: str, api_key: str) -> None:
        from pydantic_ai import Agent

        self._agent = Agent(_build_model(model, api_key), output_type=str)
        self._model = model

    async def generate(self, prompt: str) -> str:
        result = await self._agent.run(prompt)
        return str(result.output).strip()


def _build_model(model: str, api_key: str) -> Any:
    """Bind *api_key* to the model when the provider is known, else use env config."""
    provider, _, name = model.partition(":")
    if provider == "anthropic" and name:
        from pydantic_ai.models.anthropic import AnthropicModel
        from pydantic_ai.providers.anthropic import AnthropicProvider

        return AnthropicModel(name, provider=AnthropicProvider(api_key=api_key))
    return model


def create_summarizer(credentials: str | None, model: str) -> Summarizer | None:
    """Return a summarizer for the job, or ``None`` when no key is available."""
    api_key = extract_api_key(credentials)
    if api_key is None:
        return None
    try:
        return AgentSummarizer(model, api_key)
    except Exception:
        logger.exception("Could not create summarizer for model {}", model)
        return None


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------


def clean_session_name(raw: str) -> str:
    name = raw.strip().strip("\"'").strip()
    return name[:SESSION_NAME_MAX].strip()


async def generate_session_name(summarizer: Summarizer, user_request: str) -> str:
    """Ask the summarizer for a session title; truncate the request on failure."""
    prompt = render_prompt(SESSION_NAME_TEMPLATE, user_request=user_request, max_length=SESSION_NAME_MAX)
    try:
        name = clean_session_name(await summarizer.generate(prompt))
    except Exception:
        logger.exception("Session name generation failed, using request text")
        name = ""
    return name or user_request[:SESSION_NAME_MAX].strip()


async def generate_commit_message(summarizer: Summarizer | None, status: str, diff: str) -> str:
    """Ask the summarizer for a commit message; fixed fallback on any failure."""
    if summarizer is None:
        return FALLBACK_COMMIT_MESSAGE
    prompt = render_prompt(COMMIT_MESSAGE_TEMPLATE, status=status, diff=diff, diff_limit=DIFF_PROMPT_LIMIT)
    try:
        message = (await summarizer.generate(prompt)).strip()
    except Exception:
        logger.exception("Commit message generation failed, using fallback")
        return FALLBACK_COMMIT_MESSAGE
    return message or FALLBACK_COMMIT_MESSAGE


def generate_branch_name(session_name: str, short_id: str, prefix: str = "webedt") -> str:
    """``{prefix}/{slug}-{short_id}``, kept within git-host safe length."""
    slug = re.sub(r"[^a-z0-9]+", "-", session_name.lower()).strip("-")[:BRANCH_SLUG_MAX].strip("-")
    branch = f"{prefix}/{slug}-{short_id}" if slug else f"{prefix}/{short_id}"
    if len(branch) > BRANCH_NAME_MAX:
        room = BRANCH_NAME_MAX - len(f"{prefix}/--{short_id}")
        branch = f"{prefix}/{slug[:room].strip('-')}-{short_id}"
    return branch
