"""Provider lookup by name."""

from __future__ import annotations

from coding_worker.worker.errors import InvalidRequestError
from coding_worker.worker.providers.base import ExecutionCapability
from coding_worker.worker.providers.claude_code import ClaudeCodeProvider
from coding_worker.worker.providers.ya_agent import YaAgentProvider
from coding_worker.worker.settings import WorkerSettings

_ALIASES = {
    "claude-code": "claude-code",
    "claude": "claude-code",
    "ya-agent": "ya-agent",
}


def normalize_provider(name: str) -> str:
    return name.strip().lower()


def supported_providers() -> list[str]:
    return sorted(set(_ALIASES.values()))


def is_provider_supported(name: str) -> bool:
    return normalize_provider(name) in _ALIASES


def create_provider(name: str, settings: WorkerSettings) -> ExecutionCapability:
    """Instantiate the provider registered under *name* (or one of its aliases)."""
    canonical = _ALIASES.get(normalize_provider(name))
    if canonical == "claude-code":
        return ClaudeCodeProvider(binary=settings.claude_binary, default_model=settings.default_model)
    if canonical == "ya-agent":
        return YaAgentProvider(default_model=settings.default_model)
    msg = f"Unsupported provider: {name}. Supported providers: {', '.join(supported_providers())}"
    raise InvalidRequestError(msg, field="provider")
