"""Execution capability providers."""

from coding_worker.worker.providers.base import (
    ExecutionCapability,
    ProviderEvent,
    ProviderExecutionError,
    ProviderOptions,
    correlation_id_from,
)
from coding_worker.worker.providers.claude_code import ClaudeCodeProvider
from coding_worker.worker.providers.factory import (
    create_provider,
    is_provider_supported,
    normalize_provider,
    supported_providers,
)
from coding_worker.worker.providers.ya_agent import YaAgentProvider

__all__ = [
    "ClaudeCodeProvider",
    "ExecutionCapability",
    "ProviderEvent",
    "ProviderExecutionError",
    "ProviderOptions",
    "YaAgentProvider",
    "correlation_id_from",
    "create_provider",
    "is_provider_supported",
    "normalize_provider",
    "supported_providers",
]
