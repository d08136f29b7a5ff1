"""In-process provider built on ya-agent-sdk.

Creates an SDK ``AgentRuntime`` rooted at the job workspace, streams the run,
and keeps the agent's resumable context in ``{state_dir}/.agent-state.json``
so a later job can continue the same conversation.  The file is keyed by a
correlation id that this provider announces with an init payload, mirroring
how CLI agents report their own session handle.

The SDK reads provider API keys from the environment; the key derived from
the job credentials is exported before the runtime is created.  A worker
process runs one job, so the export never leaks across jobs.
"""

from __future__ import annotations

import os
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger
from pydantic import BaseModel, Field
from pydantic_core import to_jsonable_python

from coding_worker.worker.providers.base import (
    OnEvent,
    ProviderEvent,
    ProviderExecutionError,
    ProviderOptions,
    init_payload,
)
from coding_worker.worker.summarize import extract_api_key

if TYPE_CHECKING:
    from ya_agent_sdk.agents.main import AgentRuntime, AgentStreamer

STATE_FILENAME = ".agent-state.json"
DEFAULT_MODEL = "anthropic:claude-sonnet-4-5"
DEFAULT_TOOLSETS = ("filesystem", "shell", "content", "context", "enhance")
EVENT_KIND = "agent_event"

_KEY_ENV = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "google-gla": "GEMINI_API_KEY",
}


class AgentState(BaseModel):
    """Resumable agent state written next to the workspace."""

    correlation_id: str
    context_state: dict = Field(default_factory=dict, description="SDK ResumableState export")
    message_history: list = Field(default_factory=list, description="pydantic-ai ModelMessage list")


def resolve_tools(toolsets: list[str] | tuple[str, ...]) -> list[Any]:
    """Map toolset names to SDK tool classes.  Unknown names are skipped."""
    from ya_agent_sdk.toolsets.core.content import tools as content_tools
    from ya_agent_sdk.toolsets.core.context import tools as context_tools
    from ya_agent_sdk.toolsets.core.enhance import tools as enhance_tools
    from ya_agent_sdk.toolsets.core.filesystem import tools as filesystem_tools
    from ya_agent_sdk.toolsets.core.shell import tools as shell_tools
    from ya_agent_sdk.toolsets.core.web import tools as web_tools

    registry = {
        "content": content_tools,
        "context": context_tools,
        "enhance": enhance_tools,
        "filesystem": filesystem_tools,
        "shell": shell_tools,
        "web": web_tools,
    }
    tools: list[Any] = []
    for name in dict.fromkeys(toolsets):
        found = registry.get(name)
        if found is None:
            logger.warning("Unknown toolset '{}', skipping", name)
            continue
        tools.extend(found)
    return tools


def load_state(state_dir: Path, correlation_id: str | None) -> AgentState | None:
    """Return the stored state if it belongs to *correlation_id*."""
    if not correlation_id:
        return None
    path = state_dir / STATE_FILENAME
    if not path.is_file():
        return None
    state = AgentState.model_validate_json(path.read_text(encoding="utf-8"))
    if state.correlation_id != correlation_id:
        logger.warning("Agent state belongs to {}, not {}; starting fresh", state.correlation_id, correlation_id)
        return None
    return state


def save_state(state_dir: Path, state: AgentState) -> None:
    path = state_dir / STATE_FILENAME
    path.write_text(state.model_dump_json(indent=2), encoding="utf-8")


def export_api_key(model: str, credentials: str) -> None:
    provider = model.partition(":")[0]
    env_name = _KEY_ENV.get(provider)
    api_key = extract_api_key(credentials) or credentials.strip()
    if env_name and api_key:
        os.environ[env_name] = api_key


class YaAgentProvider:
    name = "ya-agent"

    def __init__(self, *, default_model: str | None = None) -> None:
        self._default_model = default_model or DEFAULT_MODEL

    async def execute(self, user_text: str, options: ProviderOptions, on_event: OnEvent) -> None:
        from ya_agent_sdk.agents.main import create_agent, stream_agent
        from ya_agent_sdk.context import ResumableState
        from ya_agent_sdk.environment.local import LocalEnvironment

        opts = options.options
        model = str(opts.get("model") or self._default_model)
        export_api_key(model, options.credentials)

        previous = load_state(options.state_dir, options.correlation_id)
        correlation_id = previous.correlation_id if previous else uuid.uuid4().hex
        resumable = ResumableState.model_validate(previous.context_state) if previous and previous.context_state else None

        runtime = create_agent(
            model=model,
            env=LocalEnvironment(default_path=options.workspace_path),
            tools=resolve_tools(opts.get("toolsets") or DEFAULT_TOOLSETS),
            system_prompt=str(
                opts.get("systemPrompt")
                or f"You are a coding assistant. The working directory is {options.workspace_path}."
            ),
            state=resumable,
            agent_name="coding-worker",
        )
        logger.info("ya-agent runtime created (model={}, resumed={})", model, previous is not None)

        await on_event(ProviderEvent(EVENT_KIND, init_payload(correlation_id, model=model)))

        try:
            async with stream_agent(runtime, user_prompt=user_text) as streamer:
                async for event in streamer:
                    await on_event(ProviderEvent(EVENT_KIND, to_jsonable_python(event, fallback=repr)))
                # Still inside stream_agent context -- runtime is alive.
                state = _export_state(runtime, streamer, correlation_id)
        except Exception as exc:
            raise ProviderExecutionError(f"ya-agent run failed: {exc}") from exc

        save_state(options.state_dir, state)


def _export_state(runtime: AgentRuntime, streamer: AgentStreamer, correlation_id: str) -> AgentState:
    from pydantic_ai.messages import ModelMessagesTypeAdapter

    messages = streamer.run.all_messages() if streamer.run else []
    return AgentState(
        correlation_id=correlation_id,
        context_state=runtime.ctx.export_state().model_dump(),
        message_history=ModelMessagesTypeAdapter.dump_python(messages, mode="json") if messages else [],
    )
