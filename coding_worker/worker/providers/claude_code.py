"""Claude Code provider -- drives the ``claude`` CLI in stream-json mode.

Each stdout line is one JSON message from the CLI (``system/init``,
``assistant``, ``user``, ``result``...).  Messages are forwarded verbatim as
``assistant_message`` events; the CLI's own ``system/init`` message carries
the session handle used for ``--resume``.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import os
from typing import Any

from loguru import logger

from coding_worker.worker.errors import AuthError
from coding_worker.worker.providers.base import OnEvent, ProviderEvent, ProviderExecutionError, ProviderOptions

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
EVENT_KIND = "assistant_message"
_STREAM_LIMIT = 16 * 1024 * 1024
_STDERR_TAIL = 2000
_AUTH_MARKERS = ("invalid api key", "authentication", "please run /login", "oauth token", "401")


def build_credentials_env(credentials: str) -> dict[str, str]:
    """Map the opaque credential string onto the env vars the CLI reads."""
    raw = credentials.strip()
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {"ANTHROPIC_API_KEY": raw}

    if isinstance(parsed, dict):
        oauth = parsed.get("claudeAiOauth")
        if isinstance(oauth, dict) and oauth.get("accessToken"):
            return {"CLAUDE_CODE_OAUTH_TOKEN": str(oauth["accessToken"])}
        if parsed.get("apiKey"):
            return {"ANTHROPIC_API_KEY": str(parsed["apiKey"])}
    return {}


class ClaudeCodeProvider:
    name = "claude-code"

    def __init__(self, *, binary: str = "claude", default_model: str | None = None) -> None:
        self._binary = binary
        self._default_model = default_model or DEFAULT_MODEL

    def build_args(self, user_text: str, options: ProviderOptions) -> list[str]:
        opts = options.options
        args = [
            self._binary,
            "-p",
            user_text,
            "--output-format",
            "stream-json",
            "--verbose",
            "--model",
            str(opts.get("model") or self._default_model),
            "--append-system-prompt",
            (
                "You are running in a containerized environment. "
                f"The working directory is {options.workspace_path}."
            ),
        ]
        skip_permissions = opts.get("skipPermissions", opts.get("skip_permissions", True))
        if skip_permissions:
            args.append("--dangerously-skip-permissions")
        else:
            args += ["--permission-mode", "default"]
        if options.correlation_id:
            args += ["--resume", options.correlation_id]
        return args

    async def execute(self, user_text: str, options: ProviderOptions, on_event: OnEvent) -> None:
        env = os.environ.copy()
        env.update(build_credentials_env(options.credentials))

        process = await asyncio.create_subprocess_exec(
            *self.build_args(user_text, options),
            cwd=str(options.workspace_path),
            env=env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=_STREAM_LIMIT,
        )
        logger.info("Claude Code started (pid={}, cwd={})", process.pid, options.workspace_path)

        assert process.stdout is not None  # noqa: S101
        assert process.stderr is not None  # noqa: S101
        stderr_task = asyncio.create_task(process.stderr.read())
        result_error: str | None = None
        try:
            async for raw in process.stdout:
                line = raw.decode(errors="replace").strip()
                if not line:
                    continue
                data = _parse_line(line)
                if isinstance(data, dict) and data.get("type") == "result" and data.get("is_error"):
                    result_error = str(data.get("result") or data.get("subtype") or "error")
                await on_event(ProviderEvent(EVENT_KIND, data))
            returncode = await process.wait()
        finally:
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()
            stderr = (await stderr_task).decode(errors="replace")

        if returncode != 0 or result_error:
            detail = (result_error or stderr.strip() or f"exit code {returncode}")[-_STDERR_TAIL:]
            message = f"Claude Code failed: {detail}"
            if any(marker in detail.lower() for marker in _AUTH_MARKERS):
                raise AuthError(message)
            raise ProviderExecutionError(message)


def _parse_line(line: str) -> Any:
    try:
        return json.loads(line)
    except json.JSONDecodeError:
        return {"type": "text", "text": line}
