"""Bridge between the pipeline and an execution capability.

Builds the provider options from the resolved session, forwards every
provider payload as an ``execution`` event, and records the provider's own
session handle the first time its init payload appears.  Provider exceptions
propagate unchanged.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from loguru import logger

from coding_worker.worker.models.enums import EventType
from coding_worker.worker.providers.base import ProviderEvent, ProviderOptions, correlation_id_from

if TYPE_CHECKING:
    from coding_worker.worker.execution.events import EventSink
    from coding_worker.worker.execution.resolver import ResolvedSession
    from coding_worker.worker.managers.sessions import SessionFiles
    from coding_worker.worker.providers.base import ExecutionCapability


class ExecutionAdapter:
    def __init__(
        self,
        *,
        capability: ExecutionCapability,
        files: SessionFiles,
        events: EventSink,
        timeout: float | None = None,
    ) -> None:
        self._capability = capability
        self._files = files
        self._events = events
        self._timeout = timeout

    def build_options(self, resolved: ResolvedSession, credentials: str, options: dict[str, Any]) -> ProviderOptions:
        return ProviderOptions(
            credentials=credentials,
            workspace_path=resolved.workspace_path,
            state_dir=resolved.session_root,
            correlation_id=resolved.metadata.external_correlation_id,
            options=dict(options),
        )

    async def run(
        self,
        resolved: ResolvedSession,
        user_text: str,
        credentials: str,
        options: dict[str, Any] | None = None,
    ) -> None:
        provider_options = self.build_options(resolved, credentials, options or {})
        captured = False

        async def on_event(event: ProviderEvent) -> None:
            nonlocal captured
            if not captured:
                correlation_id = correlation_id_from(event)
                if correlation_id is not None:
                    captured = True
                    resolved.metadata.external_correlation_id = correlation_id
                    self._files.save_metadata(resolved.metadata)
                    logger.info("Provider session handle for {}: {}", resolved.session_id, correlation_id)
            await self._events.emit(EventType.EXECUTION, kind=event.kind, data=event.data)

        logger.info(
            "Executing with {} in {} (resume handle={})",
            self._capability.name,
            provider_options.workspace_path,
            provider_options.correlation_id,
        )
        if self._timeout is None:
            await self._capability.execute(user_text, provider_options, on_event)
            return
        async with asyncio.timeout(self._timeout):
            await self._capability.execute(user_text, provider_options, on_event)
