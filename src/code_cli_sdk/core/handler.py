"""Client-facing notification surface and per-session update routing."""

from __future__ import annotations

import logging
from typing import Any, Protocol, Union

from acp.schema import (
    AgentMessageChunk,
    AgentPlanUpdate,
    AgentThoughtChunk,
    AvailableCommandsUpdate,
    CurrentModeUpdate,
    RequestPermissionRequest,
    RequestPermissionResponse,
    ToolCallProgress,
    ToolCallStart,
    UserMessageChunk,
)

from code_cli_sdk.core.types import TitleGeneratedUpdate, UsageUpdate
from code_cli_sdk.log_utils import log_event

logger = logging.getLogger(__name__)

SessionUpdate = Union[
    UserMessageChunk,
    AgentMessageChunk,
    AgentThoughtChunk,
    ToolCallStart,
    ToolCallProgress,
]


class EventHandler(Protocol):
    """Receives everything a session reports to the client.

    ``request_permission`` is the only call that expects an answer; the rest
    are fire-and-forget notifications awaited in emission order.
    """

    async def session_update(self, session_id: str, update: SessionUpdate) -> None: ...

    async def plan_update(self, session_id: str, update: AgentPlanUpdate) -> None: ...

    async def request_permission(self, request: RequestPermissionRequest) -> RequestPermissionResponse: ...

    async def title_generated(self, session_id: str, update: TitleGeneratedUpdate) -> None: ...

    async def mode_update(self, session_id: str, update: CurrentModeUpdate) -> None: ...

    async def available_commands_update(self, session_id: str, update: AvailableCommandsUpdate) -> None: ...

    async def usage_update(self, session_id: str, update: UsageUpdate) -> None: ...

    async def error(self, session_id: str | None, error: BaseException) -> None: ...


class UpdateEmitter:
    """Routes one session's updates to the matching handler method.

    Mode updates are last-write-wins: an update equal to the last one sent is
    dropped.
    """

    def __init__(self, handler: EventHandler, session_id: str) -> None:
        self.handler = handler
        self.session_id = session_id
        self._last_mode: CurrentModeUpdate | None = None

    async def emit(self, update: Any) -> None:
        if isinstance(update, AgentPlanUpdate):
            await self.handler.plan_update(self.session_id, update)
        elif isinstance(update, CurrentModeUpdate):
            if self._last_mode is not None and self._last_mode == update:
                log_event(logger, "session.mode_update.duplicate", level=logging.DEBUG, mode=update.current_mode_id)
                return
            self._last_mode = update
            await self.handler.mode_update(self.session_id, update)
        elif isinstance(update, AvailableCommandsUpdate):
            await self.handler.available_commands_update(self.session_id, update)
        elif isinstance(update, UsageUpdate):
            await self.handler.usage_update(self.session_id, update)
        elif isinstance(update, TitleGeneratedUpdate):
            await self.handler.title_generated(self.session_id, update)
        else:
            await self.handler.session_update(self.session_id, update)

    async def emit_all(self, updates: list[Any]) -> None:
        for update in updates:
            await self.emit(update)

    async def request_permission(self, request: RequestPermissionRequest) -> RequestPermissionResponse:
        return await self.handler.request_permission(request)

    async def error(self, error: BaseException) -> None:
        await self.handler.error(self.session_id, error)
