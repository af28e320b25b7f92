"""JSON-RPC binding of the provider facade and the wire-side event handler."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from acp import RequestError
from acp.schema import (
    AgentPlanUpdate,
    AvailableCommandsUpdate,
    CancelNotification,
    CurrentModeUpdate,
    NewSessionResponse,
    PromptRequest,
    RequestPermissionRequest,
    RequestPermissionResponse,
    SessionModeState,
    SessionNotification,
    SetSessionModelRequest,
    SetSessionModeRequest,
)
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from code_cli_sdk.core.connection import Connection
from code_cli_sdk.core.framing import NdJsonStream
from code_cli_sdk.core.handler import EventHandler, SessionUpdate
from code_cli_sdk.core.provider import BaseProvider
from code_cli_sdk.core.types import TitleGeneratedUpdate, UsageUpdate
from code_cli_sdk.log_utils import log_event

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[EventHandler], BaseProvider]


class _Params(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class NewSessionParams(_Params):
    cwd: str | None = None


class SessionParams(_Params):
    session_id: str
    cwd: str | None = None


class WireEventHandler:
    """Sends session events to the client over a :class:`Connection`."""

    def __init__(self, connection: Connection) -> None:
        self.connection = connection

    async def _notify(self, session_id: str, update: Any) -> None:
        await self.connection.send_notification(
            "session/update", SessionNotification(session_id=session_id, update=update)
        )

    async def session_update(self, session_id: str, update: SessionUpdate) -> None:
        await self._notify(session_id, update)

    async def plan_update(self, session_id: str, update: AgentPlanUpdate) -> None:
        await self._notify(session_id, update)

    async def mode_update(self, session_id: str, update: CurrentModeUpdate) -> None:
        await self._notify(session_id, update)

    async def available_commands_update(self, session_id: str, update: AvailableCommandsUpdate) -> None:
        await self._notify(session_id, update)

    async def usage_update(self, session_id: str, update: UsageUpdate) -> None:
        await self.connection.send_notification("session/update", {"sessionId": session_id, "update": update.to_wire()})

    async def title_generated(self, session_id: str, update: TitleGeneratedUpdate) -> None:
        await self.connection.send_notification("session/update", {"sessionId": session_id, "update": update.to_wire()})

    async def request_permission(self, request: RequestPermissionRequest) -> RequestPermissionResponse:
        result = await self.connection.send_request("session/request_permission", request)
        return RequestPermissionResponse.model_validate(result)

    async def error(self, session_id: str | None, error: BaseException) -> None:
        payload: dict[str, Any] = {"message": str(error) or error.__class__.__name__}
        if session_id is not None:
            payload["sessionId"] = session_id
        if isinstance(error, RequestError):
            payload["code"] = error.code
            payload["data"] = error.data
        await self.connection.send_notification("session/error", payload)


class ProviderServer:
    """Serves one provider to one client over NDJSON JSON-RPC."""

    def __init__(self, provider_factory: ProviderFactory, stream: NdJsonStream) -> None:
        self.connection = Connection(self.dispatch, stream)
        self.handler = WireEventHandler(self.connection)
        self.provider = provider_factory(self.handler)
        self._methods: dict[str, Callable[[Any], Awaitable[Any]]] = {
            "provider/capabilities": self._capabilities,
            "provider/estimate_models": self._estimate_models,
            "provider/estimate_modes": self._estimate_modes,
            "session/new": self._new_session,
            "session/resume": self._resume_session,
            "session/prompt": self._prompt,
            "session/set_model": self._set_model,
            "session/set_mode": self._set_mode,
            "session/cancel": self._cancel,
            "session/close": self._close,
            "session/models": self._models,
            "session/modes": self._modes,
            "session/commands": self._commands,
        }

    async def serve(self) -> None:
        try:
            await self.connection.run()
        finally:
            await self.provider.close()

    async def dispatch(self, method: str, params: Any, is_notification: bool) -> Any:
        handler = self._methods.get(method)
        if handler is None:
            if is_notification:
                log_event(logger, "rpc.notification.unknown", level=logging.WARNING, method=method)
                return None
            raise RequestError.method_not_found(method)
        log_event(logger, "rpc.dispatch", level=logging.DEBUG, method=method, notification=is_notification)
        return await handler(params or {})

    async def _capabilities(self, _: Any) -> dict[str, Any]:
        return {"name": self.provider.name, "capabilities": self.provider.capabilities.to_wire()}

    async def _estimate_models(self, _: Any) -> dict[str, Any]:
        return {"models": [model.model_dump(mode="json", by_alias=True, exclude_none=True) for model in self.provider.estimate_models()]}

    async def _estimate_modes(self, _: Any) -> dict[str, Any]:
        return {"modes": [mode.model_dump(mode="json", by_alias=True, exclude_none=True) for mode in self.provider.estimate_modes()]}

    async def _new_session(self, params: Any) -> NewSessionResponse:
        request = NewSessionParams.model_validate(params)
        session = await self.provider.new_session(request.cwd)
        return self._session_response(session.id, session.permission_mode)

    async def _resume_session(self, params: Any) -> NewSessionResponse:
        request = SessionParams.model_validate(params)
        session = await self.provider.resume_session(request.session_id, request.cwd)
        return self._session_response(session.id, session.permission_mode)

    async def _prompt(self, params: Any) -> Any:
        request = PromptRequest.model_validate(params)
        return await self.provider.prompt(request.session_id, list(request.prompt))

    async def _set_model(self, params: Any) -> dict[str, Any]:
        request = SetSessionModelRequest.model_validate(params)
        await self.provider.set_session_model(request.session_id, request.model_id)
        return {}

    async def _set_mode(self, params: Any) -> dict[str, Any]:
        request = SetSessionModeRequest.model_validate(params)
        await self.provider.set_session_mode(request.session_id, request.mode_id)
        return {}

    async def _cancel(self, params: Any) -> None:
        request = CancelNotification.model_validate(params)
        await self.provider.cancel_session(request.session_id)

    async def _close(self, params: Any) -> dict[str, Any]:
        request = SessionParams.model_validate(params)
        await self.provider.close_session(request.session_id)
        return {}

    async def _models(self, params: Any) -> dict[str, Any]:
        session = self.provider.get_session(SessionParams.model_validate(params).session_id)
        models = await session.get_available_models()
        return {
            "models": [model.model_dump(mode="json", by_alias=True, exclude_none=True) for model in models],
            "currentModelId": session.model_id,
        }

    async def _modes(self, params: Any) -> dict[str, Any]:
        session = self.provider.get_session(SessionParams.model_validate(params).session_id)
        modes = await session.get_available_modes()
        return {
            "modes": [mode.model_dump(mode="json", by_alias=True, exclude_none=True) for mode in modes],
            "currentModeId": session.permission_mode,
        }

    async def _commands(self, params: Any) -> dict[str, Any]:
        session = self.provider.get_session(SessionParams.model_validate(params).session_id)
        commands = await session.get_available_slash_commands()
        return {"commands": [command.model_dump(mode="json", by_alias=True, exclude_none=True) for command in commands]}

    def _session_response(self, session_id: str, mode_id: str) -> NewSessionResponse:
        modes = self.provider.estimate_modes()
        mode_state = SessionModeState(available_modes=modes, current_mode_id=mode_id) if modes else None
        return NewSessionResponse(session_id=session_id, modes=mode_state)
