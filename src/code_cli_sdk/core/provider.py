"""Provider facade: owns the session table of one backend binding."""

from __future__ import annotations

import logging
import uuid
from typing import Generic, TypeVar

from acp.helpers import ContentBlock, update_available_commands
from acp.schema import ModelInfo, PromptResponse, SessionMode

from code_cli_sdk.config import ProviderOptions
from code_cli_sdk.core.capability import SESSION_CANCEL, SESSION_RESUME, SESSION_SET_MODE, SESSION_SET_MODEL, Capability
from code_cli_sdk.core.errors import SessionNotFoundError
from code_cli_sdk.core.handler import EventHandler
from code_cli_sdk.core.session import BaseSession
from code_cli_sdk.log_utils import log_event

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=BaseSession)


class BaseProvider(Generic[S]):
    """Entry point clients talk to.

    Capability checks run here before any backend call; sessions repeat them
    for callers that hold a session object directly.
    """

    name: str = "provider"
    capabilities: Capability = Capability()

    def __init__(self, options: ProviderOptions, handler: EventHandler) -> None:
        self.options = options
        self.handler = handler
        self.sessions: dict[str, S] = {}
        self._closed_ids: set[str] = set()

    def estimate_models(self) -> list[ModelInfo]:
        return []

    def estimate_modes(self) -> list[SessionMode]:
        return []

    async def open_session(self, session_id: str, *, cwd: str | None, resume: bool) -> S:
        """Create the backend handle and session object; implemented by bindings."""

        raise NotImplementedError

    async def new_session(self, cwd: str | None = None) -> S:
        session_id = str(uuid.uuid4())
        session = await self.open_session(session_id, cwd=cwd, resume=False)
        self._register(session)
        log_event(logger, "provider.session.new", provider=self.name, session_id=session_id)
        await self._advertise_commands(session)
        return session

    async def resume_session(self, session_id: str, cwd: str | None = None) -> S:
        self.capabilities.require(SESSION_RESUME)
        existing = self.sessions.get(session_id)
        if existing is not None:
            return existing
        session = await self.open_session(session_id, cwd=cwd, resume=True)
        self._closed_ids.discard(session_id)
        self._register(session)
        log_event(logger, "provider.session.resume", provider=self.name, session_id=session_id)
        await self._advertise_commands(session)
        return session

    def get_session(self, session_id: str) -> S:
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def prompt(self, session_id: str, blocks: list[ContentBlock]) -> PromptResponse:
        return await self.get_session(session_id).prompt(blocks)

    async def set_session_model(self, session_id: str, model_id: str) -> None:
        self.capabilities.require(SESSION_SET_MODEL)
        await self.get_session(session_id).set_model(model_id)

    async def set_session_mode(self, session_id: str, mode_id: str) -> None:
        self.capabilities.require(SESSION_SET_MODE)
        await self.get_session(session_id).set_mode(mode_id)

    async def cancel_session(self, session_id: str) -> None:
        self.capabilities.require(SESSION_CANCEL)
        await self.get_session(session_id).cancel()

    async def close_session(self, session_id: str) -> None:
        if session_id in self._closed_ids:
            return
        await self.get_session(session_id).close()

    async def close(self) -> None:
        for session in list(self.sessions.values()):
            await session.close()

    async def _advertise_commands(self, session: S) -> None:
        try:
            commands = await session.get_available_slash_commands()
        except Exception as exc:  # noqa: BLE001
            log_event(logger, "provider.commands.unavailable", level=logging.WARNING, session_id=session.id, error=str(exc))
            return
        await session.emitter.emit(update_available_commands(commands))

    def _register(self, session: S) -> None:
        self.sessions[session.id] = session

    def _forget(self, session_id: str) -> None:
        if self.sessions.pop(session_id, None) is not None:
            self._closed_ids.add(session_id)
