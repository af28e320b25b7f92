"""Session lifecycle: one prompt at a time, cooperative cancel, idempotent close."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable

from acp import RequestError
from acp.helpers import ContentBlock, update_current_mode
from acp.schema import (
    AvailableCommand,
    AvailableCommandInput,
    ModelInfo,
    PromptResponse,
    SessionMode,
    UnstructuredCommandInput,
)

from code_cli_sdk.core.backend import Backend
from code_cli_sdk.core.capability import (
    SESSION_CANCEL,
    SESSION_PROMPT,
    SESSION_SET_MODE,
    SESSION_SET_MODEL,
    Capability,
)
from code_cli_sdk.core.errors import (
    BackendUnavailableError,
    PromptInFlightError,
    SessionNotFoundError,
    SessionUnusableError,
    error_detail,
)
from code_cli_sdk.core.handler import EventHandler, UpdateEmitter
from code_cli_sdk.core.translator import EventTranslator
from code_cli_sdk.core.types import SlashCommand, StopReason
from code_cli_sdk.log_utils import log_context, log_event

if TYPE_CHECKING:
    from code_cli_sdk.core.provider import BaseProvider

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    CREATED = "created"
    ACTIVE = "active"
    CANCELLING = "cancelling"
    CLOSED = "closed"


@dataclass
class Step:
    """What one backend event contributes to a turn.

    ``stop_reason`` is set only for the terminal event.
    """

    updates: list[Any] = field(default_factory=list)
    stop_reason: StopReason | None = None


class BaseSession:
    """A conversation bound to one backend handle.

    Bindings subclass this and implement :meth:`to_backend`,
    :meth:`is_terminal` and :meth:`translate`.
    """

    def __init__(
        self,
        session_id: str,
        *,
        provider: "BaseProvider",
        backend: Backend,
        handler: EventHandler,
        translator: EventTranslator,
        permission_mode: str = "default",
        model_id: str | None = None,
        on_close: Callable[[str], None] | None = None,
    ) -> None:
        self.id = session_id
        self.provider = provider
        self.backend = backend
        self.emitter = UpdateEmitter(handler, session_id)
        self.translator = translator
        self.permission_mode = permission_mode
        self.model_id = model_id
        self.allowed_tools: set[str] = set()
        self.state = SessionState.CREATED
        self.cancelled = False
        self.cancel_event = asyncio.Event()
        self._on_close = on_close
        self._in_flight = False
        self._interrupted = False
        self._broken: str | None = None

    @property
    def capability(self) -> Capability:
        return self.provider.capabilities

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def to_backend(self, blocks: list[ContentBlock]) -> Any:
        raise NotImplementedError

    def is_terminal(self, event: Any) -> bool:
        raise NotImplementedError

    def translate(self, event: Any) -> Step:
        raise NotImplementedError

    async def prompt(self, blocks: list[ContentBlock]) -> PromptResponse:
        self._ensure_usable()
        self.capability.require(SESSION_PROMPT)
        self.capability.require_content(blocks)
        if self._in_flight:
            raise PromptInFlightError(self.id)

        self._in_flight = True
        self.state = SessionState.ACTIVE
        with log_context(session_id=self.id):
            log_event(logger, "session.prompt.start", blocks=len(blocks))
            try:
                if self.cancelled:
                    # A cancel that arrived before this turn started.
                    log_event(logger, "session.prompt.cancelled_early")
                    stop_reason: StopReason = "cancelled"
                else:
                    stop_reason = await self._run_turn(blocks)
            except BackendUnavailableError as exc:
                self._broken = str(exc) or "backend unavailable"
                log_event(logger, "session.backend.lost", level=logging.ERROR, error=self._broken)
                await self.emitter.error(exc)
                raise RequestError.internal_error(error_detail(exc)) from exc
            finally:
                self._in_flight = False
                self._interrupted = False
                self.cancelled = False
                self.cancel_event.clear()
                if self.state is SessionState.CANCELLING:
                    self.state = SessionState.ACTIVE
            log_event(logger, "session.prompt.end", stop_reason=stop_reason)
        return PromptResponse(stop_reason=stop_reason)

    async def _run_turn(self, blocks: list[ContentBlock]) -> StopReason:
        await self.backend.push(self.to_backend(blocks))
        events = self.backend.events()
        async for event in events:
            if self.cancelled:
                if self.is_terminal(event):
                    return "cancelled"
                continue
            try:
                step = self.translate(event)
                for update in step.updates:
                    if self.cancelled:
                        break
                    await self.emitter.emit(update)
            except Exception:
                if not self.is_terminal(event):
                    await self._drain(events)
                raise
            if self.cancelled:
                if step.stop_reason is not None:
                    return "cancelled"
                continue
            if step.stop_reason is not None:
                return step.stop_reason
        if self.cancelled:
            return "cancelled"
        raise RequestError.internal_error({"details": "stream ended without a result"})

    async def _drain(self, events: AsyncIterator[Any]) -> None:
        """Consume the rest of an aborted turn so the next prompt reads only its own events."""

        drained = 0
        async for event in events:
            drained += 1
            if self.is_terminal(event):
                break
        log_event(logger, "session.turn.drained", level=logging.WARNING, events=drained)

    async def set_model(self, model_id: str) -> None:
        self._ensure_usable()
        self.capability.require(SESSION_SET_MODEL)
        known = {model.model_id for model in await self._models()}
        if model_id not in known:
            raise RequestError.invalid_params({"modelId": model_id, "available": sorted(known)})
        await self.backend.set_model(model_id)
        self.model_id = model_id
        log_event(logger, "session.model.set", session_id=self.id, model=model_id)

    async def set_mode(self, mode_id: str) -> None:
        self._ensure_usable()
        self.capability.require(SESSION_SET_MODE)
        known = {mode.id for mode in await self.get_available_modes()}
        if mode_id not in known:
            raise RequestError.invalid_params({"modeId": mode_id, "available": sorted(known)})
        await self.backend.set_permission_mode(mode_id)
        await self.apply_mode(mode_id)

    async def apply_mode(self, mode_id: str) -> None:
        """Record a mode change already in effect on the backend and tell the client."""

        self.permission_mode = mode_id
        log_event(logger, "session.mode.set", session_id=self.id, mode=mode_id)
        await self.emitter.emit(update_current_mode(mode_id))

    async def cancel(self) -> None:
        self._ensure_open()
        self.capability.require(SESSION_CANCEL)
        await self._cancel()

    async def _cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        self.cancel_event.set()
        log_event(logger, "session.cancel", session_id=self.id, in_flight=self._in_flight)
        if not self._in_flight or self._interrupted or self._broken:
            return
        if self.state is not SessionState.CLOSED:
            self.state = SessionState.CANCELLING
        self._interrupted = True
        try:
            await self.backend.interrupt()
        except Exception as exc:  # noqa: BLE001
            log_event(logger, "session.interrupt.failed", level=logging.WARNING, session_id=self.id, error=str(exc))

    async def close(self) -> None:
        if self.state is SessionState.CLOSED:
            return
        interrupt = self._in_flight and SESSION_CANCEL in self.capability.session
        # Marked closed before the first await so concurrent closes release once.
        self.state = SessionState.CLOSED
        if self._on_close is not None:
            self._on_close(self.id)
        if interrupt:
            await self._cancel()
        else:
            self.cancelled = True
            self.cancel_event.set()
        try:
            await self.backend.close()
        except Exception as exc:  # noqa: BLE001
            log_event(logger, "session.close.failed", level=logging.WARNING, session_id=self.id, error=str(exc))
        log_event(logger, "session.closed", session_id=self.id)

    async def get_available_models(self) -> list[ModelInfo]:
        self._ensure_usable()
        models = await self._models()
        if self.model_id is None and models:
            await self.backend.set_model(models[0].model_id)
            self.model_id = models[0].model_id
        return models

    async def get_available_modes(self) -> list[SessionMode]:
        self._ensure_usable()
        return self.provider.estimate_modes()

    async def get_available_slash_commands(self) -> list[AvailableCommand]:
        self._ensure_usable()
        return [self.command_to_acp(command) for command in await self.backend.supported_commands()]

    def command_to_acp(self, command: SlashCommand) -> AvailableCommand:
        command_input = None
        if command.argument_hint:
            command_input = AvailableCommandInput(root=UnstructuredCommandInput(hint=command.argument_hint))
        return AvailableCommand(name=command.name, description=command.description or "", input=command_input)

    async def _models(self) -> list[ModelInfo]:
        models = await self.backend.supported_models()
        return list(models) if models else self.provider.estimate_models()

    def _ensure_open(self) -> None:
        if self.state is SessionState.CLOSED:
            raise SessionNotFoundError(self.id)

    def _ensure_usable(self) -> None:
        self._ensure_open()
        if self._broken is not None:
            raise SessionUnusableError(self.id, self._broken)
