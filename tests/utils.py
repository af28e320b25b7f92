from __future__ import annotations

import asyncio
from typing import Any, Callable

from acp import RequestPermissionResponse, text_block
from acp.helpers import plan_entry, tool_content
from acp.schema import AllowedOutcome, DeniedOutcome, ModelInfo, RequestPermissionRequest, SessionMode

from code_cli_sdk.config import ProviderOptions
from code_cli_sdk.core import capability as cap
from code_cli_sdk.core.capability import Capability
from code_cli_sdk.core.provider import BaseProvider
from code_cli_sdk.core.session import BaseSession, Step
from code_cli_sdk.core.translator import EventTranslator, ToolInfo
from code_cli_sdk.core.types import SlashCommand

# Marks a point in a scripted turn where the backend blocks until interrupted or closed.
PAUSE = object()

FULL_CAPABILITY = Capability.of(
    session=[cap.SESSION_RESUME, cap.SESSION_SET_MODEL, cap.SESSION_SET_MODE, cap.SESSION_CANCEL],
    prompt=[cap.PROMPT_TEXT, cap.PROMPT_IMAGE],
    utils=[cap.UTILS_TOKEN_USAGE],
)


class FakeBackend:
    """Scripted backend: each call to ``events()`` replays the next turn."""

    def __init__(
        self,
        *turns: list[Any],
        models: list[ModelInfo] | None = None,
        commands: list[SlashCommand] | None = None,
    ) -> None:
        self.turns = list(turns)
        self.models = list(models or [])
        self.commands = list(commands or [])
        self.pushed: list[Any] = []
        self.model_calls: list[str] = []
        self.mode_calls: list[str] = []
        self.interrupts = 0
        self.closes = 0
        self.connected = False
        self.events_error: Exception | None = None
        self.commands_error: Exception | None = None
        self.paused = asyncio.Event()
        self.resume = asyncio.Event()

    @property
    def calls(self) -> int:
        return len(self.pushed) + len(self.model_calls) + len(self.mode_calls) + self.interrupts

    async def connect(self) -> None:
        self.connected = True

    async def push(self, message: Any) -> None:
        self.pushed.append(message)

    async def events(self):
        if self.events_error is not None:
            raise self.events_error
        turn = self.turns.pop(0) if self.turns else []
        for event in turn:
            if event is PAUSE:
                self.paused.set()
                await self.resume.wait()
                continue
            yield event

    async def set_model(self, model_id: str) -> None:
        self.model_calls.append(model_id)

    async def set_permission_mode(self, mode_id: str) -> None:
        self.mode_calls.append(mode_id)

    async def interrupt(self) -> None:
        self.interrupts += 1
        self.resume.set()

    async def supported_models(self) -> list[ModelInfo]:
        return list(self.models)

    async def supported_commands(self) -> list[SlashCommand]:
        if self.commands_error is not None:
            raise self.commands_error
        return list(self.commands)

    async def close(self) -> None:
        self.closes += 1
        self.resume.set()


class StreamBackend(FakeBackend):
    """All turns read from one event stream, like a long-lived CLI process.

    ``events()`` stops after the first event ``terminal`` accepts.
    """

    def __init__(self, *events: Any, terminal: Callable[[Any], bool] | None = None) -> None:
        super().__init__()
        self.stream = list(events)
        self.terminal = terminal or (lambda event: isinstance(event, Step) and event.stop_reason is not None)

    async def events(self):
        while self.stream:
            event = self.stream.pop(0)
            yield event
            if self.terminal(event):
                return


class RecordingHandler:
    """Event handler that records every call in order.

    ``permission_choice`` is the option id returned for permission requests;
    ``None`` answers with a cancelled outcome.
    """

    def __init__(self, permission_choice: str | None = "allow_once") -> None:
        self.events: list[tuple[str, str | None, Any]] = []
        self.permission_requests: list[RequestPermissionRequest] = []
        self.permission_choice = permission_choice

    def updates(self, kind: str | None = None) -> list[Any]:
        return [update for name, _, update in self.events if kind is None or name == kind]

    async def session_update(self, session_id: str, update: Any) -> None:
        self.events.append(("session_update", session_id, update))

    async def plan_update(self, session_id: str, update: Any) -> None:
        self.events.append(("plan_update", session_id, update))

    async def title_generated(self, session_id: str, update: Any) -> None:
        self.events.append(("title_generated", session_id, update))

    async def mode_update(self, session_id: str, update: Any) -> None:
        self.events.append(("mode_update", session_id, update))

    async def available_commands_update(self, session_id: str, update: Any) -> None:
        self.events.append(("available_commands_update", session_id, update))

    async def usage_update(self, session_id: str, update: Any) -> None:
        self.events.append(("usage_update", session_id, update))

    async def error(self, session_id: str | None, error: BaseException) -> None:
        self.events.append(("error", session_id, error))

    async def request_permission(self, request: RequestPermissionRequest) -> RequestPermissionResponse:
        self.permission_requests.append(request)
        if self.permission_choice is None:
            return RequestPermissionResponse(outcome=DeniedOutcome(outcome="cancelled"))
        return RequestPermissionResponse(
            outcome=AllowedOutcome(option_id=self.permission_choice, outcome="selected")
        )


class StubTools:
    plan_tool = "plan"
    mode_exit_tool = "exit_plan"
    edit_tools = frozenset({"edit"})

    def info(self, name: str, tool_input: dict[str, Any]) -> ToolInfo:
        if name == "shell":
            return ToolInfo(f"`{tool_input.get('command', '')}`", "execute")
        if name == "exit_plan":
            return ToolInfo("Ready to code?", "switch_mode")
        return ToolInfo(name, "other")

    def result_content(self, tool_use: Any, content: Any, is_error: bool) -> list[Any]:
        return [tool_content(text_block(str(content)))] if content else []

    def plan_entries(self, tool_input: dict[str, Any]):
        steps = tool_input.get("steps")
        if not isinstance(steps, list):
            return None
        return [plan_entry(str(step)) for step in steps]


class ScriptedSession(BaseSession):
    """Session whose backend events are already :class:`Step` objects."""

    def to_backend(self, blocks: list[Any]) -> Any:
        return [getattr(block, "text", None) for block in blocks]

    def is_terminal(self, event: Any) -> bool:
        return isinstance(event, Step) and event.stop_reason is not None

    def translate(self, event: Any) -> Step:
        return event


class ScriptedProvider(BaseProvider[ScriptedSession]):
    name = "scripted"
    capabilities = FULL_CAPABILITY

    def __init__(self, handler: Any, *, backends: list[FakeBackend] | None = None, capabilities: Capability | None = None) -> None:
        super().__init__(ProviderOptions(), handler)
        self.backends = list(backends or [])
        self.opened: list[tuple[str, str | None, bool]] = []
        if capabilities is not None:
            self.capabilities = capabilities

    def estimate_models(self) -> list[ModelInfo]:
        return [ModelInfo(model_id="small", name="Small"), ModelInfo(model_id="large", name="Large")]

    def estimate_modes(self) -> list[SessionMode]:
        return [SessionMode(id="default", name="Default"), SessionMode(id="plan", name="Plan")]

    async def open_session(self, session_id: str, *, cwd: str | None, resume: bool) -> ScriptedSession:
        self.opened.append((session_id, cwd, resume))
        backend = self.backends.pop(0) if self.backends else FakeBackend()
        return ScriptedSession(
            session_id,
            provider=self,
            backend=backend,
            handler=self.handler,
            translator=EventTranslator(StubTools()),
            on_close=self._forget,
        )


def make_session(
    backend: FakeBackend | None = None,
    *,
    handler: RecordingHandler | None = None,
    capabilities: Capability | None = None,
    session_id: str = "s1",
) -> ScriptedSession:
    provider = ScriptedProvider(handler or RecordingHandler(), capabilities=capabilities)
    session = ScriptedSession(
        session_id,
        provider=provider,
        backend=backend or FakeBackend(),
        handler=provider.handler,
        translator=EventTranslator(StubTools()),
        on_close=provider._forget,
    )
    provider.sessions[session_id] = session
    return session
