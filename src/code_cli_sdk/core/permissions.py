"""Permission arbitration between the backend and the client."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Protocol

from acp.helpers import text_block, tool_content
from acp.schema import (
    AllowedOutcome,
    PermissionOption,
    RequestPermissionRequest,
    RequestPermissionResponse,
    ToolCallUpdate,
)

from code_cli_sdk.core.handler import UpdateEmitter
from code_cli_sdk.core.translator import ToolTable
from code_cli_sdk.core.types import PermissionDecision
from code_cli_sdk.log_utils import log_context, log_event

logger = logging.getLogger(__name__)

BYPASS_MODE = "bypassPermissions"
ACCEPT_EDITS_MODE = "acceptEdits"
DEFAULT_MODE = "default"
PLAN_MODE = "plan"

TOOL_OPTIONS = [
    PermissionOption(option_id="allow_always", name="Always Allow", kind="allow_always"),
    PermissionOption(option_id="allow_once", name="Allow", kind="allow_once"),
    PermissionOption(option_id="reject_once", name="Reject", kind="reject_once"),
]

MODE_EXIT_OPTIONS = [
    PermissionOption(option_id=ACCEPT_EDITS_MODE, name="Yes, and auto-accept edits", kind="allow_always"),
    PermissionOption(option_id=DEFAULT_MODE, name="Yes, and manually approve edits", kind="allow_once"),
    PermissionOption(option_id=PLAN_MODE, name="No, keep planning", kind="reject_once"),
]

REFUSED_MESSAGE = "User refused permission to run tool"
ABORTED_MESSAGE = "Tool use aborted"
KEEP_PLANNING_MESSAGE = "User rejected request to exit plan mode."


class PermissionSubject(Protocol):
    """The session-side state a permission decision reads and updates."""

    id: str
    permission_mode: str
    allowed_tools: set[str]
    emitter: UpdateEmitter

    async def apply_mode(self, mode_id: str) -> None: ...


class PermissionArbitrator:
    """Decides whether the backend may run a tool.

    Mode and session rules are consulted first; otherwise the client is asked.
    Every failure path denies and interrupts the turn.
    """

    def __init__(self, tools: ToolTable) -> None:
        self.tools = tools

    async def arbitrate(
        self,
        subject: PermissionSubject,
        tool_name: str,
        tool_input: dict[str, Any],
        *,
        tool_use_id: str | None = None,
        signal: asyncio.Event | None = None,
    ) -> PermissionDecision:
        tool_call_id = tool_use_id or f"perm-{uuid.uuid4().hex[:12]}"
        with log_context(session_id=subject.id, tool_call_id=tool_call_id, tool=tool_name):
            try:
                if tool_name == self.tools.mode_exit_tool:
                    return await self._exit_mode(subject, tool_name, tool_input, tool_call_id, signal)
                return await self._arbitrate_tool(subject, tool_name, tool_input, tool_call_id, signal)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                log_event(logger, "permission.error", level=logging.WARNING, error=str(exc))
                return PermissionDecision.deny(f"Permission request failed: {exc}", interrupt=True)

    async def _arbitrate_tool(
        self,
        subject: PermissionSubject,
        tool_name: str,
        tool_input: dict[str, Any],
        tool_call_id: str,
        signal: asyncio.Event | None,
    ) -> PermissionDecision:
        mode = subject.permission_mode
        if mode == BYPASS_MODE or (mode == ACCEPT_EDITS_MODE and tool_name in self.tools.edit_tools):
            log_event(logger, "permission.granted", reason="mode", mode=mode)
            return PermissionDecision.allow(tool_input, rules=[tool_name])
        if tool_name in subject.allowed_tools:
            log_event(logger, "permission.granted", reason="session_rule")
            return PermissionDecision.allow(tool_input)

        request = self._build_request(subject.id, tool_call_id, tool_name, tool_input, TOOL_OPTIONS)
        log_event(logger, "permission.request")
        option_id = await self._await_choice(subject, request, signal)
        if option_id is None:
            log_event(logger, "permission.denied", reason="cancelled")
            return PermissionDecision.deny(ABORTED_MESSAGE, interrupt=True)
        if option_id == "allow_always":
            subject.allowed_tools.add(tool_name)
            log_event(logger, "permission.granted", reason="allow_always")
            return PermissionDecision.allow(tool_input, rules=[tool_name])
        if option_id == "allow_once":
            log_event(logger, "permission.granted", reason="allow_once")
            return PermissionDecision.allow(tool_input)
        log_event(logger, "permission.denied", reason=option_id)
        return PermissionDecision.deny(REFUSED_MESSAGE, interrupt=False)

    async def _exit_mode(
        self,
        subject: PermissionSubject,
        tool_name: str,
        tool_input: dict[str, Any],
        tool_call_id: str,
        signal: asyncio.Event | None,
    ) -> PermissionDecision:
        request = self._build_request(subject.id, tool_call_id, tool_name, tool_input, MODE_EXIT_OPTIONS)
        log_event(logger, "permission.request", kind="mode_exit")
        option_id = await self._await_choice(subject, request, signal)
        if option_id in (ACCEPT_EDITS_MODE, DEFAULT_MODE):
            await subject.apply_mode(option_id)
            log_event(logger, "permission.granted", reason="mode_exit", mode=option_id)
            return PermissionDecision.allow(tool_input, mode=option_id)
        log_event(logger, "permission.denied", reason=option_id or "cancelled", kind="mode_exit")
        return PermissionDecision.deny(KEEP_PLANNING_MESSAGE, interrupt=True)

    def _build_request(
        self,
        session_id: str,
        tool_call_id: str,
        tool_name: str,
        tool_input: dict[str, Any],
        options: list[PermissionOption],
    ) -> RequestPermissionRequest:
        info = self.tools.info(tool_name, tool_input)
        tool_call = ToolCallUpdate(
            tool_call_id=tool_call_id,
            title=info.title,
            kind=info.kind,
            status="pending",
            content=info.content or [tool_content(text_block(info.title))],
            locations=info.locations or None,
            raw_input=tool_input,
        )
        return RequestPermissionRequest(session_id=session_id, tool_call=tool_call, options=list(options))

    async def _await_choice(
        self,
        subject: PermissionSubject,
        request: RequestPermissionRequest,
        signal: asyncio.Event | None,
    ) -> str | None:
        """Return the selected option id, or None when cancelled or interrupted.

        Only a cancellation of the calling task propagates; a client request
        that ends cancelled counts as an aborted choice.
        """

        if signal is not None and signal.is_set():
            return None
        ask = asyncio.ensure_future(subject.emitter.request_permission(request))
        waiters: set[asyncio.Future[Any]] = {ask}
        interrupted = None
        if signal is not None:
            interrupted = asyncio.ensure_future(signal.wait())
            waiters.add(interrupted)
        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if interrupted is not None:
                interrupted.cancel()
            if not ask.done():
                ask.cancel()
        if ask.cancelled():
            log_event(logger, "permission.request.cancelled")
            return None
        return _selected_option(ask.result(), request.options)


def _selected_option(response: RequestPermissionResponse | None, options: list[PermissionOption]) -> str | None:
    outcome = getattr(response, "outcome", None)
    if not isinstance(outcome, AllowedOutcome):
        return None
    offered = {option.option_id for option in options}
    if outcome.option_id not in offered:
        log_event(logger, "permission.option.not_offered", level=logging.WARNING, option_id=outcome.option_id)
        return "reject_once" if "reject_once" in offered else PLAN_MODE
    return outcome.option_id
