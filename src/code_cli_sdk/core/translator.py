"""Backend-neutral construction of session updates, with tool-use correlation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from acp.helpers import (
    image_block,
    start_tool_call,
    text_block,
    update_agent_message,
    update_agent_thought,
    update_plan,
    update_tool_call,
    update_user_message,
)
from acp.schema import PlanEntry, ToolCallLocation

from code_cli_sdk.core.types import ToolUse
from code_cli_sdk.log_utils import log_event

logger = logging.getLogger(__name__)

Role = Literal["assistant", "user"]


@dataclass(frozen=True)
class ToolInfo:
    """Display data for a tool call: title, kind, preview content and file locations."""

    title: str
    kind: str = "other"
    content: list[Any] = field(default_factory=list)
    locations: list[ToolCallLocation] = field(default_factory=list)


class ToolTable(Protocol):
    """Backend-specific knowledge about tool names.

    ``plan_tool`` names the tool whose input is a task list, ``mode_exit_tool``
    the tool that asks to leave planning mode, ``edit_tools`` the tools that
    only modify files.
    """

    plan_tool: str | None
    mode_exit_tool: str | None
    edit_tools: frozenset[str]

    def info(self, name: str, tool_input: dict[str, Any]) -> ToolInfo: ...

    def result_content(self, tool_use: ToolUse, content: Any, is_error: bool) -> list[Any]: ...

    def plan_entries(self, tool_input: dict[str, Any]) -> list[PlanEntry] | None: ...


class EventTranslator:
    """Turns decoded backend events into ACP session updates.

    Keeps the tool-use cache for one session: every ``tool_use`` is recorded
    by id and never evicted, so a later result can always be matched to the
    call that produced it.
    """

    def __init__(self, tools: ToolTable) -> None:
        self.tools = tools
        self.tool_uses: dict[str, ToolUse] = {}

    def text_chunk(self, text: str, *, role: Role = "assistant") -> Any:
        block = text_block(text)
        return update_agent_message(block) if role == "assistant" else update_user_message(block)

    def image_chunk(
        self,
        *,
        data: str = "",
        mime_type: str = "",
        uri: str | None = None,
        role: Role = "assistant",
    ) -> Any:
        block = image_block(data, mime_type, uri=uri)
        return update_agent_message(block) if role == "assistant" else update_user_message(block)

    def thought_chunk(self, text: str) -> Any:
        return update_agent_thought(text_block(text))

    def tool_use(self, tool_id: str, name: str, tool_input: Any) -> list[Any]:
        """Record a tool invocation and build its announcement.

        A repeated id (streamed start followed by the full message) refreshes
        the existing call instead of announcing it twice.
        """

        args = tool_input if isinstance(tool_input, dict) else {}
        seen = tool_id in self.tool_uses
        self.tool_uses[tool_id] = ToolUse(id=tool_id, name=name, input=args)

        if name == self.tools.plan_tool:
            entries = self.tools.plan_entries(args)
            return [update_plan(entries)] if entries is not None else []

        info = self.tools.info(name, args)
        if seen:
            return [
                update_tool_call(
                    tool_id,
                    title=info.title,
                    kind=info.kind,
                    content=info.content or None,
                    locations=info.locations or None,
                    raw_input=args,
                )
            ]
        return [
            start_tool_call(
                tool_id,
                info.title,
                kind=info.kind,
                status="pending",
                content=info.content or None,
                locations=info.locations or None,
                raw_input=args,
            )
        ]

    def tool_result(self, tool_id: str, content: Any, *, is_error: bool = False) -> list[Any]:
        tool_use = self.tool_uses.get(tool_id)
        if tool_use is None:
            log_event(logger, "translator.tool_result.untracked", level=logging.ERROR, tool_call_id=tool_id)
            return []
        if tool_use.name == self.tools.plan_tool:
            return []
        result_content = self.tools.result_content(tool_use, content, is_error)
        return [
            update_tool_call(
                tool_id,
                status="failed" if is_error else "completed",
                content=result_content or None,
                raw_output=_raw_output(content),
            )
        ]

    def unhandled(self, kind: str, **fields: Any) -> list[Any]:
        log_event(logger, "translator.event.unhandled", level=logging.WARNING, kind=kind, **fields)
        return []


def _raw_output(content: Any) -> Any:
    if content is None or isinstance(content, (str, int, float, bool, list, dict)):
        return content
    return str(content)
