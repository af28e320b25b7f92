"""Translation of claude_agent_sdk messages into session updates and stop reasons."""

from __future__ import annotations

import logging
from typing import Any, Callable

from acp import RequestError
from claude_agent_sdk.types import (
    AssistantMessage,
    ResultMessage,
    StreamEvent,
    SystemMessage,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    UserMessage,
)

from code_cli_sdk.claude.tools import ClaudeToolTable
from code_cli_sdk.core.session import Step
from code_cli_sdk.core.translator import EventTranslator, ToolTable
from code_cli_sdk.core.types import ModelUsage, UsageUpdate
from code_cli_sdk.log_utils import log_event

logger = logging.getLogger(__name__)

LOGIN_HINT = "Please run /login"
SYNTHETIC_MODEL = "<synthetic>"

QUIET_SYSTEM_SUBTYPES = frozenset({"init", "compact_boundary", "hook_response", "status"})
MAX_TURN_SUBTYPES = frozenset({"error_max_turns", "error_max_budget_usd", "error_max_structured_output_retries"})
TOOL_USE_TYPES = frozenset({"tool_use", "server_tool_use", "mcp_tool_use"})
TOOL_RESULT_TYPES = frozenset(
    {
        "tool_result",
        "tool_search_tool_result",
        "web_fetch_tool_result",
        "web_search_tool_result",
        "code_execution_tool_result",
        "bash_code_execution_tool_result",
        "text_editor_code_execution_tool_result",
        "mcp_tool_result",
    }
)
SILENT_BLOCK_TYPES = frozenset(
    {
        "document",
        "search_result",
        "redacted_thinking",
        "input_json_delta",
        "citations_delta",
        "signature_delta",
        "container_upload",
    }
)
SILENT_STREAM_EVENTS = frozenset({"message_start", "message_delta", "message_stop", "content_block_stop"})

LoginDetector = Callable[[str], bool]


def login_required(text: str) -> bool:
    return LOGIN_HINT in text


class ClaudeEventTranslator(EventTranslator):
    """Maps one turn's SDK messages to updates.

    With ``streaming`` on, assistant text and thinking arrive as stream
    events, so the copies inside complete assistant messages are skipped.
    """

    def __init__(
        self,
        tools: ToolTable | None = None,
        *,
        streaming: bool = True,
        report_usage: bool = True,
        detect_login: LoginDetector = login_required,
    ) -> None:
        super().__init__(tools or ClaudeToolTable())
        self.streaming = streaming
        self.report_usage = report_usage
        self.detect_login = detect_login

    def is_terminal(self, message: Any) -> bool:
        return isinstance(message, ResultMessage)

    def translate(self, message: Any) -> Step:
        if isinstance(message, StreamEvent):
            return Step(self._stream_event(message.event))
        if isinstance(message, AssistantMessage):
            return Step(self._assistant(message))
        if isinstance(message, UserMessage):
            return Step(self._user(message))
        if isinstance(message, SystemMessage):
            if message.subtype not in QUIET_SYSTEM_SUBTYPES:
                self.unhandled("system", subtype=message.subtype)
            return Step()
        if isinstance(message, ResultMessage):
            return self._result(message)
        return Step(self.unhandled(type(message).__name__))

    def _result(self, message: ResultMessage) -> Step:
        subtype = message.subtype
        detail = self._error_detail(message)
        if subtype == "success":
            if self.detect_login(message.result or ""):
                raise RequestError.auth_required({"details": message.result})
            if message.is_error:
                raise RequestError.internal_error({"details": message.result or subtype})
            updates = [self.usage_update(message)] if self.report_usage else []
            return Step(updates, "end_turn")
        if subtype == "error_during_execution":
            if message.is_error:
                raise RequestError.internal_error({"details": detail})
            return Step(stop_reason="end_turn")
        if subtype in MAX_TURN_SUBTYPES:
            if message.is_error:
                raise RequestError.internal_error({"details": detail})
            return Step(stop_reason="max_turn_requests")
        return Step(self.unhandled("result", subtype=subtype))

    def usage_update(self, message: ResultMessage) -> UsageUpdate:
        usage = message.usage or {}
        model_usage = getattr(message, "model_usage", None) or {}
        return UsageUpdate(
            input_tokens=int(usage.get("input_tokens") or 0),
            output_tokens=int(usage.get("output_tokens") or 0),
            cache_read_input_tokens=int(usage.get("cache_read_input_tokens") or 0),
            cache_creation_input_tokens=int(usage.get("cache_creation_input_tokens") or 0),
            total_cost_usd=message.total_cost_usd,
            model_usage={name: ModelUsage.model_validate(data) for name, data in model_usage.items()},
        )

    def _stream_event(self, event: dict[str, Any]) -> list[Any]:
        kind = event.get("type")
        if kind == "content_block_start":
            return self._block(event.get("content_block") or {})
        if kind == "content_block_delta":
            return self._block(event.get("delta") or {})
        if kind in SILENT_STREAM_EVENTS:
            return []
        return self.unhandled("stream_event", event_type=kind)

    def _block(self, block: dict[str, Any], role: str = "assistant") -> list[Any]:
        kind = block.get("type")
        if kind in ("text", "text_delta"):
            text = block.get("text") or ""
            return [self.text_chunk(text, role=role)] if text else []
        if kind in ("thinking", "thinking_delta"):
            thinking = block.get("thinking") or ""
            return [self.thought_chunk(thinking)] if thinking else []
        if kind == "image":
            source = block.get("source") or {}
            if source.get("type") == "base64":
                return [self.image_chunk(data=source.get("data", ""), mime_type=source.get("media_type", ""), role=role)]
            return [self.image_chunk(uri=source.get("url"), role=role)]
        if kind in TOOL_USE_TYPES:
            return self.tool_use(str(block.get("id")), str(block.get("name") or ""), block.get("input") or {})
        if kind in TOOL_RESULT_TYPES:
            return self.tool_result(
                str(block.get("tool_use_id")), block.get("content"), is_error=bool(block.get("is_error"))
            )
        if kind in SILENT_BLOCK_TYPES:
            return []
        return self.unhandled("content_block", block_type=kind)

    def _assistant(self, message: AssistantMessage) -> list[Any]:
        content = message.content
        if (
            message.model == SYNTHETIC_MODEL
            and len(content) == 1
            and isinstance(content[0], TextBlock)
            and self.detect_login(content[0].text)
        ):
            raise RequestError.auth_required({"details": content[0].text})

        updates: list[Any] = []
        for block in content:
            if isinstance(block, (TextBlock, ThinkingBlock)) and self.streaming:
                continue
            updates.extend(self._sdk_block(block, "assistant"))
        return updates

    def _user(self, message: UserMessage) -> list[Any]:
        content = message.content
        if isinstance(content, str):
            if "<local-command-stdout>" in content:
                log_event(logger, "claude.local_command.stdout", output=content)
            elif "<local-command-stderr>" in content:
                log_event(logger, "claude.local_command.stderr", level=logging.ERROR, output=content)
            return []
        if len(content) == 1 and isinstance(content[0], TextBlock):
            return []
        updates: list[Any] = []
        for block in content:
            updates.extend(self._sdk_block(block, "user"))
        return updates

    def _sdk_block(self, block: Any, role: str) -> list[Any]:
        if isinstance(block, TextBlock):
            return [self.text_chunk(block.text, role=role)] if block.text else []
        if isinstance(block, ThinkingBlock):
            return [self.thought_chunk(block.thinking)] if block.thinking else []
        if isinstance(block, ToolUseBlock):
            return self.tool_use(block.id, block.name, block.input)
        if isinstance(block, ToolResultBlock):
            return self.tool_result(block.tool_use_id, block.content, is_error=bool(block.is_error))
        if isinstance(block, dict):
            return self._block(block, role)
        return self.unhandled("content_block", block_type=type(block).__name__)

    @staticmethod
    def _error_detail(message: ResultMessage) -> str:
        errors = getattr(message, "errors", None)
        if errors:
            return ", ".join(str(error) for error in errors)
        return message.result or message.subtype
