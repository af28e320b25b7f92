"""Claude Code binding: capability set, sessions and the provider facade."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable

from acp.helpers import ContentBlock
from acp.schema import AvailableCommand, ModelInfo, SessionMode
from claude_agent_sdk import ClaudeAgentOptions
from claude_agent_sdk.types import (
    PermissionResultAllow,
    PermissionResultDeny,
    PermissionRuleValue,
    PermissionUpdate,
    ToolPermissionContext,
)

from code_cli_sdk.claude.backend import ClaudeBackend, log_stderr
from code_cli_sdk.claude.prompt import prompt_to_claude
from code_cli_sdk.claude.tools import ClaudeToolTable
from code_cli_sdk.claude.translator import ClaudeEventTranslator
from code_cli_sdk.config import ProviderOptions
from code_cli_sdk.core import capability as cap
from code_cli_sdk.core.capability import Capability
from code_cli_sdk.core.handler import EventHandler
from code_cli_sdk.core.permissions import PermissionArbitrator
from code_cli_sdk.core.provider import BaseProvider
from code_cli_sdk.core.session import BaseSession, Step
from code_cli_sdk.core.types import PermissionDecision
from code_cli_sdk.log_utils import log_event

logger = logging.getLogger(__name__)

CLAUDE_CAPABILITY = Capability.of(
    session=[cap.SESSION_RESUME, cap.SESSION_SET_MODEL, cap.SESSION_SET_MODE, cap.SESSION_CANCEL],
    utils=[cap.UTILS_TOKEN_USAGE],
    prompt=[cap.PROMPT_SYSTEM_PROMPT, cap.PROMPT_TEXT, cap.PROMPT_IMAGE],
    agent=["agent/plan"],
)

ESTIMATE_MODELS = [
    ModelInfo(
        model_id="default",
        name="Default (recommended)",
        description="Use the default model (currently Sonnet 4.5) · $3/$15 per Mtok",
    ),
    ModelInfo(model_id="opus", name="Opus", description="Opus 4.5 · Most capable for complex work · $5/$25 per Mtok"),
    ModelInfo(model_id="haiku", name="Haiku", description="Haiku 4.5 · Fastest for quick answers · $1/$5 per Mtok"),
]

ESTIMATE_MODES = [
    SessionMode(id="default", name="Default", description="Standard behavior, prompts for dangerous operations"),
    SessionMode(id="acceptEdits", name="Accept Edits", description="Auto-accept file edit operations"),
    SessionMode(id="plan", name="Plan Mode", description="Planning mode, no actual tool execution"),
    SessionMode(id="dontAsk", name="Don't Ask", description="Don't prompt for permissions, deny if not pre-approved"),
    SessionMode(id="bypassPermissions", name="Bypass Permissions", description="Run every tool without asking"),
]

# Commands that only make sense inside Claude Code's own terminal UI.
UNSUPPORTED_COMMANDS = frozenset(
    {"context", "cost", "login", "logout", "output-style:new", "release-notes", "todos"}
)
MCP_COMMAND_SUFFIX = " (MCP)"

CLAUDE_CODE_PRESET = {"type": "preset", "preset": "claude_code"}
SETTING_SOURCES = ["user", "project", "local"]

BackendFactory = Callable[[ClaudeAgentOptions], ClaudeBackend]


def build_agent_options(
    options: ProviderOptions,
    *,
    session_id: str,
    cwd: str | None,
    resume: bool,
    can_use_tool: Any,
) -> ClaudeAgentOptions:
    """Translate provider options into SDK options for one session."""

    system_prompt: Any = dict(CLAUDE_CODE_PRESET)
    if isinstance(options.system_prompt, str):
        system_prompt = options.system_prompt
    elif isinstance(options.system_prompt, dict) and options.system_prompt.get("append"):
        system_prompt["append"] = options.system_prompt["append"]

    return ClaudeAgentOptions(
        system_prompt=system_prompt,
        permission_mode=options.mode,
        cwd=str(options.resolve_workdir(cwd)),
        model=None if options.model in (None, "default") else options.model,
        include_partial_messages=True,
        setting_sources=list(SETTING_SOURCES),
        can_use_tool=can_use_tool,
        resume=session_id if resume else None,
        extra_args={} if resume else {"session-id": session_id},
        cli_path=options.executable,
        env=dict(options.env),
        stderr=log_stderr,
    )


def to_sdk_permission(decision: PermissionDecision) -> PermissionResultAllow | PermissionResultDeny:
    if not decision.allowed:
        return PermissionResultDeny(message=decision.message or "", interrupt=decision.interrupt)
    updates: list[PermissionUpdate] = []
    if decision.rules:
        updates.append(
            PermissionUpdate(
                type="addRules",
                rules=[PermissionRuleValue(tool_name=name) for name in decision.rules],
                behavior="allow",
                destination="session",
            )
        )
    if decision.mode:
        updates.append(PermissionUpdate(type="setMode", mode=decision.mode, destination="session"))
    return PermissionResultAllow(updated_input=decision.updated_input, updated_permissions=updates or None)


class ClaudeCodeSession(BaseSession):
    translator: ClaudeEventTranslator

    def to_backend(self, blocks: list[ContentBlock]) -> dict[str, Any]:
        return prompt_to_claude(blocks, self.id)

    def is_terminal(self, event: Any) -> bool:
        return self.translator.is_terminal(event)

    def translate(self, event: Any) -> Step:
        return self.translator.translate(event)

    async def get_available_slash_commands(self) -> list[AvailableCommand]:
        self._ensure_usable()
        commands = []
        for command in await self.backend.supported_commands():
            if command.name.endswith(MCP_COMMAND_SUFFIX):
                command = replace(command, name=f"mcp:{command.name[: -len(MCP_COMMAND_SUFFIX)]}")
            if command.name in UNSUPPORTED_COMMANDS:
                continue
            commands.append(self.command_to_acp(command))
        return commands


class ClaudeCodeProvider(BaseProvider[ClaudeCodeSession]):
    """Provider that runs each session in its own Claude Code process."""

    name = "claude-code"
    capabilities = CLAUDE_CAPABILITY

    def __init__(
        self,
        options: ProviderOptions,
        handler: EventHandler,
        *,
        backend_factory: BackendFactory = ClaudeBackend,
    ) -> None:
        super().__init__(options, handler)
        self.tools = ClaudeToolTable()
        self.arbitrator = PermissionArbitrator(self.tools)
        self._backend_factory = backend_factory

    def estimate_models(self) -> list[ModelInfo]:
        return list(ESTIMATE_MODELS)

    def estimate_modes(self) -> list[SessionMode]:
        return list(ESTIMATE_MODES)

    async def open_session(self, session_id: str, *, cwd: str | None, resume: bool) -> ClaudeCodeSession:
        agent_options = build_agent_options(
            self.options,
            session_id=session_id,
            cwd=cwd,
            resume=resume,
            can_use_tool=self._permission_callback(session_id),
        )
        backend = self._backend_factory(agent_options)
        await backend.connect()
        return ClaudeCodeSession(
            session_id,
            provider=self,
            backend=backend,
            handler=self.handler,
            translator=ClaudeEventTranslator(
                self.tools,
                report_usage=cap.UTILS_TOKEN_USAGE in self.capabilities.utils,
            ),
            permission_mode=self.options.mode,
            model_id=self.options.model,
            on_close=self._forget,
        )

    def _permission_callback(self, session_id: str) -> Any:
        async def can_use_tool(
            tool_name: str, tool_input: dict[str, Any], context: ToolPermissionContext
        ) -> PermissionResultAllow | PermissionResultDeny:
            session = self.sessions.get(session_id)
            if session is None:
                log_event(logger, "permission.session_missing", level=logging.WARNING, session_id=session_id)
                return PermissionResultDeny(message="Session not found", interrupt=True)
            decision = await self.arbitrator.arbitrate(
                session,
                tool_name,
                tool_input,
                tool_use_id=getattr(context, "tool_use_id", None),
                signal=session.cancel_event,
            )
            return to_sdk_permission(decision)

        return can_use_tool
