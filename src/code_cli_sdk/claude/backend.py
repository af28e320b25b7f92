"""Backend handle over ``ClaudeSDKClient`` in streaming-input mode."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Callable

from acp.schema import ModelInfo
from claude_agent_sdk import ClaudeAgentOptions, ClaudeSDKClient, CLIConnectionError, ProcessError

from code_cli_sdk.core.backend import Pushable
from code_cli_sdk.core.errors import BackendUnavailableError
from code_cli_sdk.core.types import SlashCommand
from code_cli_sdk.log_utils import log_event

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ClaudeAgentOptions], Any]


class ClaudeBackend:
    """One Claude Code process per session.

    User messages are pushed onto a :class:`Pushable` the SDK consumes as its
    input stream; ``events()`` reads the messages of one turn up to and
    including the result.
    """

    def __init__(self, options: ClaudeAgentOptions, *, client_factory: ClientFactory = ClaudeSDKClient) -> None:
        self.options = options
        self._client = client_factory(options)
        self._input: Pushable[dict[str, Any]] = Pushable()
        self._server_info: dict[str, Any] | None = None
        self._closed = False

    async def connect(self) -> None:
        try:
            await self._client.connect(self._input)
        except (CLIConnectionError, ProcessError) as exc:
            raise BackendUnavailableError(str(exc)) from exc

    async def push(self, message: dict[str, Any]) -> None:
        if self._closed:
            raise BackendUnavailableError("backend closed")
        self._input.push(message)

    async def events(self) -> AsyncIterator[Any]:
        try:
            async for message in self._client.receive_response():
                yield message
        except (CLIConnectionError, ProcessError) as exc:
            raise BackendUnavailableError(str(exc)) from exc

    async def set_model(self, model_id: str) -> None:
        await self._client.set_model(None if model_id == "default" else model_id)

    async def set_permission_mode(self, mode_id: str) -> None:
        await self._client.set_permission_mode(mode_id)

    async def interrupt(self) -> None:
        await self._client.interrupt()

    async def supported_models(self) -> list[ModelInfo]:
        info = await self._info()
        models = []
        for entry in info.get("models") or []:
            model_id = entry.get("value") or entry.get("modelId")
            if not model_id:
                continue
            models.append(
                ModelInfo(
                    model_id=model_id,
                    name=entry.get("displayName") or entry.get("name") or model_id,
                    description=entry.get("description"),
                )
            )
        return models

    async def supported_commands(self) -> list[SlashCommand]:
        info = await self._info()
        return [
            SlashCommand(
                name=entry["name"],
                description=entry.get("description") or "",
                argument_hint=entry.get("argumentHint") or None,
            )
            for entry in info.get("commands") or []
            if entry.get("name")
        ]

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._input.end()
        await self._client.disconnect()

    async def _info(self) -> dict[str, Any]:
        if self._server_info is None:
            self._server_info = await self._client.get_server_info() or {}
        return self._server_info


def log_stderr(line: str) -> None:
    log_event(logger, "claude.stderr", level=logging.DEBUG, line=line.rstrip())
