from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest
from acp import RequestError, text_block
from acp.helpers import update_agent_message
from acp.schema import PermissionOption, RequestPermissionRequest, ToolCallUpdate

from code_cli_sdk.core.framing import NdJsonStream
from code_cli_sdk.core.server import ProviderServer
from code_cli_sdk.core.session import Step
from code_cli_sdk.core.types import UsageUpdate
from tests.utils import PAUSE, FakeBackend, ScriptedProvider


class _Pipe:
    def __init__(self, reader: asyncio.StreamReader) -> None:
        self.reader = reader

    def write(self, data: bytes) -> None:
        self.reader.feed_data(data)

    async def drain(self) -> None:
        return None


class _Client:
    """Test-side peer: writes requests, reads responses and notifications."""

    def __init__(self, *backends: FakeBackend) -> None:
        self.inbound = asyncio.StreamReader()
        self.outbound = asyncio.StreamReader()
        self.providers: list[ScriptedProvider] = []

        def factory(handler: Any) -> ScriptedProvider:
            self.providers.append(ScriptedProvider(handler, backends=list(backends)))
            return self.providers[-1]

        self.server = ProviderServer(factory, NdJsonStream(self.inbound, _Pipe(self.outbound)))
        self._ids = iter(range(1, 1000))

    def send(self, payload: dict[str, Any]) -> None:
        self.inbound.feed_data((json.dumps(payload) + "\n").encode("utf-8"))

    async def read(self) -> dict[str, Any]:
        return json.loads(await asyncio.wait_for(self.outbound.readline(), timeout=1))

    async def call(self, method: str, params: Any = None) -> tuple[dict[str, Any], list[dict[str, Any]]]:
        request_id = next(self._ids)
        self.send({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params})
        notifications = []
        while True:
            message = await self.read()
            if message.get("id") == request_id and "method" not in message:
                return message, notifications
            notifications.append(message)


@pytest.mark.asyncio
async def test_session_roundtrip_over_the_wire() -> None:
    backend = FakeBackend([Step([update_agent_message(text_block("hello"))]), Step(stop_reason="end_turn")])
    client = _Client(backend)
    serving = asyncio.create_task(client.server.serve())

    capabilities, _ = await client.call("provider/capabilities")
    created, advertised = await client.call("session/new", {"cwd": "/work"})
    session_id = created["result"]["sessionId"]
    prompted, updates = await client.call(
        "session/prompt", {"sessionId": session_id, "prompt": [{"type": "text", "text": "hi"}]}
    )
    closed, _ = await client.call("session/close", {"sessionId": session_id})

    assert capabilities["result"]["name"] == "scripted"
    assert "session/cancel" in capabilities["result"]["capabilities"]["session"]
    assert created["result"]["modes"]["currentModeId"] == "default"
    assert advertised[0]["method"] == "session/update"
    assert advertised[0]["params"]["update"]["sessionUpdate"] == "available_commands_update"
    assert client.providers[0].opened == [(session_id, "/work", False)]
    assert [note["params"]["update"]["sessionUpdate"] for note in updates] == ["agent_message_chunk"]
    assert updates[0]["params"]["sessionId"] == session_id
    assert updates[0]["params"]["update"]["content"]["text"] == "hello"
    assert prompted["result"] == {"stopReason": "end_turn"}
    assert closed["result"] == {}
    assert backend.closes == 1

    client.inbound.feed_eof()
    await serving


@pytest.mark.asyncio
async def test_protocol_errors() -> None:
    client = _Client()
    serving = asyncio.create_task(client.server.serve())

    unknown_method, _ = await client.call("session/teleport", {})
    unknown_session, _ = await client.call(
        "session/prompt", {"sessionId": "missing", "prompt": [{"type": "text", "text": "hi"}]}
    )
    bad_params, _ = await client.call("session/prompt", {"sessionId": "missing"})
    bad_model, _ = await client.call("session/set_model", {"sessionId": "missing", "modelId": "x"})

    assert unknown_method["error"]["code"] == -32601
    assert unknown_session["error"]["code"] == -32002
    assert unknown_session["error"]["data"] == {"sessionId": "missing"}
    assert bad_params["error"]["code"] == -32602
    assert bad_model["error"]["code"] == -32002

    client.inbound.feed_eof()
    await serving


@pytest.mark.asyncio
async def test_cancel_notification_stops_a_running_prompt() -> None:
    backend = FakeBackend([PAUSE, Step([update_agent_message(text_block("late"))]), Step(stop_reason="end_turn")])
    client = _Client(backend)
    serving = asyncio.create_task(client.server.serve())
    created, _ = await client.call("session/new", {})
    session_id = created["result"]["sessionId"]

    client.send(
        {
            "jsonrpc": "2.0",
            "id": 50,
            "method": "session/prompt",
            "params": {"sessionId": session_id, "prompt": [{"type": "text", "text": "work"}]},
        }
    )
    await backend.paused.wait()
    client.send({"jsonrpc": "2.0", "method": "session/cancel", "params": {"sessionId": session_id}})
    response = await client.read()

    assert response["id"] == 50
    assert response["result"] == {"stopReason": "cancelled"}
    assert backend.interrupts == 1

    client.inbound.feed_eof()
    await serving
    assert backend.closes == 1


@pytest.mark.asyncio
async def test_wire_handler_requests_permission_and_reports_errors() -> None:
    client = _Client()
    serving = asyncio.create_task(client.server.serve())
    request = RequestPermissionRequest(
        session_id="s1",
        tool_call=ToolCallUpdate(tool_call_id="t1", title="`ls`", kind="execute", status="pending"),
        options=[PermissionOption(option_id="allow_once", name="Allow", kind="allow_once")],
    )

    asking = asyncio.create_task(client.server.handler.request_permission(request))
    sent = await client.read()
    client.send(
        {"jsonrpc": "2.0", "id": sent["id"], "result": {"outcome": {"outcome": "selected", "optionId": "allow_once"}}}
    )
    response = await asking

    await client.server.handler.error("s1", RequestError.internal_error({"details": "boom"}))
    error_note = await client.read()
    await client.server.handler.usage_update("s1", UsageUpdate(input_tokens=3, total_cost_usd=0.5))
    usage_note = await client.read()

    assert sent["method"] == "session/request_permission"
    assert sent["params"]["toolCall"]["toolCallId"] == "t1"
    assert response.outcome.option_id == "allow_once"
    assert error_note == {
        "jsonrpc": "2.0",
        "method": "session/error",
        "params": {
            "message": "Internal error",
            "sessionId": "s1",
            "code": -32603,
            "data": {"details": "boom"},
        },
    }
    assert usage_note["params"]["update"]["sessionUpdate"] == "usage_update"
    assert usage_note["params"]["update"]["inputTokens"] == 3
    assert usage_note["params"]["update"]["totalCostUSD"] == 0.5

    client.inbound.feed_eof()
    await serving
