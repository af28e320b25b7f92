"""JSON-RPC 2.0 connection over the NDJSON framer, built on ``acp.connection``."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

from acp import RequestError
from acp.connection import Connection as RpcConnection
from pydantic import BaseModel, ValidationError

from code_cli_sdk.core.correlation import PendingRequests
from code_cli_sdk.core.errors import error_detail
from code_cli_sdk.core.framing import JsonRpcNotification, NdJsonStream
from code_cli_sdk.log_utils import log_context, log_event

logger = logging.getLogger(__name__)

MethodHandler = Callable[[str, Any, bool], Awaitable[Any]]

# Inbound records are handed to acp as single lines; prompts with inline images can be large.
INBOX_LIMIT = 64 * 1024 * 1024
SETTLE_ROUNDS = 100


class FramedSender:
    """acp message sender that writes through :meth:`NdJsonStream.write`."""

    def __init__(self, stream: NdJsonStream) -> None:
        self._stream = stream

    async def send(self, payload: dict[str, Any]) -> None:
        await self._stream.write(payload)

    async def close(self) -> None:
        return None


class Connection:
    """Duplex JSON-RPC peer over an :class:`NdJsonStream`.

    Dispatch, request tasks and response correlation are done by
    :class:`acp.connection.Connection`. Inbound records pass the framer's
    grammar check first, so malformed records are logged and skipped before
    acp sees them; outbound messages go through the framer's writer. Pending
    outbound requests live in a :class:`PendingRequests` table.
    """

    def __init__(self, handler: MethodHandler, stream: NdJsonStream) -> None:
        self._handler = handler
        self._stream = stream
        self._pending = PendingRequests()
        self._inbox = asyncio.StreamReader(limit=INBOX_LIMIT)
        self._rpc: RpcConnection | None = None
        self._closed = False

    @property
    def pending(self) -> PendingRequests:
        return self._pending

    async def send_request(self, method: str, params: Any = None) -> Any:
        if self._closed:
            raise ConnectionError("Connection closed")
        return await self._connection().send_request(method, _dump(params))

    async def send_notification(self, method: str, params: Any = None) -> None:
        if self._closed:
            raise ConnectionError("Connection closed")
        await self._connection().send_notification(method, _dump(params))

    async def run(self) -> None:
        """Read until end of stream, then close."""

        self._connection()
        try:
            async for message, line in self._stream.records():
                if isinstance(message, JsonRpcNotification):
                    line = _without_id(line)
                self._inbox.feed_data(line.encode("utf-8") + b"\n")
        except Exception as exc:
            log_event(logger, "rpc.receive.failed", level=logging.ERROR, error=str(exc))
            self._pending.reject_all(exc)
            raise
        finally:
            self._inbox.feed_eof()
            await self._settle()
            await self.close()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._rpc is not None:
            await self._rpc.close()
        self._pending.reject_all(ConnectionError("Connection closed"))

    def _connection(self) -> RpcConnection:
        if self._rpc is None:
            self._rpc = RpcConnection(
                self._dispatch,
                self._stream.writer,
                self._inbox,
                state_store=self._pending,
                sender_factory=lambda _writer, _supervisor: FramedSender(self._stream),
            )
        return self._rpc

    async def _settle(self) -> None:
        # Give acp a few loop turns to read what was already handed over.
        for _ in range(SETTLE_ROUNDS):
            if self._inbox.at_eof():
                break
            await asyncio.sleep(0)
        await asyncio.sleep(0)

    async def _dispatch(self, method: str, params: Any, is_notification: bool) -> Any:
        with log_context(method=method):
            try:
                return _dump(await self._handler(method, params, is_notification))
            except RequestError as exc:
                error = exc
            except ValidationError as exc:
                error = RequestError.invalid_params({"errors": exc.errors(include_url=False, include_context=False)})
            except Exception as exc:  # noqa: BLE001
                logger.exception("Handler for %s failed", method)
                error = RequestError.internal_error(error_detail(exc))
            if is_notification:
                log_event(logger, "rpc.notification.failed", level=logging.WARNING, error=str(error), code=error.code)
                return None
            raise error


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    return value


def _without_id(line: str) -> str:
    # "id": null marks a notification; acp routes on the key alone.
    payload = json.loads(line)
    if "id" not in payload:
        return line
    payload.pop("id")
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
