"""Newline-delimited JSON-RPC 2.0 framing over asyncio streams."""

from __future__ import annotations

import asyncio
import codecs
import json
import logging
from typing import Any, AsyncIterator, Literal, Protocol, Union

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from code_cli_sdk.log_utils import log_event

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024

RequestId = Union[int, str]


class JsonRpcError(BaseModel):
    code: int
    message: str
    data: Any = None


class JsonRpcRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    jsonrpc: Literal["2.0"] = "2.0"
    id: RequestId
    method: str
    params: Any = None


class JsonRpcNotification(BaseModel):
    model_config = ConfigDict(extra="ignore")

    jsonrpc: Literal["2.0"] = "2.0"
    method: str
    params: Any = None


class JsonRpcResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    jsonrpc: Literal["2.0"] = "2.0"
    id: RequestId | None
    result: Any = None
    error: JsonRpcError | None = None

    @model_validator(mode="before")
    @classmethod
    def _result_or_error(cls, data: Any) -> Any:
        if isinstance(data, dict) and "result" not in data and "error" not in data:
            raise ValueError("response carries neither result nor error")
        return data


JsonRpcMessage = Union[JsonRpcRequest, JsonRpcNotification, JsonRpcResponse]


class ByteWriter(Protocol):
    def write(self, data: bytes) -> Any: ...

    async def drain(self) -> None: ...


def decode_record(line: str) -> JsonRpcMessage:
    """Decode one NDJSON record into a typed JSON-RPC message.

    Raises ``ValueError`` for invalid JSON and for objects that are neither a
    request, a notification nor a response.
    """

    payload = json.loads(line)
    if not isinstance(payload, dict):
        raise ValueError("record is not a JSON object")
    try:
        if "method" in payload:
            if "id" in payload and payload["id"] is not None:
                return JsonRpcRequest.model_validate(payload)
            return JsonRpcNotification.model_validate(payload)
        if "id" in payload:
            return JsonRpcResponse.model_validate(payload)
    except ValidationError as exc:
        raise ValueError(str(exc)) from exc
    raise ValueError("record has neither method nor id")


def encode_record(message: BaseModel | dict[str, Any]) -> bytes:
    if isinstance(message, BaseModel):
        payload = message.model_dump(mode="json", by_alias=True, exclude_none=True)
        if isinstance(message, JsonRpcResponse) and "error" not in payload:
            payload.setdefault("result", None)
    else:
        payload = message
    return (json.dumps(payload, ensure_ascii=False, separators=(",", ":")) + "\n").encode("utf-8")


class NdJsonStream:
    """Reads and writes one JSON-RPC message per line.

    A record split across reads is held until its newline arrives. Blank lines
    are ignored; undecodable records are logged and skipped. An unterminated
    record left at end of stream is dropped.
    """

    def __init__(self, reader: asyncio.StreamReader, writer: ByteWriter, *, chunk_size: int = READ_CHUNK_SIZE) -> None:
        self._reader = reader
        self._writer = writer
        self._chunk_size = chunk_size
        self._write_lock = asyncio.Lock()
        self._error: BaseException | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def writer(self) -> ByteWriter:
        return self._writer

    async def write(self, message: BaseModel | dict[str, Any]) -> None:
        if self._error is not None:
            raise self._error
        if self._closed:
            raise ConnectionError("stream closed")
        data = encode_record(message)
        async with self._write_lock:
            self._writer.write(data)
            await self._writer.drain()

    async def messages(self) -> AsyncIterator[JsonRpcMessage]:
        async for message, _ in self.records():
            yield message

    async def records(self) -> AsyncIterator[tuple[JsonRpcMessage, str]]:
        """Yield each well-formed record with its decoded message and original text."""

        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""
        try:
            while True:
                try:
                    chunk = await self._reader.read(self._chunk_size)
                except Exception as exc:
                    self._error = exc
                    raise
                if not chunk:
                    break
                pending += decoder.decode(chunk)
                *lines, pending = pending.split("\n")
                for line in lines:
                    line = line.strip()
                    message = self._decode(line)
                    if message is not None:
                        yield message, line
            pending += decoder.decode(b"", final=True)
            if pending.strip():
                log_event(logger, "rpc.record.truncated", level=logging.WARNING, size=len(pending))
        finally:
            self._closed = True

    def _decode(self, line: str) -> JsonRpcMessage | None:
        if not line:
            return None
        try:
            return decode_record(line)
        except ValueError as exc:
            log_event(
                logger,
                "rpc.record.malformed",
                level=logging.WARNING,
                error=str(exc).splitlines()[0] if str(exc) else exc.__class__.__name__,
                record=line[:200],
            )
            return None
