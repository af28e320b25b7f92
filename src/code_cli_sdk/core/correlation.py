"""Outstanding outbound requests keyed by JSON-RPC id."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from acp.task.state import IncomingMessage, MessageStateStore

from code_cli_sdk.log_utils import log_event

logger = logging.getLogger(__name__)


@dataclass
class PendingRequest:
    id: int | str
    method: str
    future: asyncio.Future[Any]


class PendingRequests(MessageStateStore):
    """Maps request ids to the futures awaiting their responses.

    Every registered id is completed exactly once, by ``resolve``, ``reject``
    or ``reject_all``. Responses for ids that are not outstanding are logged
    and ignored. Plugged into :class:`acp.connection.Connection` as its state
    store, which also reports inbound requests as they start and finish.
    """

    def __init__(self) -> None:
        self._pending: dict[int | str, PendingRequest] = {}
        self._incoming: list[IncomingMessage] = []

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._pending

    @property
    def incoming(self) -> list[IncomingMessage]:
        """Inbound requests whose handlers have not finished."""

        return list(self._incoming)

    def register(self, request_id: int | str, method: str) -> asyncio.Future[Any]:
        if request_id in self._pending:
            raise ValueError(f"request id {request_id!r} is already outstanding")
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = PendingRequest(request_id, method, future)
        return future

    def resolve(self, request_id: int | str | None, result: Any) -> bool:
        entry = self._take(request_id)
        if entry is None:
            return False
        if not entry.future.done():
            entry.future.set_result(result)
        return True

    def reject(self, request_id: int | str | None, error: BaseException) -> bool:
        entry = self._take(request_id)
        if entry is None:
            return False
        if not entry.future.done():
            entry.future.set_exception(error)
        return True

    def reject_all(self, error: BaseException) -> None:
        entries = list(self._pending.values())
        self._pending.clear()
        for entry in entries:
            if not entry.future.done():
                entry.future.set_exception(error)

    # acp.task.MessageStateStore

    def register_outgoing(self, request_id: int, method: str) -> asyncio.Future[Any]:
        return self.register(request_id, method)

    def resolve_outgoing(self, request_id: int, result: Any) -> None:
        self.resolve(request_id, result)

    def reject_outgoing(self, request_id: int, error: Any) -> None:
        self.reject(request_id, error)

    def reject_all_outgoing(self, error: Any) -> None:
        self.reject_all(error)

    def begin_incoming(self, method: str, params: Any) -> IncomingMessage:
        record = IncomingMessage(method=method, params=params)
        self._incoming.append(record)
        return record

    def complete_incoming(self, record: IncomingMessage, result: Any) -> None:
        record.status = "completed"
        record.result = result
        self._finish(record)

    def fail_incoming(self, record: IncomingMessage, error: Any) -> None:
        record.status = "failed"
        record.error = error
        log_event(logger, "rpc.request.failed", level=logging.DEBUG, method=record.method, error=str(error))
        self._finish(record)

    def _finish(self, record: IncomingMessage) -> None:
        # Records compare by value; two identical requests may be in flight.
        self._incoming = [entry for entry in self._incoming if entry is not record]

    def _take(self, request_id: int | str | None) -> PendingRequest | None:
        entry = self._pending.pop(request_id, None) if request_id is not None else None
        if entry is None:
            log_event(logger, "rpc.response.unknown_id", level=logging.WARNING, request_id=request_id)
        return entry
