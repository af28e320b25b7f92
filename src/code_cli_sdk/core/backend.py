"""Backend collaborator contract and the async input channel sessions feed it with."""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Generic, Protocol, TypeVar

from acp.schema import ModelInfo

from code_cli_sdk.core.types import SlashCommand

T = TypeVar("T")

_END = object()


class Pushable(Generic[T]):
    """Unbounded queue consumed with ``async for``; ``end()`` finishes iteration.

    Items pushed before ``end()`` are still delivered.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._ended = False

    @property
    def ended(self) -> bool:
        return self._ended

    def push(self, item: T) -> None:
        if self._ended:
            raise RuntimeError("push after end")
        self._queue.put_nowait(item)

    def end(self) -> None:
        if self._ended:
            return
        self._ended = True
        self._queue.put_nowait(_END)

    def __aiter__(self) -> AsyncIterator[T]:
        return self

    async def __anext__(self) -> T:
        item = await self._queue.get()
        if item is _END:
            # Later iterators stop too.
            self._queue.put_nowait(_END)
            raise StopAsyncIteration
        return item


class Backend(Protocol):
    """One live conversation handle inside the backend.

    ``events()`` yields backend-native messages for the current turn and stops
    after the terminal result. Implementations raise
    :class:`~code_cli_sdk.core.errors.BackendUnavailableError` when the handle
    is gone.
    """

    async def push(self, message: Any) -> None: ...

    def events(self) -> AsyncIterator[Any]: ...

    async def set_model(self, model_id: str) -> None: ...

    async def set_permission_mode(self, mode_id: str) -> None: ...

    async def interrupt(self) -> None: ...

    async def supported_models(self) -> list[ModelInfo]: ...

    async def supported_commands(self) -> list[SlashCommand]: ...

    async def close(self) -> None: ...
