"""Protocol-visible errors raised by providers and sessions."""

from __future__ import annotations

from typing import Any

from acp import RequestError

SESSION_NOT_FOUND = -32002


class CapabilityNotSupportedError(RequestError):
    """The backend binding does not declare the capability an operation needs."""

    def __init__(self, capability: str) -> None:
        super().__init__(-32601, "Method not found", {"capability": capability})
        self.capability = capability


class SessionNotFoundError(RequestError):
    def __init__(self, session_id: str) -> None:
        super().__init__(SESSION_NOT_FOUND, "Session not found", {"sessionId": session_id})
        self.session_id = session_id


class SessionUnusableError(RequestError):
    """The backend handle behind a session failed; only ``close`` is still accepted."""

    def __init__(self, session_id: str, reason: str) -> None:
        super().__init__(SESSION_NOT_FOUND, "Session unusable", {"sessionId": session_id, "reason": reason})
        self.session_id = session_id


class PromptInFlightError(RequestError):
    def __init__(self, session_id: str) -> None:
        super().__init__(-32600, "Invalid request", {"sessionId": session_id, "reason": "prompt already in flight"})
        self.session_id = session_id


class BackendUnavailableError(RuntimeError):
    """Raised by backends when the underlying process or connection is gone."""


def error_detail(exc: BaseException) -> dict[str, Any]:
    return {"details": str(exc) or exc.__class__.__name__}
