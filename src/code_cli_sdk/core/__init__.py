"""Backend-neutral session protocol adapter."""

from code_cli_sdk.core.backend import Backend, Pushable  # noqa: F401
from code_cli_sdk.core.capability import Capability  # noqa: F401
from code_cli_sdk.core.connection import Connection  # noqa: F401
from code_cli_sdk.core.correlation import PendingRequests  # noqa: F401
from code_cli_sdk.core.errors import (  # noqa: F401
    BackendUnavailableError,
    CapabilityNotSupportedError,
    PromptInFlightError,
    SessionNotFoundError,
    SessionUnusableError,
)
from code_cli_sdk.core.framing import NdJsonStream  # noqa: F401
from code_cli_sdk.core.handler import EventHandler, UpdateEmitter  # noqa: F401
from code_cli_sdk.core.permissions import PermissionArbitrator  # noqa: F401
from code_cli_sdk.core.provider import BaseProvider  # noqa: F401
from code_cli_sdk.core.server import ProviderServer, WireEventHandler  # noqa: F401
from code_cli_sdk.core.session import BaseSession, SessionState, Step  # noqa: F401
from code_cli_sdk.core.translator import EventTranslator, ToolInfo, ToolTable  # noqa: F401
from code_cli_sdk.core.types import PermissionDecision, SlashCommand, ToolUse, UsageUpdate  # noqa: F401

__all__ = [
    "Backend",
    "BackendUnavailableError",
    "BaseProvider",
    "BaseSession",
    "Capability",
    "CapabilityNotSupportedError",
    "Connection",
    "EventHandler",
    "EventTranslator",
    "NdJsonStream",
    "PendingRequests",
    "PermissionArbitrator",
    "PermissionDecision",
    "PromptInFlightError",
    "ProviderServer",
    "Pushable",
    "SessionNotFoundError",
    "SessionState",
    "SessionUnusableError",
    "SlashCommand",
    "Step",
    "ToolInfo",
    "ToolTable",
    "ToolUse",
    "UpdateEmitter",
    "UsageUpdate",
    "WireEventHandler",
]
