"""Claude Code backend binding."""

from code_cli_sdk.claude.backend import ClaudeBackend  # noqa: F401
from code_cli_sdk.claude.provider import (  # noqa: F401
    CLAUDE_CAPABILITY,
    ClaudeCodeProvider,
    ClaudeCodeSession,
)
from code_cli_sdk.claude.translator import ClaudeEventTranslator  # noqa: F401

__all__ = [
    "CLAUDE_CAPABILITY",
    "ClaudeBackend",
    "ClaudeCodeProvider",
    "ClaudeCodeSession",
    "ClaudeEventTranslator",
]
