from __future__ import annotations

from acp import text_block
from acp.helpers import (
    audio_block,
    embedded_text_resource,
    image_block,
    resource_block,
    resource_link_block,
)

from code_cli_sdk.claude.prompt import format_uri_as_link, prompt_to_claude, rewrite_mcp_command


def test_mcp_commands_are_rewritten() -> None:
    assert rewrite_mcp_command("/mcp:github:triage 42 now") == "/github:triage (MCP) 42 now"
    assert rewrite_mcp_command("/mcp:github:triage") == "/github:triage (MCP)"
    assert rewrite_mcp_command("/review 12") == "/review 12"


def test_file_uris_become_mentions() -> None:
    assert format_uri_as_link("file:///repo/src/app.py") == "[@app.py](file:///repo/src/app.py)"
    assert format_uri_as_link("https://example.com/doc") == "https://example.com/doc"


def test_prompt_blocks_become_one_user_message() -> None:
    message = prompt_to_claude(
        [
            text_block("Explain"),
            resource_block(embedded_text_resource("file:///repo/notes.md", "# Notes")),
            resource_link_block("app.py", "file:///repo/app.py"),
            image_block("iVBORw0KGgo=", "image/png"),
            image_block("", "image/png", uri="https://example.com/cat.png"),
            audio_block("AAAA", "audio/wav"),
        ],
        "sess-1",
    )

    assert message["type"] == "user"
    assert message["session_id"] == "sess-1"
    assert message["parent_tool_use_id"] is None
    content = message["message"]["content"]
    assert content == [
        {"type": "text", "text": "Explain"},
        {"type": "text", "text": "[@notes.md](file:///repo/notes.md)"},
        {"type": "text", "text": "[@app.py](file:///repo/app.py)"},
        {"type": "image", "source": {"type": "base64", "data": "iVBORw0KGgo=", "media_type": "image/png"}},
        {"type": "image", "source": {"type": "url", "url": "https://example.com/cat.png"}},
        {"type": "text", "text": '\n<context ref="file:///repo/notes.md">\n# Notes\n</context>'},
    ]
