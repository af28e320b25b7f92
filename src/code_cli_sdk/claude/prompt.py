"""Conversion of ACP prompt content into Claude Code user messages."""

from __future__ import annotations

import re
from typing import Any

from acp.schema import (
    EmbeddedResourceContentBlock,
    ImageContentBlock,
    ResourceContentBlock,
    TextContentBlock,
    TextResourceContents,
)

_MCP_COMMAND = re.compile(r"^/mcp:([^:\s]+):(\S+)(\s+.*)?$", re.DOTALL)


def rewrite_mcp_command(text: str) -> str:
    """``/mcp:server:cmd args`` is how clients spell what Claude Code calls ``/server:cmd (MCP) args``."""

    match = _MCP_COMMAND.match(text)
    if not match:
        return text
    server, command, args = match.groups()
    return f"/{server}:{command} (MCP){args or ''}"


def format_uri_as_link(uri: str) -> str:
    if uri.startswith("file://"):
        path = uri[len("file://") :]
        name = path.rstrip("/").rsplit("/", 1)[-1] or path
        return f"[@{name}]({uri})"
    return uri


def prompt_to_claude(blocks: list[Any], session_id: str) -> dict[str, Any]:
    """Build the streaming-input user message for one prompt.

    Embedded text resources are referenced inline and their bodies appended
    after all other content as ``<context>`` blocks. Audio and binary
    resources are dropped.
    """

    content: list[dict[str, Any]] = []
    context: list[dict[str, Any]] = []

    for block in blocks:
        if isinstance(block, TextContentBlock):
            content.append({"type": "text", "text": rewrite_mcp_command(block.text)})
        elif isinstance(block, ResourceContentBlock):
            content.append({"type": "text", "text": format_uri_as_link(block.uri)})
        elif isinstance(block, EmbeddedResourceContentBlock):
            resource = block.resource
            if isinstance(resource, TextResourceContents):
                content.append({"type": "text", "text": format_uri_as_link(resource.uri)})
                context.append(
                    {"type": "text", "text": f'\n<context ref="{resource.uri}">\n{resource.text}\n</context>'}
                )
        elif isinstance(block, ImageContentBlock):
            if block.data:
                content.append(
                    {"type": "image", "source": {"type": "base64", "data": block.data, "media_type": block.mime_type}}
                )
            elif block.uri and block.uri.startswith("http"):
                content.append({"type": "image", "source": {"type": "url", "url": block.uri}})

    content.extend(context)
    return {
        "type": "user",
        "message": {"role": "user", "content": content},
        "session_id": session_id,
        "parent_tool_use_id": None,
    }
