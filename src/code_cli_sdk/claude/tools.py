"""Claude Code tool names mapped to ACP titles, kinds, locations and content."""

from __future__ import annotations

import json
from typing import Any

from acp.helpers import plan_entry, text_block, tool_content, tool_diff_content
from acp.schema import PlanEntry, ToolCallLocation

from code_cli_sdk.core.translator import ToolInfo
from code_cli_sdk.core.types import ToolUse

PLAN_TOOL = "TodoWrite"
MODE_EXIT_TOOL = "ExitPlanMode"
EDIT_TOOL_NAMES = frozenset({"Edit", "MultiEdit", "Write", "NotebookEdit"})
MCP_PREFIX = "mcp__"

_PLAN_STATUSES = {"pending", "in_progress", "completed"}


def _fenced(text: str, lang: str = "") -> str:
    fence = "```"
    while fence in text:
        fence += "`"
    return f"{fence}{lang}\n{text.rstrip()}\n{fence}"


def _json_block(value: Any) -> list[Any]:
    return [tool_content(text_block(_fenced(json.dumps(value, indent=2, default=str), "json")))]


def _text(value: Any) -> list[Any]:
    return [tool_content(text_block(str(value)))] if value else []


def _location(path: Any, line: Any = None) -> list[ToolCallLocation]:
    if not path:
        return []
    return [ToolCallLocation(path=str(path), line=line if isinstance(line, int) else None)]


def result_text(content: Any) -> str:
    """Flatten a tool result payload (string or list of content parts) into text."""

    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for item in content:
            if isinstance(item, dict):
                if item.get("type") == "text":
                    parts.append(str(item.get("text", "")))
                elif item.get("type") == "image":
                    parts.append("[image]")
            else:
                parts.append(str(item))
        return "\n".join(part for part in parts if part)
    return str(content)


class ClaudeToolTable:
    """Display rules for Claude Code's built-in tools.

    Unknown tools, including MCP tools, fall back to kind ``other`` with the
    raw input shown as JSON.
    """

    plan_tool = PLAN_TOOL
    mode_exit_tool = MODE_EXIT_TOOL
    edit_tools = EDIT_TOOL_NAMES

    def info(self, name: str, tool_input: dict[str, Any]) -> ToolInfo:
        args = tool_input or {}
        path = args.get("file_path") or args.get("notebook_path") or args.get("path")

        if name in ("Task", "Agent"):
            return ToolInfo(args.get("description") or "Task", "think", _text(args.get("prompt")))
        if name == "Bash":
            command = str(args.get("command") or "")
            return ToolInfo(f"`{command}`" if command else "Terminal", "execute", _text(args.get("description")))
        if name == "BashOutput":
            return ToolInfo("Tail Logs", "execute")
        if name in ("KillShell", "KillBash"):
            return ToolInfo("Kill Process", "execute")
        if name == "Read":
            return ToolInfo(self._read_title(path, args), "read", locations=_location(path, args.get("offset")))
        if name == "NotebookRead":
            return ToolInfo(f"Read Notebook {path or ''}".rstrip(), "read", locations=_location(path))
        if name == "LS":
            return ToolInfo(f"List the `{path or '.'}` directory's contents", "search", locations=_location(path))
        if name == "Write":
            content = [tool_diff_content(str(path), str(args.get("content") or ""))] if path else []
            return ToolInfo(f"Write {path}" if path else "Write", "edit", content, _location(path))
        if name == "Edit":
            content = []
            if path:
                content = [
                    tool_diff_content(str(path), str(args.get("new_string") or ""), str(args.get("old_string") or ""))
                ]
            return ToolInfo(f"Edit `{path}`" if path else "Edit", "edit", content, _location(path))
        if name == "MultiEdit":
            edits = args.get("edits") if isinstance(args.get("edits"), list) else []
            content = [
                tool_diff_content(str(path), str(edit.get("new_string") or ""), str(edit.get("old_string") or ""))
                for edit in edits
                if path and isinstance(edit, dict)
            ]
            return ToolInfo(f"Edit `{path}`" if path else "Edit", "edit", content, _location(path))
        if name == "NotebookEdit":
            return ToolInfo(
                f"Edit Notebook {path or ''}".rstrip(), "edit", _text(args.get("new_source")), _location(path)
            )
        if name == "Glob":
            label = "Find"
            if args.get("path"):
                label += f" `{args['path']}`"
            if args.get("pattern"):
                label += f" `{args['pattern']}`"
            return ToolInfo(label, "search", locations=_location(args.get("path")))
        if name == "Grep":
            return ToolInfo(self._grep_title(args), "search", locations=_location(args.get("path")))
        if name == "WebFetch":
            url = args.get("url")
            return ToolInfo(f"Fetch {url}" if url else "Fetch", "fetch", _text(args.get("prompt")))
        if name == "WebSearch":
            query = args.get("query")
            return ToolInfo(f'"{query}"' if query else "Web search", "fetch")
        if name == PLAN_TOOL:
            todos = args.get("todos") if isinstance(args.get("todos"), list) else []
            summary = ", ".join(str(todo.get("content")) for todo in todos if isinstance(todo, dict))
            return ToolInfo(f"Update TODOs: {summary}" if summary else "Update TODOs", "think")
        if name == MODE_EXIT_TOOL:
            return ToolInfo("Ready to code?", "switch_mode", _text(args.get("plan")))
        if name.startswith(MCP_PREFIX):
            _, server, tool = (name.split("__", 2) + ["", ""])[:3]
            title = f"{server}: {tool}" if server and tool else name
            return ToolInfo(title, "other", _json_block(args) if args else [])
        return ToolInfo(name or "Unknown tool", "other", _json_block(args) if args else [])

    def result_content(self, tool_use: ToolUse, content: Any, is_error: bool) -> list[Any]:
        text = result_text(content)
        if is_error:
            return [tool_content(text_block(_fenced(text)))] if text else []
        if tool_use.name in EDIT_TOOL_NAMES and tool_use.name != "NotebookEdit":
            return self.info(tool_use.name, tool_use.input).content
        if tool_use.name in ("Read", "Bash", "BashOutput", "Grep", "Glob", "LS"):
            return [tool_content(text_block(_fenced(text)))] if text else []
        return _text(text)

    def plan_entries(self, tool_input: dict[str, Any]) -> list[PlanEntry] | None:
        todos = tool_input.get("todos")
        if not isinstance(todos, list):
            return None
        entries = []
        for todo in todos:
            if not isinstance(todo, dict) or not todo.get("content"):
                continue
            status = todo.get("status") if todo.get("status") in _PLAN_STATUSES else "pending"
            entries.append(plan_entry(str(todo["content"]), priority="medium", status=status))
        return entries

    @staticmethod
    def _read_title(path: Any, args: dict[str, Any]) -> str:
        title = f"Read {path}" if path else "Read File"
        offset, limit = args.get("offset"), args.get("limit")
        if isinstance(limit, int) and limit > 0:
            start = offset if isinstance(offset, int) and offset > 0 else 1
            title += f" ({start} - {start + limit - 1})"
        elif isinstance(offset, int) and offset > 0:
            title += f" (from line {offset})"
        return title

    @staticmethod
    def _grep_title(args: dict[str, Any]) -> str:
        parts = ["grep"]
        if args.get("-i"):
            parts.append("-i")
        if args.get("-n"):
            parts.append("-n")
        if args.get("output_mode") == "files_with_matches":
            parts.append("-l")
        elif args.get("output_mode") == "count":
            parts.append("-c")
        if args.get("glob"):
            parts.append(f"--include=\"{args['glob']}\"")
        if args.get("pattern"):
            parts.append(f"\"{args['pattern']}\"")
        if args.get("path"):
            parts.append(str(args["path"]))
        return " ".join(parts)
