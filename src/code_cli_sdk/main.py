"""Command-line entrypoint: serve the Claude Code provider over stdio."""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import replace
from pathlib import Path

from acp import stdio_streams

from code_cli_sdk.claude.provider import ClaudeCodeProvider
from code_cli_sdk.config import load_provider_options
from code_cli_sdk.core.framing import NdJsonStream
from code_cli_sdk.core.handler import EventHandler
from code_cli_sdk.core.server import ProviderServer
from code_cli_sdk.log_utils import build_log_config, configure_logging, parse_level

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="code-cli-sdk", description="Serve Claude Code over NDJSON JSON-RPC on stdio.")
    parser.add_argument("--log-level", help="Override CODE_CLI_LOG_LEVEL (name or number)")
    parser.add_argument("--model", help="Model id for new sessions")
    parser.add_argument("--cwd", help="Default working directory for sessions")
    parser.add_argument("--mode", help="Initial permission mode")
    return parser


async def serve(args: argparse.Namespace) -> None:
    workdir = Path(args.cwd).expanduser() if args.cwd else None
    options = load_provider_options(model=args.model, workdir=workdir, mode=args.mode)

    def provider_factory(handler: EventHandler) -> ClaudeCodeProvider:
        return ClaudeCodeProvider(options, handler)

    reader, writer = await stdio_streams()
    server = ProviderServer(provider_factory, NdJsonStream(reader, writer))
    logger.info("Serving %s on stdio", server.provider.name)
    await server.serve()


async def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    config = build_log_config()
    if args.log_level:
        config = replace(config, level=parse_level(args.log_level, config.level))
    configure_logging(config)
    await serve(args)


def main_entry() -> int:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        return 0
    return 0


if __name__ == "__main__":
    raise SystemExit(main_entry())
