"""Logging setup and structured event helpers.

stdout carries the wire protocol, so log output goes to a rotating file and,
optionally, to stderr.
"""

from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import os
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterator

from code_cli_sdk.paths import log_dir

LOG_FILE_NAME = "code_cli_sdk.log"
DEFAULT_MAX_BYTES = 5_000_000
DEFAULT_BACKUPS = 3

_CONTEXT: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar("code_cli_log_context", default={})


@dataclass(frozen=True)
class LogConfig:
    """Resolved logging settings.

    Built from ``CODE_CLI_LOG_*`` environment variables by
    :func:`build_log_config`; the CLI may override the level.
    """

    log_file: Path
    level: int = logging.INFO
    stderr: bool = False
    json: bool = False
    max_bytes: int = DEFAULT_MAX_BYTES
    backup_count: int = DEFAULT_BACKUPS
    logger_levels: Dict[str, int] = field(default_factory=dict)


def parse_level(value: str | None, default: int) -> int:
    if not value:
        return default
    if value.isdigit():
        return int(value)
    return logging._nameToLevel.get(value.upper(), default)


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    with contextlib.suppress(ValueError):
        return int(value)
    return default


def build_log_config(*, log_file_name: str = LOG_FILE_NAME, default_level: int = logging.INFO) -> LogConfig:
    """Build a :class:`LogConfig` from the environment."""

    directory = Path(os.getenv("CODE_CLI_LOG_DIR") or log_dir())
    directory.mkdir(parents=True, exist_ok=True)

    return LogConfig(
        log_file=directory / log_file_name,
        level=parse_level(os.getenv("CODE_CLI_LOG_LEVEL"), default_level),
        stderr=_parse_bool(os.getenv("CODE_CLI_LOG_STDERR"), False),
        json=_parse_bool(os.getenv("CODE_CLI_LOG_JSON"), False),
        max_bytes=_parse_int(os.getenv("CODE_CLI_LOG_MAX_BYTES"), DEFAULT_MAX_BYTES),
        backup_count=_parse_int(os.getenv("CODE_CLI_LOG_BACKUPS"), DEFAULT_BACKUPS),
    )


def configure_logging(config: LogConfig) -> None:
    """Replace root handlers with a rotating file handler (and stderr if enabled)."""

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    root.setLevel(config.level)

    formatter: logging.Formatter
    if config.json:
        formatter = JsonFormatter()
    else:
        formatter = ContextFormatter("%(asctime)s %(levelname)s %(name)s %(message)s")

    handlers: list[logging.Handler] = [
        RotatingFileHandler(
            config.log_file,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
    ]
    if config.stderr:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(ContextFilter())
        root.addHandler(handler)

    for name, level in config.logger_levels.items():
        logging.getLogger(name).setLevel(level)


@contextlib.contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Attach fields such as ``session_id`` to every record logged inside the block."""

    merged = {**_CONTEXT.get(), **{k: v for k, v in fields.items() if v is not None}}
    token = _CONTEXT.set(merged)
    try:
        yield
    finally:
        _CONTEXT.reset(token)


def log_event(logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """Log a short, stable event name with key/value fields."""

    logger.log(level, event, extra={"event_fields": fields})


def _format_value(value: Any) -> str:
    if isinstance(value, str):
        if value == "":
            return '""'
        if any(ch.isspace() for ch in value) or "=" in value or '"' in value:
            return json.dumps(value)
        return value
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=True, separators=(",", ":"), default=str)
    return str(value)


def _format_fields(fields: Dict[str, Any]) -> str:
    return " ".join(f"{key}={_format_value(fields[key])}" for key in sorted(fields) if fields[key] is not None)


class ContextFilter(logging.Filter):
    """Copy the active :func:`log_context` fields onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003 - logging API name
        record.context_fields = dict(_CONTEXT.get())
        record.event_fields = getattr(record, "event_fields", {})
        return True


class ContextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extra = " ".join(
            part
            for part in (
                _format_fields(getattr(record, "context_fields", {})),
                _format_fields(getattr(record, "event_fields", {})),
            )
            if part
        )
        return f"{base} {extra}" if extra else base


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for jq and log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = getattr(record, "context_fields", {})
        fields = getattr(record, "event_fields", {})
        if context:
            payload["context"] = context
        if fields:
            payload["fields"] = fields
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)
