from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path

import pytest

from code_cli_sdk import paths
from code_cli_sdk.config import ProviderOptions, env_file, load_provider_options
from code_cli_sdk.log_utils import (
    DEFAULT_MAX_BYTES,
    ContextFilter,
    JsonFormatter,
    LogConfig,
    build_log_config,
    configure_logging,
    log_context,
    log_event,
    parse_level,
)
from code_cli_sdk.main import build_parser

ENV_KEYS = (
    "CODE_CLI_MODEL",
    "CODE_CLI_WORKDIR",
    "CODE_CLI_MODE",
    "CODE_CLI_SYSTEM_PROMPT",
    "CODE_CLI_APPEND_SYSTEM_PROMPT",
    "CLAUDE_CODE_EXECUTABLE",
)


@pytest.fixture
def clean_env(monkeypatch):
    # setenv first so values loaded from .env files are removed again on teardown
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    return monkeypatch


@contextlib.contextmanager
def _configured(config: LogConfig):
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    configure_logging(config)
    try:
        yield root
    finally:
        for handler in root.handlers[:]:
            root.removeHandler(handler)
            handler.close()
        for handler in handlers:
            root.addHandler(handler)
        root.setLevel(level)


def test_dirs_follow_xdg_homes() -> None:
    assert paths.config_dir() == Path(os.environ["XDG_CONFIG_HOME"]) / paths.APP_NAME
    assert paths.log_dir().is_relative_to(Path(os.environ["XDG_STATE_HOME"]))
    assert env_file().parent == paths.config_dir()


def test_options_come_from_user_env_file(clean_env) -> None:
    env_file().write_text("CODE_CLI_MODE=plan\nCODE_CLI_MODEL=opus\n")
    clean_env.setenv("CODE_CLI_MODEL", "haiku")

    options = load_provider_options()

    assert options.mode == "plan"
    assert options.model == "haiku"


def test_explicit_overrides_win_and_none_is_ignored(clean_env, tmp_path: Path) -> None:
    clean_env.setenv("CODE_CLI_MODE", "acceptEdits")
    clean_env.setenv("CODE_CLI_WORKDIR", str(tmp_path))

    options = load_provider_options(mode=None, model="opus")

    assert options.mode == "acceptEdits"
    assert options.model == "opus"
    assert options.workdir == tmp_path


def test_system_prompt_from_env(clean_env) -> None:
    clean_env.setenv("CODE_CLI_APPEND_SYSTEM_PROMPT", "Answer in French.")
    assert load_provider_options().system_prompt == {"append": "Answer in French."}

    clean_env.setenv("CODE_CLI_SYSTEM_PROMPT", "You are a linter.")
    assert load_provider_options().system_prompt == "You are a linter."


def test_resolve_workdir(tmp_path: Path) -> None:
    options = ProviderOptions(workdir=tmp_path)

    assert options.resolve_workdir() == tmp_path
    assert options.resolve_workdir("/srv/repo") == Path("/srv/repo")
    assert ProviderOptions().resolve_workdir() == Path.cwd()


def test_parse_level() -> None:
    assert parse_level("debug", logging.INFO) == logging.DEBUG
    assert parse_level("15", logging.INFO) == 15
    assert parse_level("loud", logging.WARNING) == logging.WARNING
    assert parse_level(None, logging.ERROR) == logging.ERROR


def test_build_log_config_reads_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("CODE_CLI_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("CODE_CLI_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("CODE_CLI_LOG_STDERR", "yes")
    monkeypatch.setenv("CODE_CLI_LOG_JSON", "0")
    monkeypatch.setenv("CODE_CLI_LOG_MAX_BYTES", "lots")

    config = build_log_config()

    assert config.log_file == tmp_path / "logs" / "code_cli_sdk.log"
    assert config.log_file.parent.is_dir()
    assert config.level == logging.DEBUG
    assert config.stderr is True
    assert config.json is False
    assert config.max_bytes == DEFAULT_MAX_BYTES


def test_file_log_carries_context_fields(tmp_path: Path) -> None:
    log_file = tmp_path / "run.log"
    logger = logging.getLogger("code_cli_sdk.tests")

    with _configured(LogConfig(log_file=log_file, level=logging.DEBUG)):
        with log_context(session_id="s1"):
            log_event(logger, "session.prompt.start", blocks=2, note="two words")
        log_event(logger, "outside")

    first, second = log_file.read_text().splitlines()
    assert "session.prompt.start" in first
    assert "session_id=s1" in first
    assert "blocks=2" in first
    assert 'note="two words"' in first
    assert "session_id" not in second


def test_json_formatter_emits_one_object() -> None:
    record = logging.LogRecord("code_cli_sdk.x", logging.WARNING, __file__, 1, "rpc.record.malformed", None, None)
    record.event_fields = {"size": 3}
    with log_context(rpc_id=4):
        ContextFilter().filter(record)

    payload = json.loads(JsonFormatter().format(record))

    assert payload["level"] == "WARNING"
    assert payload["message"] == "rpc.record.malformed"
    assert payload["fields"] == {"size": 3}
    assert payload["context"] == {"rpc_id": 4}


def test_cli_arguments() -> None:
    args = build_parser().parse_args(["--model", "opus", "--cwd", "/srv", "--log-level", "debug"])

    assert (args.model, args.cwd, args.log_level, args.mode) == ("opus", "/srv", "debug", None)
