"""Provider options and their environment/dotenv loading."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Union

from dotenv import load_dotenv

from code_cli_sdk.paths import config_dir

DEFAULT_MODE = "default"

SystemPrompt = Union[str, dict[str, str], None]


@dataclass
class ProviderOptions:
    """Settings shared by every session a provider opens.

    ``system_prompt`` is either a full replacement string or
    ``{"append": "..."}`` to extend the backend's own prompt.
    """

    model: str | None = None
    workdir: Path | None = None
    mode: str = DEFAULT_MODE
    system_prompt: SystemPrompt = None
    executable: str | None = None
    env: dict[str, str] = field(default_factory=dict)

    def with_overrides(self, **overrides: Any) -> "ProviderOptions":
        return replace(self, **{key: value for key, value in overrides.items() if value is not None})

    def resolve_workdir(self, cwd: str | None = None) -> Path:
        if cwd:
            return Path(cwd).expanduser()
        return self.workdir or Path.cwd()


def env_file() -> Path:
    return config_dir() / ".env"


def load_environment() -> None:
    """Load the user-level ``.env`` then one in the working directory, without overriding real env vars."""

    load_dotenv(env_file(), override=False)
    load_dotenv(override=False)


def load_provider_options(**overrides: Any) -> ProviderOptions:
    load_environment()

    system_prompt: SystemPrompt = os.getenv("CODE_CLI_SYSTEM_PROMPT") or None
    append = os.getenv("CODE_CLI_APPEND_SYSTEM_PROMPT")
    if system_prompt is None and append:
        system_prompt = {"append": append}

    workdir = os.getenv("CODE_CLI_WORKDIR")
    options = ProviderOptions(
        model=os.getenv("CODE_CLI_MODEL") or None,
        workdir=Path(workdir).expanduser() if workdir else None,
        mode=os.getenv("CODE_CLI_MODE") or DEFAULT_MODE,
        system_prompt=system_prompt,
        executable=os.getenv("CLAUDE_CODE_EXECUTABLE") or None,
    )
    return options.with_overrides(**overrides)
