"""Capability sets declared by backend bindings and the checks that gate operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from code_cli_sdk.core.errors import CapabilityNotSupportedError

SESSION_PROMPT = "session/prompt"
SESSION_LOAD = "session/load"
SESSION_RESUME = "session/resume"
SESSION_FORK = "session/fork"
SESSION_CANCEL = "session/cancel"
SESSION_SET_MODEL = "session/set_model"
SESSION_SET_MODE = "session/set_mode"

AUTH_LOGIN = "auth/login"
AUTH_API_KEY = "auth/api_key"

PROMPT_SYSTEM_PROMPT = "prompt/system_prompt"
PROMPT_TEXT = "prompt/text"
PROMPT_IMAGE = "prompt/image"
PROMPT_AUDIO = "prompt/audio"
PROMPT_VIDEO = "prompt/video"

UTILS_SESSION_TITLE = "utils/generate_session_title"
UTILS_TOKEN_USAGE = "utils/output_token_usage"

SESSION_TAGS = frozenset(
    {SESSION_PROMPT, SESSION_LOAD, SESSION_RESUME, SESSION_FORK, SESSION_CANCEL, SESSION_SET_MODEL, SESSION_SET_MODE}
)
AUTH_TAGS = frozenset({AUTH_LOGIN, AUTH_API_KEY})
PROMPT_TAGS = frozenset({PROMPT_SYSTEM_PROMPT, PROMPT_TEXT, PROMPT_IMAGE, PROMPT_AUDIO, PROMPT_VIDEO})
UTILS_TAGS = frozenset({UTILS_SESSION_TITLE, UTILS_TOKEN_USAGE})

# Resource links and embedded resources reach the backend as text context.
CONTENT_KIND_TAGS = {
    "text": PROMPT_TEXT,
    "resource_link": PROMPT_TEXT,
    "resource": PROMPT_TEXT,
    "image": PROMPT_IMAGE,
    "audio": PROMPT_AUDIO,
    "video": PROMPT_VIDEO,
}

# Operations every binding supports whether or not it declares them.
IMPLICIT = frozenset({SESSION_PROMPT})


@dataclass(frozen=True)
class Capability:
    """What one backend binding can do, fixed for the binding's lifetime."""

    session: frozenset[str] = frozenset()
    auth: frozenset[str] = frozenset()
    prompt: frozenset[str] = frozenset()
    utils: frozenset[str] = frozenset()
    agent: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def of(
        cls,
        *,
        session: Iterable[str] = (),
        auth: Iterable[str] = (),
        prompt: Iterable[str] = (),
        utils: Iterable[str] = (),
        agent: Iterable[str] = (),
    ) -> "Capability":
        """Build a capability set, rejecting tags placed in the wrong group."""

        groups = {
            "session": (frozenset(session), SESSION_TAGS),
            "auth": (frozenset(auth), AUTH_TAGS),
            "prompt": (frozenset(prompt), PROMPT_TAGS),
            "utils": (frozenset(utils), UTILS_TAGS),
        }
        for name, (tags, known) in groups.items():
            unknown = tags - known
            if unknown:
                raise ValueError(f"unknown {name} capability tags: {sorted(unknown)}")
        return cls(
            session=groups["session"][0],
            auth=groups["auth"][0],
            prompt=groups["prompt"][0],
            utils=groups["utils"][0],
            agent=frozenset(agent),
        )

    @property
    def tags(self) -> frozenset[str]:
        return self.session | self.auth | self.prompt | self.utils | self.agent

    def supports(self, tag: str) -> bool:
        return tag in IMPLICIT or tag in self.tags

    def supports_content_kind(self, kind: str) -> bool:
        tag = CONTENT_KIND_TAGS.get(kind)
        return tag is not None and tag in self.prompt

    def require(self, tag: str) -> None:
        if not self.supports(tag):
            raise CapabilityNotSupportedError(tag)

    def require_content(self, blocks: Iterable[Any]) -> None:
        """Raise for the first block whose content kind is not declared."""

        for block in blocks:
            kind = getattr(block, "type", None)
            if kind is None and isinstance(block, dict):
                kind = block.get("type")
            kind = str(kind or "")
            if not self.supports_content_kind(kind):
                raise CapabilityNotSupportedError(CONTENT_KIND_TAGS.get(kind, f"prompt/{kind or 'unknown'}"))

    def to_wire(self) -> dict[str, list[str]]:
        return {
            "session": sorted(self.session),
            "auth": sorted(self.auth),
            "prompt": sorted(self.prompt),
            "utils": sorted(self.utils),
            "agent": sorted(self.agent),
        }
