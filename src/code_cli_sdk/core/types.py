"""Shared data model: notifications ACP does not define plus backend-facing records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

StopReason = Literal["end_turn", "max_tokens", "max_turn_requests", "refusal", "cancelled"]
PermissionBehavior = Literal["allow", "deny"]


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ModelUsage(_WireModel):
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_input_tokens: int = 0
    cache_creation_input_tokens: int = 0
    web_search_requests: int = 0
    cost_usd: float = Field(default=0.0, alias="costUSD")
    context_window: int | None = None
    max_output_tokens: int | None = None


class UsageUpdate(_WireModel):
    """Token and cost totals reported once per completed turn."""

    session_update: Literal["usage_update"] = "usage_update"
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_input_tokens: int = 0
    cache_creation_input_tokens: int = 0
    total_cost_usd: float | None = Field(default=None, alias="totalCostUSD")
    model_usage: dict[str, ModelUsage] = Field(default_factory=dict)


class TitleGeneratedUpdate(_WireModel):
    session_update: Literal["title_generated"] = "title_generated"
    title: str


@dataclass(frozen=True)
class ToolUse:
    """A tool invocation announced by the backend, kept until its result arrives."""

    id: str
    name: str
    input: dict[str, Any]


@dataclass
class PermissionDecision:
    """Outcome handed back to the backend for one permission request.

    ``rules`` lists tool names to allow for the rest of the session; ``mode``
    is set when the decision also switches the session's permission mode.
    """

    behavior: PermissionBehavior
    message: str | None = None
    interrupt: bool = False
    updated_input: dict[str, Any] | None = None
    rules: list[str] = field(default_factory=list)
    mode: str | None = None

    @property
    def allowed(self) -> bool:
        return self.behavior == "allow"

    @classmethod
    def allow(
        cls,
        updated_input: dict[str, Any] | None = None,
        *,
        rules: list[str] | None = None,
        mode: str | None = None,
    ) -> "PermissionDecision":
        return cls("allow", updated_input=updated_input, rules=list(rules or []), mode=mode)

    @classmethod
    def deny(cls, message: str, *, interrupt: bool = False) -> "PermissionDecision":
        return cls("deny", message=message, interrupt=interrupt)


@dataclass(frozen=True)
class SlashCommand:
    """A command as the backend advertises it, before client-side filtering."""

    name: str
    description: str = ""
    argument_hint: str | None = None
