from __future__ import annotations

import pytest
from acp import text_block
from acp.helpers import audio_block, image_block, resource_link_block

from code_cli_sdk.core import capability as cap
from code_cli_sdk.core.capability import Capability
from code_cli_sdk.core.errors import CapabilityNotSupportedError
from tests.utils import FakeBackend, make_session


def test_of_rejects_tags_in_the_wrong_group() -> None:
    with pytest.raises(ValueError, match="session"):
        Capability.of(session=[cap.PROMPT_TEXT])
    with pytest.raises(ValueError, match="utils"):
        Capability.of(utils=["utils/telepathy"])


def test_prompt_is_implicit_and_content_kinds_map_to_prompt_tags() -> None:
    capability = Capability.of(prompt=[cap.PROMPT_TEXT])

    assert capability.supports(cap.SESSION_PROMPT)
    assert not capability.supports(cap.SESSION_CANCEL)
    assert capability.supports_content_kind("text")
    assert capability.supports_content_kind("resource_link")
    assert capability.supports_content_kind("resource")
    assert not capability.supports_content_kind("image")
    assert not capability.supports_content_kind("hologram")


def test_require_content_names_the_missing_tag() -> None:
    capability = Capability.of(prompt=[cap.PROMPT_TEXT])

    capability.require_content([text_block("hi"), resource_link_block("a.py", "file:///a.py")])
    with pytest.raises(CapabilityNotSupportedError) as excinfo:
        capability.require_content([text_block("hi"), audio_block("AAAA", "audio/wav")])
    assert excinfo.value.code == -32601
    assert excinfo.value.data == {"capability": cap.PROMPT_AUDIO}


def test_to_wire_lists_sorted_tags() -> None:
    capability = Capability.of(session=[cap.SESSION_SET_MODE, cap.SESSION_CANCEL], agent=["agent/plan"])

    assert capability.to_wire() == {
        "session": [cap.SESSION_CANCEL, cap.SESSION_SET_MODE],
        "auth": [],
        "prompt": [],
        "utils": [],
        "agent": ["agent/plan"],
    }


@pytest.mark.asyncio
async def test_undeclared_operations_never_reach_the_backend() -> None:
    backend = FakeBackend()
    session = make_session(backend, capabilities=Capability.of(prompt=[cap.PROMPT_TEXT]))

    with pytest.raises(CapabilityNotSupportedError):
        await session.cancel()
    with pytest.raises(CapabilityNotSupportedError):
        await session.set_mode("plan")
    with pytest.raises(CapabilityNotSupportedError):
        await session.set_model("small")
    with pytest.raises(CapabilityNotSupportedError):
        await session.prompt([image_block("AAAA", "image/png")])
    with pytest.raises(CapabilityNotSupportedError):
        await session.provider.resume_session("other")

    assert backend.calls == 0
    assert session.provider.opened == []
