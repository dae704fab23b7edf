"""Fluent builder tests."""

from __future__ import annotations

import pytest

from conduit.builder import ResponsesBuilder
from conduit.errors import ValidationError
from conduit.orchestrator import TurnOrchestrator
from conduit.providers.mock import MockTransport
from conduit.request import AudioInput

pytestmark = pytest.mark.unit


def test_build_collects_chained_fields(orchestrator: TurnOrchestrator) -> None:
    request = (
        ResponsesBuilder(orchestrator)
        .message("Hello")
        .instructions("Be brief")
        .model("gpt-4o")
        .temperature(0.1)
        .tool_choice("auto")
        .response_format("json")
        .in_conversation("conv_1")
        .metadata({"trace": "t"})
        .idempotency_key("k1")
        .file_ids(["file_1"])
        .build()
    )

    assert request.text == "Hello"
    assert request.instructions == "Be brief"
    assert request.model == "gpt-4o"
    assert request.temperature == 0.1
    assert request.tool_choice == "auto"
    assert request.response_format == "json"
    assert request.conversation_id == "conv_1"
    assert request.metadata == {"trace": "t"}
    assert request.idempotency_key == "k1"
    assert request.file_ids == ["file_1"]


def test_audio_config_becomes_audio_input(orchestrator: TurnOrchestrator) -> None:
    request = ResponsesBuilder(orchestrator).audio({"action": "speech", "text": "Hi"}).build()
    assert request.audio == AudioInput(action="speech", text="Hi")


def test_append_helpers_build_input_items(orchestrator: TurnOrchestrator) -> None:
    request = (
        ResponsesBuilder(orchestrator)
        .append_user_text("Compare these")
        .append_user_image_url("https://img/1.png")
        .append_user_image_id("file_img")
        .build()
    )
    assert request.input_items == [
        {"role": "user", "content": [{"type": "input_text", "text": "Compare these"}]},
        {"role": "user", "content": [{"type": "input_image", "image_url": "https://img/1.png"}]},
        {"role": "user", "content": [{"type": "input_image", "file_id": "file_img"}]},
    ]


def test_input_items_replaces_appended_items(orchestrator: TurnOrchestrator) -> None:
    replacement = [{"role": "user", "content": "only this"}]
    request = (
        ResponsesBuilder(orchestrator)
        .append_user_text("dropped")
        .input_items(replacement)
        .build()
    )
    assert request.input_items == replacement


def test_build_validates_fields(orchestrator: TurnOrchestrator) -> None:
    with pytest.raises(ValidationError, match="Unknown audio field"):
        ResponsesBuilder(orchestrator).audio({"action": "speech", "pitch": 2}).build()


@pytest.mark.asyncio
async def test_send_goes_through_orchestrator(
    orchestrator: TurnOrchestrator, transport: MockTransport
) -> None:
    dto = await ResponsesBuilder(orchestrator).message("Hello").send()
    assert dto.text == "echo: Hello"
    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_stream_goes_through_orchestrator(orchestrator: TurnOrchestrator) -> None:
    seen: list[str] = []
    events = [
        e
        async for e in ResponsesBuilder(orchestrator)
        .message("Hi")
        .stream(on_event=lambda e: seen.append(e.type))
    ]
    assert events[-1].type == "response.completed"
    assert seen == [e.type for e in events]
