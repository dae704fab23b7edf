"""Unified request construction and normalization."""

from __future__ import annotations

from pydantic import BaseModel
import pytest

from conduit.errors import ValidationError
from conduit.request import AudioInput, ImageInput, UnifiedRequest, normalize_request

pytestmark = pytest.mark.unit


def test_from_mapping_accepts_camel_case_aliases() -> None:
    request = UnifiedRequest.from_mapping(
        {
            "text": "Hi",
            "conversationId": "conv_1",
            "toolChoice": "required",
            "maxOutputTokens": 100,
            "idempotencyKey": "k",
        }
    )
    assert request.conversation_id == "conv_1"
    assert request.tool_choice == "required"
    assert request.max_tokens == 100
    assert request.idempotency_key == "k"


def test_nested_modalities_become_typed_inputs() -> None:
    request = UnifiedRequest.from_mapping(
        {"audio": {"action": "transcribe", "file": "a.mp3"}, "image": {"prompt": "cat"}}
    )
    assert request.audio == AudioInput(action="transcribe", file="a.mp3")
    assert request.image == ImageInput(prompt="cat")
    assert request.populated_modalities() == ["audio", "image"]


def test_input_string_and_list_forms() -> None:
    assert UnifiedRequest.from_mapping({"input": "Hello"}).text == "Hello"
    items = [{"role": "user", "content": "Hi"}]
    assert UnifiedRequest.from_mapping({"input": items}).input_items == items


def test_unknown_top_level_keys_go_to_extra() -> None:
    request = UnifiedRequest.from_mapping({"text": "Hi", "top_p": 0.5})
    assert request.extra == {"top_p": 0.5}


def test_unknown_nested_key_is_rejected() -> None:
    with pytest.raises(ValidationError) as exc:
        UnifiedRequest.from_mapping({"image": {"prompt": "cat", "colour": "red"}})
    assert exc.value.field == "image.colour"


@pytest.mark.parametrize(
    ("data", "field"),
    [
        ({"text": 42}, "text"),
        ({"max_tokens": 0}, "max_tokens"),
        ({"audio_input": "AAAA"}, "audio_input"),
        ({"response_format": 3}, "response_format"),
        ({"audio": "clip.mp3"}, "audio"),
        ({"image": {"prompt": "x", "n": "2"}}, "image.n"),
        ({"audio": {"action": "speech", "speed": "fast"}}, "audio.speed"),
    ],
)
def test_malformed_fields_are_rejected(data: dict, field: str) -> None:
    with pytest.raises(ValidationError) as exc:
        UnifiedRequest.from_mapping(data)
    assert exc.value.field == field


def test_normalize_request_rejects_non_mappings() -> None:
    with pytest.raises(ValidationError, match="Expected a mapping"):
        normalize_request(["text", "Hi"])  # type: ignore[arg-type]


def test_normalize_request_passes_requests_through() -> None:
    request = UnifiedRequest(text="Hi")
    assert normalize_request(request) is request


def test_pydantic_model_is_an_accepted_response_format() -> None:
    class Answer(BaseModel):
        value: int

    assert UnifiedRequest(text="x", response_format=Answer).response_format is Answer


def test_has_text_considers_messages_and_items() -> None:
    assert not UnifiedRequest(text="   ").has_text
    assert UnifiedRequest(messages=[{"role": "user", "content": "x"}]).has_text
    assert UnifiedRequest(input_items=[{"role": "user", "content": "x"}]).has_text


def test_with_updates_returns_a_copy() -> None:
    original = UnifiedRequest(text="Hi")
    updated = original.with_updates(text=None, conversation_id="conv_1")
    assert original.text == "Hi"
    assert updated.text is None
    assert updated.conversation_id == "conv_1"
