"""Unified request: the endpoint-agnostic shape callers build.

Each modality is a small frozen dataclass validated at construction, so
adapters and the router never read from loosely-typed bags.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel

from conduit.errors import ValidationError

AudioAction = Literal["transcribe", "translate", "speech"]
ResponseFormatInput = str | dict[str, Any] | type[BaseModel]
ToolChoice = Literal["auto", "required", "none"] | dict[str, Any]

_AUDIO_ACTIONS = ("transcribe", "translate", "speech")

# camelCase spellings accepted by from_mapping()
_KEY_ALIASES: dict[str, str] = {
    "conversationId": "conversation_id",
    "toolChoice": "tool_choice",
    "responseFormat": "response_format",
    "idempotencyKey": "idempotency_key",
    "audioInput": "audio_input",
    "inputItems": "input_items",
    "fileIds": "file_ids",
    "useFileSearch": "use_file_search",
    "maxTokens": "max_tokens",
    "maxOutputTokens": "max_tokens",
    "max_output_tokens": "max_tokens",
}


def _canonical(key: str) -> str:
    return _KEY_ALIASES.get(key, key)


@dataclass(frozen=True)
class AudioInput:
    """Audio instructions: transcribe/translate a file, or synthesize speech."""

    action: AudioAction | None = None
    file: str | Path | None = None
    text: str | None = None
    model: str | None = None
    voice: str | None = None
    language: str | None = None
    prompt: str | None = None
    response_format: str | None = None
    #: Alias for ``response_format`` on speech requests.
    format: str | None = None
    temperature: float | None = None
    speed: float | None = None

    def __post_init__(self) -> None:
        if self.action is not None and self.action not in _AUDIO_ACTIONS:
            raise ValidationError(
                f"Unknown audio action: {self.action!r}",
                hint="Use 'transcribe', 'translate' or 'speech'.",
                field="audio.action",
            )
        if self.temperature is not None and not isinstance(
            self.temperature, (int, float)
        ):
            raise ValidationError(
                "audio.temperature must be a number", field="audio.temperature"
            )
        if self.speed is not None and not isinstance(self.speed, (int, float)):
            raise ValidationError("audio.speed must be a number", field="audio.speed")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> AudioInput:
        return cls(**_known_kwargs(cls, data, label="audio"))


@dataclass(frozen=True)
class ImageInput:
    """Image instructions: generate from a prompt, edit, or vary an image."""

    prompt: str | None = None
    image: str | Path | None = None
    mask: str | Path | None = None
    model: str | None = None
    n: int | None = None
    size: str | None = None
    quality: str | None = None
    style: str | None = None
    response_format: str | None = None
    user: str | None = None

    def __post_init__(self) -> None:
        if self.n is not None and (isinstance(self.n, bool) or not isinstance(self.n, int)):
            raise ValidationError("image.n must be an integer", field="image.n")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ImageInput:
        return cls(**_known_kwargs(cls, data, label="image"))


@dataclass(frozen=True)
class UnifiedRequest:
    """Endpoint-agnostic request for one turn.

    At most one of ``text``, ``audio`` and ``image`` is expected; the router
    reports anything else as a conflict.
    """

    text: str | None = None
    audio: AudioInput | None = None
    image: ImageInput | None = None
    #: Inline audio for chat completion: ``{"data": <base64>, "format": "wav"}``.
    audio_input: dict[str, Any] | None = None
    messages: list[dict[str, Any]] | None = None
    input_items: list[dict[str, Any]] | None = None

    conversation_id: str | None = None
    instructions: str | None = None
    model: str | None = None
    tools: list[dict[str, Any]] | None = None
    tool_choice: ToolChoice | None = None
    response_format: ResponseFormatInput | None = None
    modalities: list[str] | None = None
    metadata: dict[str, Any] | None = None
    idempotency_key: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    file_ids: list[str] | None = None
    attachments: list[dict[str, Any]] | None = None
    use_file_search: bool = True
    stream: bool = False
    #: Unrecognised keys, passed through to text endpoints untouched.
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.text is not None and not isinstance(self.text, str):
            raise ValidationError("text must be a string", field="text")
        if self.audio is not None and not isinstance(self.audio, AudioInput):
            raise ValidationError(
                "audio must be an AudioInput",
                hint="Use UnifiedRequest.from_mapping() to pass plain dicts.",
                field="audio",
            )
        if self.image is not None and not isinstance(self.image, ImageInput):
            raise ValidationError(
                "image must be an ImageInput",
                hint="Use UnifiedRequest.from_mapping() to pass plain dicts.",
                field="image",
            )
        if self.audio_input is not None and not isinstance(self.audio_input, dict):
            raise ValidationError(
                "audio_input must be a mapping with base64 'data'",
                field="audio_input",
            )
        if self.max_tokens is not None and (
            not isinstance(self.max_tokens, int) or self.max_tokens < 1
        ):
            raise ValidationError(
                "max_tokens must be a positive integer", field="max_tokens"
            )
        if self.response_format is not None and not (
            isinstance(self.response_format, (str, dict))
            or (
                isinstance(self.response_format, type)
                and issubclass(self.response_format, BaseModel)
            )
        ):
            raise ValidationError(
                "response_format must be a string, a dict, or a Pydantic model class",
                field="response_format",
            )

    @property
    def has_text(self) -> bool:
        return bool(
            (self.text is not None and self.text.strip())
            or self.messages
            or self.input_items
        )

    def populated_modalities(self) -> list[str]:
        """Top-level modality keys in use, in text/audio/image order."""
        found = []
        if self.has_text:
            found.append("text")
        if self.audio is not None:
            found.append("audio")
        if self.image is not None:
            found.append("image")
        return found

    def with_updates(self, **changes: Any) -> UnifiedRequest:
        return replace(self, **changes)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> UnifiedRequest:
        """Build a request from a plain mapping (snake_case or camelCase keys)."""
        if not isinstance(data, Mapping):
            raise ValidationError(
                f"Expected a mapping, got {type(data).__name__}",
                hint="Pass a dict such as {'text': 'Hello'}.",
            )
        known = {f.name for f in fields(cls)} - {"extra"}
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for raw_key, value in data.items():
            key = _canonical(str(raw_key))
            if key in known:
                kwargs[key] = value
            else:
                extra[key] = value

        # "input" may carry a plain string or a list of input items
        raw_input = extra.pop("input", None)
        if isinstance(raw_input, str) and "text" not in kwargs:
            kwargs["text"] = raw_input
        elif isinstance(raw_input, list) and "input_items" not in kwargs:
            kwargs["input_items"] = raw_input

        audio = kwargs.get("audio")
        if audio is not None and not isinstance(audio, AudioInput):
            if not isinstance(audio, Mapping):
                raise ValidationError("audio must be a mapping", field="audio")
            kwargs["audio"] = AudioInput.from_mapping(audio)
        image = kwargs.get("image")
        if image is not None and not isinstance(image, ImageInput):
            if not isinstance(image, Mapping):
                raise ValidationError("image must be a mapping", field="image")
            kwargs["image"] = ImageInput.from_mapping(image)
        return cls(**kwargs, extra=extra)


def normalize_request(request: UnifiedRequest | Mapping[str, Any]) -> UnifiedRequest:
    """Validate and normalize caller input into a UnifiedRequest.

    Raises:
        ValidationError: If the input is not a mapping or has malformed fields.
    """
    if isinstance(request, UnifiedRequest):
        return request
    return UnifiedRequest.from_mapping(request)


def _known_kwargs(cls: type, data: Mapping[str, Any], *, label: str) -> dict[str, Any]:
    names = {f.name for f in fields(cls)}
    kwargs: dict[str, Any] = {}
    for raw_key, value in data.items():
        key = _canonical(str(raw_key))
        if key in names:
            kwargs[key] = value
        else:
            raise ValidationError(
                f"Unknown {label} field: {raw_key!r}",
                hint=f"Known fields: {', '.join(sorted(names))}",
                field=f"{label}.{raw_key}",
            )
    return kwargs
