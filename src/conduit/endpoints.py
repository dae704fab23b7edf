"""The closed set of provider endpoints a unified request can be routed to."""

from __future__ import annotations

from enum import Enum
from typing import Literal

from conduit.errors import EndpointRoutingError

Modality = Literal["audio", "image", "text"]


class Endpoint(str, Enum):
    """Provider endpoint kinds, valued by their stable configuration names."""

    AUDIO_TRANSCRIPTION = "audio_transcription"
    AUDIO_TRANSLATION = "audio_translation"
    AUDIO_SPEECH = "audio_speech"
    IMAGE_GENERATION = "image_generation"
    IMAGE_EDIT = "image_edit"
    IMAGE_VARIATION = "image_variation"
    CHAT_COMPLETION = "chat_completion"
    RESPONSE_API = "response_api"

    def __str__(self) -> str:
        return self.value

    @property
    def path(self) -> str:
        """Path relative to the API base URL."""
        return _PATHS[self]

    @property
    def is_audio(self) -> bool:
        return self in _AUDIO

    @property
    def is_image(self) -> bool:
        return self in _IMAGE

    @property
    def is_text(self) -> bool:
        return not (self.is_audio or self.is_image)

    @property
    def modality(self) -> Modality:
        """Routing family; chat completion counts as text even with audio input."""
        if self.is_audio:
            return "audio"
        if self.is_image:
            return "image"
        return "text"

    @property
    def requires_multipart(self) -> bool:
        return self in _MULTIPART

    @property
    def supports_streaming(self) -> bool:
        return self.is_text

    @classmethod
    def parse(cls, name: str | Endpoint) -> Endpoint:
        """Resolve a configuration name, failing fast on unknown values."""
        if isinstance(name, cls):
            return name
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            valid = ", ".join(e.value for e in cls)
            raise EndpointRoutingError.invalid_priority_configuration(
                f"Unknown endpoint {name!r}. Invalid endpoints: {name}. "
                f"Valid endpoints: {valid}."
            ) from None


_PATHS: dict[Endpoint, str] = {
    Endpoint.RESPONSE_API: "/responses",
    Endpoint.CHAT_COMPLETION: "/chat/completions",
    Endpoint.AUDIO_TRANSCRIPTION: "/audio/transcriptions",
    Endpoint.AUDIO_TRANSLATION: "/audio/translations",
    Endpoint.AUDIO_SPEECH: "/audio/speech",
    Endpoint.IMAGE_GENERATION: "/images/generations",
    Endpoint.IMAGE_EDIT: "/images/edits",
    Endpoint.IMAGE_VARIATION: "/images/variations",
}

_AUDIO = frozenset(
    {Endpoint.AUDIO_TRANSCRIPTION, Endpoint.AUDIO_TRANSLATION, Endpoint.AUDIO_SPEECH}
)
_IMAGE = frozenset(
    {Endpoint.IMAGE_GENERATION, Endpoint.IMAGE_EDIT, Endpoint.IMAGE_VARIATION}
)
_MULTIPART = frozenset(
    {
        Endpoint.AUDIO_TRANSCRIPTION,
        Endpoint.AUDIO_TRANSLATION,
        Endpoint.IMAGE_EDIT,
        Endpoint.IMAGE_VARIATION,
    }
)
