"""Small HTTP-related constants and helpers shared across Conduit.

Kept separate so transport and retry code can import them without cycles.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

# Retryable status codes shared by transport error mapping and core retry.
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset(
    {408, 425, 429, 500, 502, 503, 504}
)

DEFAULT_BASE_URL = "https://api.openai.com/v1"

# Per-endpoint request timeouts, in seconds.
DEFAULT_TIMEOUT_S = 60.0
AUDIO_SPEECH_TIMEOUT_S = 120.0
IMAGE_TIMEOUT_S = 180.0
STREAM_TIMEOUT_S = 300.0

# Speech replies are bare audio bytes; these request fields describe them.
_SPEECH_ECHO_FIELDS = {
    "voice": "voice",
    "model": "model",
    "speed": "speed",
    "response_format": "format",
}


def speech_metadata(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Return the speech request fields the audio response body does not carry."""
    return {
        name: payload[field]
        for field, name in _SPEECH_ECHO_FIELDS.items()
        if payload.get(field) is not None
    }
