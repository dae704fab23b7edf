"""Audio adapters: transcription, translation, and speech synthesis."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from conduit.adapters.base import (
    as_mapping,
    check_file,
    new_response_id,
    opt_str,
    set_if_present,
)
from conduit.endpoints import Endpoint
from conduit.errors import ValidationError
from conduit.files import MB, LocalFileValidator
from conduit.response import ResponseDto

if TYPE_CHECKING:
    from collections.abc import Mapping

    from conduit.files import FileValidator
    from conduit.request import AudioInput, UnifiedRequest


AUDIO_EXTENSIONS: tuple[str, ...] = ("mp3", "mp4", "mpeg", "mpga", "m4a", "wav", "webm")
MAX_AUDIO_BYTES = 25 * MB

SPEECH_MIN_SPEED = 0.25
SPEECH_MAX_SPEED = 4.0


class _AudioFileAdapter:
    """Shared request building for file-based audio endpoints."""

    endpoint: Endpoint

    def __init__(self, validator: FileValidator | None = None) -> None:
        self.validator = validator or LocalFileValidator()

    def _audio(self, request: UnifiedRequest) -> AudioInput:
        if request.audio is None:
            raise ValidationError(
                "Audio configuration is required",
                hint="Pass audio={'file': 'clip.mp3', 'action': ...}.",
                endpoint=self.endpoint.value,
                field="audio",
            )
        return request.audio

    def _base_payload(self, audio: AudioInput) -> dict[str, Any]:
        if audio.file is None:
            raise ValidationError(
                "Audio file is required",
                endpoint=self.endpoint.value,
                field="audio.file",
            )
        check_file(
            self.validator,
            audio.file,
            endpoint=self.endpoint,
            field="audio.file",
            allowed_extensions=AUDIO_EXTENSIONS,
            max_bytes=MAX_AUDIO_BYTES,
            label="Audio file",
        )
        return {
            "file": audio.file,
            "model": audio.model or "whisper-1",
        }

    def _finish_payload(self, payload: dict[str, Any], audio: AudioInput) -> dict[str, Any]:
        set_if_present(payload, "prompt", audio.prompt)
        payload["response_format"] = audio.response_format or "json"
        payload["temperature"] = audio.temperature if audio.temperature is not None else 0
        return payload


class AudioTranscriptionAdapter(_AudioFileAdapter):
    """``/audio/transcriptions``: speech to text in the source language."""

    endpoint = Endpoint.AUDIO_TRANSCRIPTION

    def transform_request(self, request: UnifiedRequest) -> dict[str, Any]:
        audio = self._audio(request)
        payload = self._base_payload(audio)
        set_if_present(payload, "language", audio.language)
        return self._finish_payload(payload, audio)

    def transform_response(self, payload: Mapping[str, Any]) -> ResponseDto:
        raw = as_mapping(payload)
        return ResponseDto(
            id=opt_str(raw.get("id")) or new_response_id(self.endpoint),
            type=self.endpoint.value,
            status="completed",
            text=opt_str(raw.get("text")),
            metadata={
                "duration": raw.get("duration"),
                "language": raw.get("language"),
            },
            raw=raw,
        )


class AudioTranslationAdapter(_AudioFileAdapter):
    """``/audio/translations``: speech in any language to English text."""

    endpoint = Endpoint.AUDIO_TRANSLATION

    def transform_request(self, request: UnifiedRequest) -> dict[str, Any]:
        audio = self._audio(request)
        payload = self._base_payload(audio)
        return self._finish_payload(payload, audio)

    def transform_response(self, payload: Mapping[str, Any]) -> ResponseDto:
        raw = as_mapping(payload)
        return ResponseDto(
            id=opt_str(raw.get("id")) or new_response_id(self.endpoint),
            type=self.endpoint.value,
            status="completed",
            text=opt_str(raw.get("text")),
            metadata={
                "duration": raw.get("duration"),
                "source_language": raw.get("language"),
                "target_language": "en",
            },
            raw=raw,
        )


class AudioSpeechAdapter:
    """``/audio/speech``: text to synthesized audio."""

    endpoint = Endpoint.AUDIO_SPEECH

    def transform_request(self, request: UnifiedRequest) -> dict[str, Any]:
        audio = request.audio
        if audio is None or audio.text is None or not str(audio.text).strip():
            raise ValidationError(
                "Text is required for speech generation",
                hint="Pass audio={'action': 'speech', 'text': 'Hello'}.",
                endpoint=self.endpoint.value,
                field="audio.text",
            )
        text = audio.text
        speed = audio.speed if audio.speed is not None else 1.0
        if not SPEECH_MIN_SPEED <= speed <= SPEECH_MAX_SPEED:
            raise ValidationError(
                f"Speed must be between {SPEECH_MIN_SPEED} and {SPEECH_MAX_SPEED}, got {speed}",
                endpoint=self.endpoint.value,
                field="audio.speed",
            )
        return {
            "model": audio.model or "tts-1",
            "input": str(text),
            "voice": audio.voice or "alloy",
            "response_format": audio.response_format or audio.format or "mp3",
            "speed": speed,
        }

    def transform_response(self, payload: Mapping[str, Any]) -> ResponseDto:
        raw = as_mapping(payload)
        speed = raw.get("speed")
        return ResponseDto(
            id=opt_str(raw.get("id")) or new_response_id(self.endpoint),
            type=self.endpoint.value,
            status="completed",
            text=None,
            audio_content=opt_str(raw.get("content")),
            metadata={
                "format": opt_str(raw.get("format")) or "mp3",
                "voice": opt_str(raw.get("voice")),
                "model": opt_str(raw.get("model")),
                "speed": speed if speed is not None else 1.0,
            },
            raw=raw,
        )
