"""Adapter factory: one memoized adapter instance per endpoint kind."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from conduit.adapters.audio import (
    AudioSpeechAdapter,
    AudioTranscriptionAdapter,
    AudioTranslationAdapter,
)
from conduit.adapters.image import (
    ImageEditAdapter,
    ImageGenerationAdapter,
    ImageVariationAdapter,
)
from conduit.adapters.text import (
    DEFAULT_TEXT_MODEL,
    ChatCompletionAdapter,
    ResponseApiAdapter,
)
from conduit.endpoints import Endpoint
from conduit.files import LocalFileValidator

if TYPE_CHECKING:
    from conduit.adapters.base import EndpointAdapter
    from conduit.files import FileValidator


class AdapterFactory:
    """Resolve and cache adapters.

    Adapters hold no per-call state, so a single instance per endpoint is
    shared by every turn that uses this factory.
    """

    def __init__(
        self,
        *,
        validator: FileValidator | None = None,
        default_model: str = DEFAULT_TEXT_MODEL,
        default_instructions: str | None = None,
    ) -> None:
        self.validator = validator or LocalFileValidator()
        self.default_model = default_model
        self.default_instructions = default_instructions
        self._cache: dict[Endpoint, EndpointAdapter] = {}
        self._lock = threading.Lock()

    def make(self, endpoint: Endpoint | str) -> EndpointAdapter:
        endpoint = Endpoint.parse(endpoint)
        adapter = self._cache.get(endpoint)
        if adapter is not None:
            return adapter
        with self._lock:
            adapter = self._cache.get(endpoint)
            if adapter is None:
                adapter = self._build(endpoint)
                self._cache[endpoint] = adapter
        return adapter

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def _build(self, endpoint: Endpoint) -> EndpointAdapter:
        if endpoint is Endpoint.AUDIO_TRANSCRIPTION:
            return AudioTranscriptionAdapter(self.validator)
        if endpoint is Endpoint.AUDIO_TRANSLATION:
            return AudioTranslationAdapter(self.validator)
        if endpoint is Endpoint.AUDIO_SPEECH:
            return AudioSpeechAdapter()
        if endpoint is Endpoint.IMAGE_GENERATION:
            return ImageGenerationAdapter(self.validator)
        if endpoint is Endpoint.IMAGE_EDIT:
            return ImageEditAdapter(self.validator)
        if endpoint is Endpoint.IMAGE_VARIATION:
            return ImageVariationAdapter(self.validator)
        if endpoint is Endpoint.CHAT_COMPLETION:
            return ChatCompletionAdapter(self.default_model)
        return ResponseApiAdapter(self.default_model, self.default_instructions)
