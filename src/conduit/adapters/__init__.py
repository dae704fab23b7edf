"""Endpoint adapters.

Contains:
- The adapter protocol and shared helpers (`base.py`).
- Audio adapters (`audio.py`), image adapters (`image.py`), text adapters (`text.py`).
- The memoizing factory (`factory.py`).
"""

from conduit.adapters.audio import (
    AudioSpeechAdapter,
    AudioTranscriptionAdapter,
    AudioTranslationAdapter,
)
from conduit.adapters.base import EndpointAdapter
from conduit.adapters.factory import AdapterFactory
from conduit.adapters.image import (
    ImageEditAdapter,
    ImageGenerationAdapter,
    ImageVariationAdapter,
)
from conduit.adapters.text import ChatCompletionAdapter, ResponseApiAdapter

__all__ = [
    "AdapterFactory",
    "AudioSpeechAdapter",
    "AudioTranscriptionAdapter",
    "AudioTranslationAdapter",
    "ChatCompletionAdapter",
    "EndpointAdapter",
    "ImageEditAdapter",
    "ImageGenerationAdapter",
    "ImageVariationAdapter",
    "ResponseApiAdapter",
]
