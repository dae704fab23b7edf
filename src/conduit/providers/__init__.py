"""Provider transports."""

from .base import ProviderTransport
from .http import HttpTransport
from .mock import MockTransport, RecordedCall

__all__ = [
    "HttpTransport",
    "MockTransport",
    "ProviderTransport",
    "RecordedCall",
]
