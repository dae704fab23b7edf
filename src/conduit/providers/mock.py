"""Mock transport for testing and offline use."""

from __future__ import annotations

import base64
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field
import json
from typing import TYPE_CHECKING, Any

from conduit._http import speech_metadata
from conduit.endpoints import Endpoint

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable

MOCK_AUDIO = b"mock-audio"
MOCK_IMAGE_URL = "https://example.invalid/mock.png"
_USAGE = {"input_tokens": 10, "output_tokens": 10, "total_tokens": 20}


@dataclass(frozen=True)
class RecordedCall:
    """One call observed by the mock transport."""

    endpoint: Endpoint
    payload: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)
    stream: bool = False


def _last_text(payload: Mapping[str, Any]) -> str:
    """Best-effort: the last user-visible text in a text payload."""
    for key in ("input", "messages"):
        items = payload.get(key)
        if not isinstance(items, list):
            continue
        for item in reversed(items):
            if not isinstance(item, Mapping):
                continue
            content = item.get("content")
            if isinstance(content, str):
                return content
            for block in reversed(content if isinstance(content, list) else []):
                if isinstance(block, Mapping) and isinstance(block.get("text"), str):
                    return block["text"]
    return ""


def sse_lines(events: Iterable[tuple[str, Mapping[str, Any]]]) -> list[str]:
    """Render ``(event_type, data)`` pairs as SSE lines, blank-line separated."""
    lines: list[str] = []
    for kind, data in events:
        lines.extend([f"event: {kind}", f"data: {json.dumps({'type': kind, **data})}", ""])
    return lines


class MockTransport:
    """Deterministic transport that never touches the network.

    Responses are taken from ``script`` (FIFO) when provided; entries that are
    exceptions are raised instead. Otherwise each endpoint returns a synthetic
    payload echoing the request. Every call is recorded in ``calls``.
    """

    def __init__(
        self,
        script: Iterable[Mapping[str, Any] | BaseException] = (),
        *,
        stream_scripts: Iterable[Iterable[str]] = (),
    ) -> None:
        self._script: deque[Mapping[str, Any] | BaseException] = deque(script)
        self._streams: deque[list[str]] = deque(list(s) for s in stream_scripts)
        self.calls: list[RecordedCall] = []
        self.closed = False

    def queue(self, *responses: Mapping[str, Any] | BaseException) -> None:
        self._script.extend(responses)

    def queue_stream(self, lines: Iterable[str]) -> None:
        self._streams.append(list(lines))

    async def call(
        self,
        endpoint: Endpoint,
        payload: Mapping[str, Any],
        *,
        headers: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        self.calls.append(RecordedCall(endpoint, dict(payload), dict(headers or {})))
        if self._script:
            scripted = self._script.popleft()
            if isinstance(scripted, BaseException):
                raise scripted
            return dict(scripted)
        return self._synthesize(endpoint, payload)

    async def stream(
        self,
        endpoint: Endpoint,
        payload: Mapping[str, Any],
        *,
        headers: Mapping[str, str] | None = None,
    ) -> AsyncIterator[str]:
        self.calls.append(
            RecordedCall(endpoint, dict(payload), dict(headers or {}), stream=True)
        )
        if self._streams:
            lines = self._streams.popleft()
        else:
            text = f"echo: {_last_text(payload)[:100]}"
            words = text.split(" ")
            deltas = [w if i == 0 else f" {w}" for i, w in enumerate(words)]
            lines = sse_lines(
                [("response.output_text.delta", {"delta": d}) for d in deltas]
                + [
                    ("response.output_text.done", {"text": text}),
                    ("response.completed", {"response": {"id": "resp_mock_stream"}}),
                ]
            )
        for line in lines:
            yield line

    async def aclose(self) -> None:
        self.closed = True

    def _synthesize(self, endpoint: Endpoint, payload: Mapping[str, Any]) -> dict[str, Any]:
        n = len(self.calls)
        if endpoint is Endpoint.AUDIO_TRANSCRIPTION:
            return {"text": "mock transcription", "duration": 1.0, "language": "en"}
        if endpoint is Endpoint.AUDIO_TRANSLATION:
            return {"text": "mock translation", "duration": 1.0}
        if endpoint is Endpoint.AUDIO_SPEECH:
            return {
                "content": base64.b64encode(MOCK_AUDIO).decode("ascii"),
                "content_type": "audio/mpeg",
                **speech_metadata(payload),
            }
        if endpoint.is_image:
            count = payload.get("n") if isinstance(payload.get("n"), int) else 1
            return {
                "created": 0,
                "data": [
                    {"url": MOCK_IMAGE_URL, "revised_prompt": payload.get("prompt")}
                    for _ in range(count)
                ],
            }

        text = f"echo: {_last_text(payload)[:100]}"
        if endpoint is Endpoint.CHAT_COMPLETION:
            return {
                "id": f"chatcmpl-mock-{n}",
                "object": "chat.completion",
                "created": 0,
                "model": payload.get("model"),
                "choices": [
                    {
                        "index": 0,
                        "message": {"role": "assistant", "content": text},
                        "finish_reason": "stop",
                    }
                ],
                "usage": dict(_USAGE),
            }
        response: dict[str, Any] = {
            "id": f"resp_mock_{n}",
            "object": "response",
            "status": "completed",
            "created_at": 0,
            "model": payload.get("model"),
            "output": [
                {
                    "type": "message",
                    "role": "assistant",
                    "content": [{"type": "output_text", "text": text}],
                }
            ],
            "usage": dict(_USAGE),
        }
        if payload.get("conversation"):
            response["conversation"] = {"id": payload["conversation"]}
        return response
