"""Fluent request builder bound to an orchestrator.

Example:
    response = await (
        builder(orchestrator)
        .instructions("Be brief.")
        .message("What is an SSE stream?")
        .send()
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from conduit.request import UnifiedRequest

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from conduit.orchestrator import TurnOrchestrator
    from conduit.request import ResponseFormatInput, ToolChoice
    from conduit.response import ResponseDto, StreamingEvent
    from conduit.streaming import EventCallback, StopPredicate


class ResponsesBuilder:
    """Accumulate request fields, then send or stream them.

    Each setter returns the builder, so calls chain. ``build()`` validates and
    returns the UnifiedRequest without sending it.
    """

    def __init__(self, orchestrator: TurnOrchestrator) -> None:
        self._orchestrator = orchestrator
        self._fields: dict[str, Any] = {}
        self._items: list[dict[str, Any]] = []

    def _set(self, key: str, value: Any) -> ResponsesBuilder:
        self._fields[key] = value
        return self

    def message(self, text: str) -> ResponsesBuilder:
        return self._set("text", text)

    def audio(self, config: Mapping[str, Any]) -> ResponsesBuilder:
        return self._set("audio", dict(config))

    def audio_input(self, config: Mapping[str, Any]) -> ResponsesBuilder:
        """Inline base64 audio for chat completion: ``{"data": ..., "format": "wav"}``."""
        return self._set("audio_input", dict(config))

    def image(self, config: Mapping[str, Any]) -> ResponsesBuilder:
        return self._set("image", dict(config))

    def instructions(self, text: str) -> ResponsesBuilder:
        return self._set("instructions", text)

    def model(self, name: str) -> ResponsesBuilder:
        return self._set("model", name)

    def temperature(self, value: float) -> ResponsesBuilder:
        return self._set("temperature", value)

    def tool_choice(self, choice: ToolChoice) -> ResponsesBuilder:
        return self._set("tool_choice", choice)

    def response_format(self, fmt: ResponseFormatInput) -> ResponsesBuilder:
        return self._set("response_format", fmt)

    def tools(self, tools: list[dict[str, Any]]) -> ResponsesBuilder:
        return self._set("tools", list(tools))

    def in_conversation(self, conversation_id: str) -> ResponsesBuilder:
        return self._set("conversation_id", conversation_id)

    def metadata(self, metadata: Mapping[str, Any]) -> ResponsesBuilder:
        return self._set("metadata", dict(metadata))

    def modalities(self, modalities: list[str]) -> ResponsesBuilder:
        return self._set("modalities", list(modalities))

    def idempotency_key(self, key: str) -> ResponsesBuilder:
        return self._set("idempotency_key", key)

    def file_ids(self, file_ids: list[str]) -> ResponsesBuilder:
        return self._set("file_ids", list(file_ids))

    def input_items(self, items: list[dict[str, Any]]) -> ResponsesBuilder:
        """Replace the raw input items."""
        self._items = [dict(i) for i in items]
        return self

    def append_user_text(self, text: str) -> ResponsesBuilder:
        self._items.append({"role": "user", "content": [{"type": "input_text", "text": text}]})
        return self

    def append_user_image_url(self, url: str) -> ResponsesBuilder:
        self._items.append({"role": "user", "content": [{"type": "input_image", "image_url": url}]})
        return self

    def append_user_image_id(self, file_id: str) -> ResponsesBuilder:
        content = [{"type": "input_image", "file_id": file_id}]
        self._items.append({"role": "user", "content": content})
        return self

    def build(self) -> UnifiedRequest:
        data = dict(self._fields)
        if self._items:
            data["input_items"] = [dict(i) for i in self._items]
        return UnifiedRequest.from_mapping(data)

    async def send(self) -> ResponseDto:
        return await self._orchestrator.send(self.build())

    def stream(
        self,
        on_event: EventCallback | None = None,
        should_stop: StopPredicate | None = None,
    ) -> AsyncIterator[StreamingEvent]:
        return self._orchestrator.stream(
            self.build(), on_event=on_event, should_stop=should_stop
        )
