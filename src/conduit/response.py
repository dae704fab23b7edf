"""Unified response types and envelope normalization."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import json
from typing import Any, TypedDict

TERMINAL_EVENT_TYPES: frozenset[str] = frozenset(
    {"response.completed", "response.failed", "response.canceled"}
)


def _decode_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, str) and raw.strip():
        try:
            decoded = json.loads(raw)
        except ValueError:
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


@dataclass(frozen=True)
class ToolCall:
    """A tool call requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def parse(cls, data: Any) -> ToolCall | None:
        """Extract a tool call from the common provider shapes, or None."""
        if not isinstance(data, Mapping):
            return None
        for nested in ("tool_call", "item"):
            inner = data.get(nested)
            if isinstance(inner, Mapping) and "name" not in data:
                return cls.parse(inner)
        fn = data.get("function")
        name = data.get("name")
        args: Any = data.get("arguments")
        if isinstance(fn, Mapping):
            name = name or fn.get("name")
            args = args if args is not None else fn.get("arguments")
        call_id = data.get("call_id") or data.get("id")
        if not call_id or not name:
            return None
        return cls(id=str(call_id), name=str(name), arguments=_decode_arguments(args))

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": dict(self.arguments)}


@dataclass(frozen=True)
class ImageResult:
    """One generated image: a hosted URL or inline base64, never both required."""

    url: str | None = None
    b64_json: str | None = None
    revised_prompt: str | None = None

    @classmethod
    def parse(cls, data: Any) -> ImageResult | None:
        if not isinstance(data, Mapping):
            return None
        return cls(
            url=_opt_str(data.get("url")),
            b64_json=_opt_str(data.get("b64_json")),
            revised_prompt=_opt_str(data.get("revised_prompt")),
        )


@dataclass(frozen=True)
class ResponseDto:
    """Unified response produced by an adapter from one provider call."""

    id: str
    type: str
    status: str = "completed"
    text: str | None = None
    audio_content: str | None = None
    images: tuple[ImageResult, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)
    conversation_id: str | None = None
    tool_calls: tuple[ToolCall, ...] = ()

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "status": self.status,
            "text": self.text,
            "audio_content": self.audio_content,
            "images": [
                {"url": i.url, "b64_json": i.b64_json, "revised_prompt": i.revised_prompt}
                for i in self.images
            ],
            "metadata": dict(self.metadata),
            "raw": self.raw,
            "conversation_id": self.conversation_id,
            "tool_calls": [tc.to_dict() for tc in self.tool_calls],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ResponseDto:
        """Rebuild a ResponseDto previously serialized with ``to_dict``."""
        images = tuple(
            img
            for img in (ImageResult.parse(i) for i in data.get("images") or ())
            if img is not None
        )
        calls = tuple(
            tc
            for tc in (ToolCall.parse(c) for c in data.get("tool_calls") or ())
            if tc is not None
        )
        return cls(
            id=str(data.get("id", "")),
            type=str(data.get("type", "")),
            status=str(data.get("status") or "completed"),
            text=data.get("text"),
            audio_content=data.get("audio_content"),
            images=images,
            metadata=dict(data.get("metadata") or {}),
            raw=dict(data.get("raw") or {}),
            conversation_id=data.get("conversation_id"),
            tool_calls=calls,
        )


@dataclass(frozen=True)
class StreamingEvent:
    """One normalized server-sent event."""

    type: str
    data: dict[str, Any] = field(default_factory=dict)
    is_final: bool = False

    @property
    def is_text_delta(self) -> bool:
        return self.type == "response.output_text.delta"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.data, "isFinal": self.is_final}


class TurnResult(TypedDict, total=False):
    """Envelope returned for a completed conversational turn.

    ``tool_calls`` is empty once the orchestrator has resolved every round.
    """

    conversation_id: str | None
    response_id: str | None
    #: All assistant text of the final response, joined with newlines.
    messages: str
    message_blocks: list[dict[str, Any]]
    tool_calls: list[dict[str, Any]]
    usage: dict[str, Any]
    finish_reason: str | None
    raw: dict[str, Any]


def tool_result_item(tool_call_id: str, output: Any) -> dict[str, Any]:
    """Build a ``tool_result`` conversation item for one tool call."""
    text = output if isinstance(output, str) else json.dumps(output, default=str)
    return {
        "type": "tool_result",
        "role": "tool",
        "tool_call_id": tool_call_id,
        "content": [{"type": "output_text", "text": text}],
    }


def extract_output(output: Any) -> tuple[list[str], list[dict[str, Any]], list[ToolCall]]:
    """Split a Responses-style ``output`` list into texts, blocks and tool calls."""
    texts: list[str] = []
    blocks: list[dict[str, Any]] = []
    calls: list[ToolCall] = []
    if not isinstance(output, list):
        return texts, blocks, calls

    for item in output:
        if not isinstance(item, Mapping):
            continue
        kind = item.get("type")
        if kind == "output_text":
            text = item.get("text")
            if text is None:
                content = item.get("content")
                if isinstance(content, list) and content and isinstance(content[0], Mapping):
                    text = content[0].get("text")
            if isinstance(text, str):
                texts.append(text)
                blocks.append({"type": "output_text", "text": text})
        elif kind == "message":
            parts: list[str] = []
            for block in item.get("content") or ():
                if not isinstance(block, Mapping):
                    continue
                if block.get("type") in ("text", "output_text") and isinstance(
                    block.get("text"), str
                ):
                    parts.append(block["text"])
                    blocks.append({"type": "output_text", "text": block["text"]})
            if parts:
                texts.append("\n".join(parts))
        elif kind in ("tool_call", "function_call"):
            call = ToolCall.parse(item)
            if call is not None:
                calls.append(call)
    return texts, blocks, calls


def normalize_envelope(response: ResponseDto | Mapping[str, Any]) -> TurnResult:
    """Build a TurnResult from a ResponseDto or a raw Responses API payload."""
    if isinstance(response, ResponseDto):
        raw = response.raw
        _, blocks, _ = extract_output(raw.get("output"))
        usage = response.metadata.get("usage") or raw.get("usage") or {}
        return TurnResult(
            conversation_id=response.conversation_id,
            response_id=response.id,
            messages=response.text or "",
            message_blocks=blocks,
            tool_calls=[tc.to_dict() for tc in response.tool_calls],
            usage=dict(usage) if isinstance(usage, Mapping) else {},
            finish_reason=_finish_reason(raw),
            raw=raw,
        )

    raw = dict(response)
    texts, blocks, calls = extract_output(raw.get("output"))
    if not texts and isinstance(raw.get("output_text"), str):
        texts.append(raw["output_text"])
    conversation = raw.get("conversation")
    conversation_id = raw.get("conversation_id") or (
        conversation.get("id") if isinstance(conversation, Mapping) else conversation
    )
    usage = raw.get("usage")
    return TurnResult(
        conversation_id=_opt_str(conversation_id),
        response_id=_opt_str(raw.get("id")),
        messages="\n".join(texts),
        message_blocks=blocks,
        tool_calls=[tc.to_dict() for tc in calls],
        usage=dict(usage) if isinstance(usage, Mapping) else {},
        finish_reason=_finish_reason(raw),
        raw=raw,
    )


def _finish_reason(raw: Mapping[str, Any]) -> str | None:
    details = raw.get("incomplete_details")
    if isinstance(details, Mapping) and isinstance(details.get("reason"), str):
        return details["reason"]
    choices = raw.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], Mapping):
        reason = choices[0].get("finish_reason")
        if isinstance(reason, str):
            return reason
    status = raw.get("status")
    return status if isinstance(status, str) else None


def _opt_str(value: Any) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)
