"""Text adapters: Chat Completions and the Responses API."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from conduit.adapters._schema import chat_response_format, resolve_format
from conduit.adapters.base import as_mapping, new_response_id, opt_str, set_if_present
from conduit.endpoints import Endpoint
from conduit.errors import ValidationError
from conduit.response import ResponseDto, ToolCall, extract_output

if TYPE_CHECKING:
    from conduit.request import UnifiedRequest

DEFAULT_TEXT_MODEL = "gpt-4o-mini"

# Sampling knobs copied verbatim from request.extra when present.
_CHAT_PASSTHROUGH = ("top_p", "frequency_penalty", "presence_penalty", "user")
_RESPONSES_PASSTHROUGH = ("top_p", "user", "store", "previous_response_id")


class ChatCompletionAdapter:
    """``/chat/completions``: messages in, one assistant message out."""

    endpoint = Endpoint.CHAT_COMPLETION

    def __init__(self, default_model: str = DEFAULT_TEXT_MODEL) -> None:
        self.default_model = default_model

    def transform_request(self, request: UnifiedRequest) -> dict[str, Any]:
        messages = self.build_messages(request)
        if not messages:
            raise ValidationError(
                "At least one message is required for chat completion",
                hint="Pass text, messages, or audio_input={'data': ..., 'format': 'wav'}.",
                endpoint=self.endpoint.value,
                field="messages",
            )
        payload: dict[str, Any] = {
            "model": request.model or self.default_model,
            "messages": messages,
        }
        set_if_present(payload, "temperature", request.temperature)
        set_if_present(payload, "max_tokens", request.max_tokens)
        for key in _CHAT_PASSTHROUGH:
            set_if_present(payload, key, request.extra.get(key))
        if request.tools:
            payload["tools"] = list(request.tools)
        set_if_present(payload, "tool_choice", request.tool_choice)
        set_if_present(payload, "response_format", chat_response_format(request.response_format))
        if request.modalities:
            payload["modalities"] = list(request.modalities)
        if request.stream:
            payload["stream"] = True
        return payload

    @staticmethod
    def build_messages(request: UnifiedRequest) -> list[dict[str, Any]]:
        messages = [dict(m) for m in request.messages or () if isinstance(m, Mapping)]
        if request.instructions and not any(m.get("role") == "system" for m in messages):
            messages.insert(0, {"role": "system", "content": request.instructions})
        if request.text is not None and request.text.strip():
            messages.append({"role": "user", "content": request.text})
        audio_input = request.audio_input
        if audio_input is not None and audio_input.get("data"):
            messages.append(
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "input_audio",
                            "input_audio": {
                                "data": audio_input["data"],
                                "format": audio_input.get("format") or "wav",
                            },
                        }
                    ],
                }
            )
        return messages

    def transform_response(self, payload: Mapping[str, Any]) -> ResponseDto:
        raw = as_mapping(payload)
        choices = raw.get("choices")
        choice = choices[0] if isinstance(choices, list) and choices else {}
        choice = choice if isinstance(choice, Mapping) else {}
        message = choice.get("message")
        message = dict(message) if isinstance(message, Mapping) else {}
        content = message.get("content")
        calls = message.get("tool_calls")
        tool_calls = tuple(
            tc
            for tc in (ToolCall.parse(c) for c in (calls if isinstance(calls, list) else ()))
            if tc is not None
        )
        return ResponseDto(
            id=opt_str(raw.get("id")) or new_response_id(self.endpoint),
            type=self.endpoint.value,
            status="completed",
            text=content if isinstance(content, str) else None,
            metadata={
                "model": raw.get("model"),
                "created": raw.get("created"),
                "finish_reason": choice.get("finish_reason"),
                "message": message,
                "usage": raw.get("usage"),
            },
            raw=raw,
            tool_calls=tool_calls,
        )


class ResponseApiAdapter:
    """``/responses``: the conversational default for text turns."""

    endpoint = Endpoint.RESPONSE_API

    def __init__(
        self,
        default_model: str = DEFAULT_TEXT_MODEL,
        default_instructions: str | None = None,
    ) -> None:
        self.default_model = default_model
        self.default_instructions = default_instructions

    def transform_request(self, request: UnifiedRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {"model": request.model or self.default_model}
        set_if_present(payload, "conversation", request.conversation_id)
        instructions = request.instructions or self.default_instructions
        if instructions:
            payload["instructions"] = instructions

        input_items = self._build_input(request)
        if input_items:
            payload["input"] = input_items

        if request.tools:
            payload["tools"] = list(request.tools)
        set_if_present(payload, "tool_choice", request.tool_choice)
        fmt = resolve_format(request.response_format)
        if fmt is not None:
            payload["text"] = {"format": fmt}
        if request.modalities:
            payload["modalities"] = list(request.modalities)
        if request.metadata:
            payload["metadata"] = dict(request.metadata)
        set_if_present(payload, "temperature", request.temperature)
        set_if_present(payload, "max_output_tokens", request.max_tokens)
        for key in _RESPONSES_PASSTHROUGH:
            set_if_present(payload, key, request.extra.get(key))
        if request.stream:
            payload["stream"] = True
        return payload

    def _build_input(self, request: UnifiedRequest) -> list[dict[str, Any]]:
        if request.input_items:
            items = [normalize_input_item(i) for i in request.input_items if isinstance(i, Mapping)]
        elif request.text is not None and request.text.strip():
            items = [{"role": "user", "content": [{"type": "input_text", "text": request.text}]}]
        else:
            items = [_message_to_item(m) for m in request.messages or () if isinstance(m, Mapping)]

        file_ids = [f for f in dict.fromkeys(request.file_ids or ()) if isinstance(f, str)]
        attachments = build_attachments(file_ids, request.attachments, endpoint=self.endpoint)
        if (file_ids or attachments) and not items:
            items = [{"role": "user", "content": []}]
        if items:
            last_user = next(
                (i for i in reversed(items) if i.get("role") == "user"), items[-1]
            )
            content = last_user.setdefault("content", [])
            for fid in file_ids:
                content.append({"type": "file_reference", "file_id": fid})
            if attachments:
                last_user["attachments"] = attachments
        return items

    def transform_response(self, payload: Mapping[str, Any]) -> ResponseDto:
        raw = as_mapping(payload)
        texts, _, tool_calls = extract_output(raw.get("output"))
        text = _first_text(raw)
        if text is None and texts:
            text = "\n".join(texts)
        conversation = raw.get("conversation")
        conversation_id = (
            raw.get("conversationId")
            or raw.get("conversation_id")
            or (conversation.get("id") if isinstance(conversation, Mapping) else conversation)
        )
        return ResponseDto(
            id=opt_str(raw.get("id")) or new_response_id(self.endpoint),
            type=self.endpoint.value,
            status=opt_str(raw.get("status")) or "completed",
            text=text,
            metadata={
                "model": raw.get("model"),
                "created": raw.get("created_at", raw.get("created")),
                "usage": raw.get("usage"),
                "metadata": raw.get("metadata"),
            },
            raw=raw,
            conversation_id=opt_str(conversation_id),
            tool_calls=tuple(tool_calls),
        )


def _first_text(raw: Mapping[str, Any]) -> str | None:
    for key in ("output_text", "content", "text"):
        value = raw.get(key)
        if isinstance(value, str):
            return value
    messages = raw.get("messages")
    return messages if isinstance(messages, str) else None


def normalize_input_item(item: Mapping[str, Any]) -> dict[str, Any]:
    """Normalize legacy input blocks to the Responses API block types."""
    content = item.get("content")
    if isinstance(content, str):
        blocks: list[dict[str, Any]] = [{"type": "input_text", "text": content}]
    else:
        blocks = []
        for block in content if isinstance(content, list) else ():
            if not isinstance(block, Mapping):
                continue
            blk = dict(block)
            if blk.get("type") == "text":
                blk["type"] = "input_text"
            nested = blk.get("image")
            if blk.get("type") == "input_image" and isinstance(nested, Mapping):
                if isinstance(nested.get("file_id"), str):
                    blk["file_id"] = nested["file_id"]
                elif isinstance(nested.get("url"), str):
                    blk["image_url"] = nested["url"]
                del blk["image"]
            blocks.append(blk)
    normalized = {k: v for k, v in item.items() if k != "content"}
    normalized["content"] = blocks
    return normalized


def _message_to_item(message: Mapping[str, Any]) -> dict[str, Any]:
    role = message.get("role") or "user"
    content = message.get("content")
    if isinstance(content, str):
        block_type = "output_text" if role == "assistant" else "input_text"
        return {"role": role, "content": [{"type": block_type, "text": content}]}
    return normalize_input_item(message)


def build_attachments(
    file_ids: list[str],
    attachments: list[dict[str, Any]] | None,
    *,
    endpoint: Endpoint,
) -> list[dict[str, Any]]:
    """Validate caller attachments, or derive file_search ones from file ids."""
    raw = list(attachments or ())
    if not raw and file_ids:
        raw = [{"file_id": fid, "tools": [{"type": "file_search"}]} for fid in file_ids]

    validated: list[dict[str, Any]] = []
    for idx, att in enumerate(raw):
        if not isinstance(att, Mapping):
            raise ValidationError(
                f"Attachment at index {idx} must be a mapping",
                endpoint=endpoint.value,
                field="attachments",
            )
        file_id = att.get("file_id")
        if not isinstance(file_id, str) or not file_id.strip():
            raise ValidationError(
                f"Attachment at index {idx} must include a non-empty file_id string",
                endpoint=endpoint.value,
                field="attachments",
            )
        tools = att.get("tools") or []
        if not isinstance(tools, list):
            raise ValidationError(
                f"Attachment tools for file_id {file_id} must be a list",
                endpoint=endpoint.value,
                field="attachments",
            )
        for t_idx, tool in enumerate(tools):
            kind = tool.get("type") if isinstance(tool, Mapping) else None
            if not isinstance(kind, str) or not kind.strip():
                raise ValidationError(
                    f"Attachment tool at index {t_idx} for file_id {file_id} "
                    "must include a non-empty type",
                    endpoint=endpoint.value,
                    field="attachments",
                )
        validated.append({"file_id": file_id, "tools": [dict(t) for t in tools]})
    return validated
