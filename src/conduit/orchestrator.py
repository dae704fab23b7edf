"""Turn orchestration: route, call, resolve tool rounds, repeat.

A turn moves through Routing, Calling, then zero or more
ToolExecuting/Appending/Calling rounds, and ends Completed. Streaming turns
run Routing, Streaming, and end Completed or Canceled; tool calls revealed
mid-stream are resolved afterwards with ordinary calls.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from contextlib import aclosing
from dataclasses import replace
import json
import logging
from typing import TYPE_CHECKING, Any

from conduit.adapters.base import new_response_id
from conduit.adapters.factory import AdapterFactory
from conduit.adapters.text import ChatCompletionAdapter
from conduit.config import Config
from conduit.conversations import InMemoryConversationStore, OpenAIConversationStore
from conduit.endpoints import Endpoint
from conduit.errors import InternalError, MaxToolRoundsError, ValidationError
from conduit.idempotency import InMemoryIdempotencyStore, build_idempotency_key
from conduit.providers.http import HttpTransport
from conduit.providers.mock import MockTransport
from conduit.request import normalize_request
from conduit.response import (
    ResponseDto,
    StreamingEvent,
    ToolCall,
    TurnResult,
    normalize_envelope,
    tool_result_item,
)
from conduit.retry import retry_async
from conduit.router import RequestRouter
from conduit.streaming import StreamingEngine
from conduit.tools import ToolRegistry, make_executor

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from conduit.adapters.base import EndpointAdapter
    from conduit.conversations import ConversationStore
    from conduit.idempotency import IdempotencyStore
    from conduit.providers.base import ProviderTransport
    from conduit.request import UnifiedRequest
    from conduit.streaming import EventCallback, StopPredicate
    from conduit.tools import ToolExecutor

    RequestInput = UnifiedRequest | Mapping[str, Any]

logger = logging.getLogger(__name__)

CONTINUATION_COMPLETED = "response.continuation.completed"


def _output_text(output: Any) -> str:
    return output if isinstance(output, str) else json.dumps(output, default=str)


class TurnOrchestrator:
    """Drive one logical turn to completion.

    Every collaborator can be injected; anything omitted is built from
    ``config``. Turns share no mutable state apart from the injected stores.
    """

    def __init__(
        self,
        config: Config | None = None,
        transport: ProviderTransport | None = None,
        *,
        router: RequestRouter | None = None,
        factory: AdapterFactory | None = None,
        tools: ToolRegistry | None = None,
        executor: ToolExecutor | None = None,
        conversations: ConversationStore | None = None,
        idempotency: IdempotencyStore | None = None,
        streaming: StreamingEngine | None = None,
    ) -> None:
        self.config = config if config is not None else Config()
        cfg = self.config
        if transport is None:
            transport = MockTransport() if cfg.use_mock else HttpTransport.from_config(cfg)
        self.transport = transport
        self.router = router if router is not None else RequestRouter(cfg.routing)
        self.factory = (
            factory
            if factory is not None
            else AdapterFactory(
                default_model=cfg.model, default_instructions=cfg.default_instructions
            )
        )
        self.tools = tools if tools is not None else ToolRegistry()
        self.executor = executor if executor is not None else make_executor(cfg.tools)
        if conversations is None:
            conversations = (
                InMemoryConversationStore()
                if cfg.use_mock
                else OpenAIConversationStore(cfg.api_key or "", base_url=cfg.base_url)
            )
        self.conversations = conversations
        self.idempotency = idempotency if idempotency is not None else InMemoryIdempotencyStore()
        self.streaming = streaming if streaming is not None else StreamingEngine()

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def send(self, request: RequestInput) -> ResponseDto:
        """Run a turn and return the final response.

        Raises:
            ValidationError: The request or an adapter payload is malformed.
            EndpointRoutingError: Modalities conflict under ``"error"`` behavior.
            APIError: The provider call failed after retries.
            MaxToolRoundsError: The model kept requesting tools past the limit.
        """
        req = self._prepare(normalize_request(request))
        endpoint = self.router.determine_endpoint(req)

        key = req.idempotency_key
        if key is not None:
            cached = self.idempotency.get(key)
            if isinstance(cached, ResponseDto):
                logger.debug("Idempotency hit for %s; skipping provider call", key)
                return cached

        req = await self._ensure_conversation(endpoint, req)
        adapter = self.factory.make(endpoint)
        dto = await self._call(endpoint, adapter, req, idempotency_key=key)
        dto = await self._resolve_tools(endpoint, adapter, req, dto)

        if key is not None:
            self.idempotency.put(key, dto)
        return dto

    async def send_turn(self, request: RequestInput) -> TurnResult:
        """Run a turn and return the normalized envelope."""
        return normalize_envelope(await self.send(request))

    async def stream(
        self,
        request: RequestInput,
        *,
        on_event: EventCallback | None = None,
        should_stop: StopPredicate | None = None,
    ) -> AsyncIterator[StreamingEvent]:
        """Stream a text turn as normalized events.

        Tool calls revealed by the stream are executed after it ends normally,
        and the turn continues with ordinary calls; the outcome is yielded as a
        final ``response.continuation.completed`` event carrying a TurnResult.

        Raises:
            ValidationError: The routed endpoint cannot stream.
            ResponseCanceledError: The provider canceled the response.
        """
        req = self._prepare(normalize_request(request))
        endpoint = self.router.determine_endpoint(req)
        if not endpoint.supports_streaming:
            raise ValidationError(
                f"Endpoint {endpoint.value} does not support streaming",
                hint="Only text turns (chat_completion, response_api) can stream.",
                endpoint=endpoint.value,
                field="stream",
            )
        req = await self._ensure_conversation(endpoint, req)
        adapter = self.factory.make(endpoint)
        payload = adapter.transform_request(req.with_updates(stream=True))
        headers = self._headers(endpoint, payload, req.idempotency_key)

        stopped = False

        def _stop() -> bool:
            nonlocal stopped
            stopped = bool(should_stop is not None and should_stop())
            return stopped

        calls: dict[str, ToolCall] = {}
        response_id: str | None = None
        text = ""
        failed = False
        lines = self.transport.stream(endpoint, payload, headers=headers)
        async with aclosing(
            self.streaming.stream(
                lines,
                on_event=on_event,
                should_stop=_stop if should_stop is not None else None,
            )
        ) as events:
            async for event in events:
                if "tool_call.created" in event.type:
                    call = ToolCall.parse(event.data)
                    if call is not None:
                        calls.setdefault(call.id, call)
                elif event.is_text_delta:
                    text = str(event.data.get("accumulated", text))
                elif event.type == "response.failed":
                    failed = True
                response = event.data.get("response")
                if isinstance(response, Mapping) and response.get("id"):
                    response_id = str(response["id"])
                yield event

        if not calls or stopped or failed:
            return

        logger.debug("Stream requested %d tool call(s); continuing turn", len(calls))
        dto = ResponseDto(
            id=response_id or new_response_id(endpoint),
            type=endpoint.value,
            text=text or None,
            conversation_id=req.conversation_id,
            tool_calls=tuple(calls.values()),
        )
        dto = await self._resolve_tools(endpoint, adapter, req, dto)
        yield StreamingEvent(
            CONTINUATION_COMPLETED, dict(normalize_envelope(dto)), is_final=True
        )

    async def aclose(self) -> None:
        """Release the transport and store clients; failures are only logged."""
        for resource in (self.transport, self.conversations):
            aclose = getattr(resource, "aclose", None)
            if not callable(aclose):
                continue
            try:
                await aclose()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                # Cleanup should never mask the primary failure.
                logger.warning("Cleanup of %s failed: %s", type(resource).__name__, exc)

    async def __aenter__(self) -> TurnOrchestrator:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Turn steps
    # ------------------------------------------------------------------

    def _prepare(self, request: UnifiedRequest) -> UnifiedRequest:
        tools = list(request.tools) if request.tools is not None else None
        if tools is None and request.has_text and self.tools.schemas():
            tools = self.tools.schemas()
        if request.use_file_search and (request.file_ids or request.attachments):
            tools = tools or []
            if not any(isinstance(t, Mapping) and t.get("type") == "file_search" for t in tools):
                tools.append({"type": "file_search"})
        if tools == request.tools:
            return request
        return request.with_updates(tools=tools)

    async def _ensure_conversation(
        self, endpoint: Endpoint, request: UnifiedRequest
    ) -> UnifiedRequest:
        if endpoint is not Endpoint.RESPONSE_API or request.conversation_id is not None:
            return request
        conversation_id = await self.conversations.create_conversation(request.metadata)
        logger.debug("Started conversation %s", conversation_id)
        return request.with_updates(conversation_id=conversation_id)

    def _headers(
        self, endpoint: Endpoint, payload: dict[str, Any], key: str | None
    ) -> dict[str, str]:
        # Multipart uploads are not idempotent on the provider side.
        if endpoint.requires_multipart:
            return {}
        if key is None and self.config.idempotency_enabled and endpoint.is_text:
            key = build_idempotency_key(payload, self.config.idempotency_bucket_s)
        return {"Idempotency-Key": key} if key else {}

    async def _call(
        self,
        endpoint: Endpoint,
        adapter: EndpointAdapter,
        request: UnifiedRequest,
        *,
        idempotency_key: str | None = None,
    ) -> ResponseDto:
        payload = adapter.transform_request(request)
        headers = self._headers(endpoint, payload, idempotency_key)
        raw = await retry_async(
            lambda: self.transport.call(endpoint, payload, headers=headers),
            policy=self.config.retry,
        )
        if not isinstance(raw, Mapping):
            raise InternalError(
                f"Transport returned invalid response type: {type(raw).__name__}",
                hint="Transports must return dict payloads.",
            )
        dto = adapter.transform_response(raw)
        if dto.conversation_id is None and request.conversation_id is not None:
            dto = replace(dto, conversation_id=request.conversation_id)
        return dto

    async def _resolve_tools(
        self,
        endpoint: Endpoint,
        adapter: EndpointAdapter,
        request: UnifiedRequest,
        dto: ResponseDto,
    ) -> ResponseDto:
        rounds = 0
        while dto.has_tool_calls:
            rounds += 1
            if rounds > self.config.max_tool_rounds:
                raise MaxToolRoundsError(
                    self.config.max_tool_rounds,
                    pending=[tc.name for tc in dto.tool_calls],
                )
            logger.debug(
                "Tool round %d: %s", rounds, ", ".join(tc.name for tc in dto.tool_calls)
            )
            results = await self.tools.execute_all(dto.tool_calls, executor=self.executor)
            request = await self._append_results(endpoint, request, dto, results)
            dto = await self._call(endpoint, adapter, request)
        return dto

    async def _append_results(
        self,
        endpoint: Endpoint,
        request: UnifiedRequest,
        dto: ResponseDto,
        results: list[dict[str, Any]],
    ) -> UnifiedRequest:
        if endpoint is Endpoint.CHAT_COMPLETION:
            messages = ChatCompletionAdapter.build_messages(request)
            messages.append(
                {
                    "role": "assistant",
                    "content": dto.text,
                    "tool_calls": [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {
                                "name": tc.name,
                                "arguments": json.dumps(tc.arguments),
                            },
                        }
                        for tc in dto.tool_calls
                    ],
                }
            )
            messages.extend(
                {
                    "role": "tool",
                    "tool_call_id": r["tool_call_id"],
                    "content": _output_text(r["output"]),
                }
                for r in results
            )
            return request.with_updates(
                messages=messages, text=None, audio_input=None, instructions=None
            )

        conversation_id = dto.conversation_id or request.conversation_id
        if conversation_id is None:
            conversation_id = await self.conversations.create_conversation(request.metadata)
        items = [tool_result_item(r["tool_call_id"], r["output"]) for r in results]
        await self.conversations.create_items(conversation_id, items)
        # The conversation now holds the history; the follow-up sends no new input.
        return request.with_updates(
            conversation_id=conversation_id,
            text=None,
            messages=None,
            input_items=None,
            file_ids=None,
            attachments=None,
        )
