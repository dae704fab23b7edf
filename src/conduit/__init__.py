"""Conduit: one unified turn API over OpenAI-style multimodal endpoints.

Public API:
    - send(): Run a turn and return a ResponseDto
    - send_turn(): Run a turn and return a TurnResult envelope
    - stream(): Stream a text turn as StreamingEvents
    - builder(): Fluent request builder
    - TurnOrchestrator: The long-lived engine behind the helpers
    - Config: Configuration dataclass
"""

from __future__ import annotations

import asyncio
from contextlib import aclosing
import logging
from typing import TYPE_CHECKING, Any

from conduit.builder import ResponsesBuilder
from conduit.config import Config, RoutingConfig, ToolConfig
from conduit.endpoints import Endpoint
from conduit.errors import (
    APIError,
    ConduitError,
    ConfigurationError,
    EndpointRoutingError,
    FileValidationError,
    InternalError,
    MaxToolRoundsError,
    RateLimitError,
    ResponseCanceledError,
    ToolError,
    ToolNotFoundError,
    ValidationError,
)
from conduit.orchestrator import TurnOrchestrator
from conduit.request import AudioInput, ImageInput, UnifiedRequest
from conduit.response import ResponseDto, StreamingEvent, ToolCall, TurnResult
from conduit.retry import RetryPolicy
from conduit.router import RequestRouter
from conduit.tools import ToolRegistry

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from conduit.streaming import EventCallback, StopPredicate

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("conduit-ai")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("conduit").addHandler(logging.NullHandler())

logger = logging.getLogger(__name__)


async def _close(orchestrator: TurnOrchestrator) -> None:
    try:
        await orchestrator.aclose()
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        # Cleanup should never mask the primary failure.
        logger.warning("Orchestrator cleanup failed: %s", exc)


async def send(
    request: UnifiedRequest | Mapping[str, Any],
    *,
    config: Config | None = None,
    tools: ToolRegistry | None = None,
) -> ResponseDto:
    """Run a single turn with a short-lived orchestrator.

    Example:
        config = Config(model="gpt-4o-mini")
        response = await send({"text": "Hello"}, config=config)
        print(response.text)
    """
    orchestrator = TurnOrchestrator(config, tools=tools)
    try:
        return await orchestrator.send(request)
    finally:
        await _close(orchestrator)


async def send_turn(
    request: UnifiedRequest | Mapping[str, Any],
    *,
    config: Config | None = None,
    tools: ToolRegistry | None = None,
) -> TurnResult:
    """Like ``send`` but return the normalized TurnResult envelope."""
    orchestrator = TurnOrchestrator(config, tools=tools)
    try:
        return await orchestrator.send_turn(request)
    finally:
        await _close(orchestrator)


async def stream(
    request: UnifiedRequest | Mapping[str, Any],
    *,
    config: Config | None = None,
    tools: ToolRegistry | None = None,
    on_event: EventCallback | None = None,
    should_stop: StopPredicate | None = None,
) -> AsyncIterator[StreamingEvent]:
    """Stream a text turn with a short-lived orchestrator.

    Example:
        async for event in stream({"text": "Tell me a story"}, config=config):
            if event.is_text_delta:
                print(event.data["delta"], end="")
    """
    orchestrator = TurnOrchestrator(config, tools=tools)
    try:
        async with aclosing(
            orchestrator.stream(request, on_event=on_event, should_stop=should_stop)
        ) as events:
            async for event in events:
                yield event
    finally:
        await _close(orchestrator)


def builder(orchestrator: TurnOrchestrator | None = None) -> ResponsesBuilder:
    """Start a fluent request against *orchestrator* (a default one if omitted)."""
    return ResponsesBuilder(orchestrator if orchestrator is not None else TurnOrchestrator())


__all__ = [
    "APIError",
    "AudioInput",
    "Config",
    "ConduitError",
    "ConfigurationError",
    "Endpoint",
    "EndpointRoutingError",
    "FileValidationError",
    "ImageInput",
    "InternalError",
    "MaxToolRoundsError",
    "RateLimitError",
    "RequestRouter",
    "ResponseCanceledError",
    "ResponseDto",
    "ResponsesBuilder",
    "RetryPolicy",
    "RoutingConfig",
    "StreamingEvent",
    "ToolCall",
    "ToolConfig",
    "ToolError",
    "ToolNotFoundError",
    "ToolRegistry",
    "TurnOrchestrator",
    "TurnResult",
    "UnifiedRequest",
    "ValidationError",
    "builder",
    "send",
    "send_turn",
    "stream",
]
