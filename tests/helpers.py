"""Test helpers (small, reusable doubles and payload builders).

Keep this file tiny and purpose-built: it exists to prevent test suites from
growing lots of one-off transports and hand-written provider payloads.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
import json
from typing import Any

from conduit.retry import RetryPolicy

#: No sleeping between attempts so retry tests stay fast.
FAST_RETRY = RetryPolicy(max_attempts=3, initial_delay_s=0.0, jitter=False)

# =============================================================================
# Provider payloads
# =============================================================================


def responses_payload(
    text: str | None = "ok",
    *,
    response_id: str = "resp_1",
    tool_calls: Sequence[tuple[str, str, dict[str, Any]]] = (),
    conversation_id: str | None = None,
) -> dict[str, Any]:
    """A Responses API body: one assistant message plus optional function calls."""
    output: list[dict[str, Any]] = []
    if text is not None:
        output.append(
            {
                "type": "message",
                "role": "assistant",
                "content": [{"type": "output_text", "text": text}],
            }
        )
    for call_id, name, args in tool_calls:
        output.append(
            {
                "type": "function_call",
                "call_id": call_id,
                "name": name,
                "arguments": json.dumps(args),
            }
        )
    payload: dict[str, Any] = {
        "id": response_id,
        "object": "response",
        "status": "completed",
        "model": "gpt-4o-mini",
        "output": output,
        "usage": {"input_tokens": 3, "output_tokens": 2, "total_tokens": 5},
    }
    if conversation_id is not None:
        payload["conversation"] = {"id": conversation_id}
    return payload


def chat_payload(
    content: str | None = "ok",
    *,
    tool_calls: Sequence[tuple[str, str, dict[str, Any]]] = (),
) -> dict[str, Any]:
    """A Chat Completions body with one choice."""
    message: dict[str, Any] = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = [
            {
                "id": call_id,
                "type": "function",
                "function": {"name": name, "arguments": json.dumps(args)},
            }
            for call_id, name, args in tool_calls
        ]
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "gpt-4o-mini",
        "choices": [
            {
                "index": 0,
                "message": message,
                "finish_reason": "tool_calls" if tool_calls else "stop",
            }
        ],
        "usage": {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5},
    }


def sse(kind: str, **data: Any) -> list[str]:
    """One typed SSE frame as lines, including the blank separator."""
    return [f"event: {kind}", f"data: {json.dumps({'type': kind, **data})}", ""]


# =============================================================================
# Doubles
# =============================================================================


@dataclass
class CallLog:
    """Records tool invocations in order, across sync and async tools."""

    calls: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    def tool(self, name: str, result: Any = "done"):
        def _fn(**kwargs: Any) -> Any:
            self.calls.append((name, kwargs))
            return result

        return _fn

    def async_tool(self, name: str, result: Any = "done"):
        async def _fn(**kwargs: Any) -> Any:
            self.calls.append((name, kwargs))
            await asyncio.sleep(0)
            return result

        return _fn
