"""Real API integration tests.

These tests make real OpenAI calls and are intentionally compact:
- ENABLE_API_TESTS=1 is required to run any API tests
- OPENAI_API_KEY is required

The suite prioritizes high-signal end-to-end coverage with a small call budget.
"""

from __future__ import annotations

import pytest

import conduit
from conduit.config import Config
from conduit.tools import ToolRegistry

pytestmark = pytest.mark.api


@pytest.mark.asyncio
async def test_text_turn_round_trip(openai_api_key: str, openai_test_model: str) -> None:
    config = Config(model=openai_test_model, api_key=openai_api_key)
    response = await conduit.send({"text": "Reply with the single word: pong"}, config=config)

    assert response.type == "response_api"
    assert response.text is not None
    assert "pong" in response.text.lower()
    assert response.conversation_id is not None


@pytest.mark.asyncio
async def test_tool_round_with_real_model(openai_api_key: str, openai_test_model: str) -> None:
    config = Config(model=openai_test_model, api_key=openai_api_key)
    registry = ToolRegistry()
    calls: list[dict] = []

    def get_secret_number() -> int:
        calls.append({})
        return 417

    registry.register(
        "get_secret_number",
        get_secret_number,
        {
            "type": "function",
            "name": "get_secret_number",
            "description": "Return the secret number.",
            "parameters": {"type": "object", "properties": {}},
        },
    )

    result = await conduit.send_turn(
        {
            "text": "Call get_secret_number and tell me the number it returns.",
            "tool_choice": "required",
        },
        config=config,
        tools=registry,
    )

    assert calls
    assert "417" in result["messages"]


@pytest.mark.asyncio
async def test_streamed_text(openai_api_key: str, openai_test_model: str) -> None:
    config = Config(model=openai_test_model, api_key=openai_api_key)
    deltas: list[str] = []

    async for event in conduit.stream({"text": "Count from 1 to 3."}, config=config):
        if event.is_text_delta:
            deltas.append(event.data["delta"])

    assert "".join(deltas).strip()
