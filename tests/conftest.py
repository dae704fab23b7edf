"""Pytest configuration and fixtures.

Provides environment isolation, logging configuration, shared test doubles,
and automatic API test skipping. Fixtures marked autouse apply everywhere.
"""

from __future__ import annotations

from contextlib import suppress
import logging
import os

import pytest

from conduit.config import Config
from conduit.conversations import InMemoryConversationStore
from conduit.idempotency import InMemoryIdempotencyStore
from conduit.orchestrator import TurnOrchestrator
from conduit.providers.mock import MockTransport
from conduit.tools import ToolRegistry
from tests.helpers import FAST_RETRY

# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


@pytest.fixture(autouse=True)
def isolate_provider_env(request, monkeypatch):
    """Ensure a clean provider environment for each test.

    Clears OPENAI_* env vars to prevent test pollution.
    Opt-out: @pytest.mark.allow_env_pollution or @pytest.mark.api
    """
    if request.node.get_closest_marker("allow_env_pollution") or (
        "api" in request.node.keywords
    ):
        return

    for key in list(os.environ.keys()):
        if key.startswith("OPENAI_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("DEBUG", raising=False)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# =============================================================================
# Shared Doubles
# =============================================================================

@pytest.fixture
def mock_config() -> Config:
    """Mock-mode config: no API key, no backoff delays."""
    return Config(use_mock=True, retry=FAST_RETRY)


@pytest.fixture
def transport() -> MockTransport:
    return MockTransport()


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry()


@pytest.fixture
def store() -> InMemoryConversationStore:
    return InMemoryConversationStore()


@pytest.fixture
def orchestrator(
    mock_config: Config,
    transport: MockTransport,
    registry: ToolRegistry,
    store: InMemoryConversationStore,
) -> TurnOrchestrator:
    """Orchestrator wired to the mock transport and in-memory stores."""
    return TurnOrchestrator(
        mock_config,
        transport,
        tools=registry,
        conversations=store,
        idempotency=InMemoryIdempotencyStore(),
    )


# =============================================================================
# Pytest Hooks
# =============================================================================

API_TESTS_REASON = "API tests require ENABLE_API_TESTS=1"


def _api_tests_enabled() -> bool:
    return bool(os.getenv("ENABLE_API_TESTS"))


def pytest_collection_modifyitems(items):
    """Automatically skip API tests when not explicitly enabled."""
    if _api_tests_enabled():
        return
    skip_api = pytest.mark.skip(reason=API_TESTS_REASON)
    for item in items:
        if "api" in item.keywords:
            item.add_marker(skip_api)


# =============================================================================
# API Test Configuration
# =============================================================================

# Chosen for cost efficiency.
_OPENAI_TEST_MODEL = "gpt-4o-mini"


@pytest.fixture
def openai_api_key():
    """Return OPENAI_API_KEY or skip the test if unavailable."""
    key = os.getenv("OPENAI_API_KEY")
    if not key:
        pytest.skip("OPENAI_API_KEY not set")
    return key


@pytest.fixture
def openai_test_model():
    """Return the model to use for OpenAI API tests."""
    return _OPENAI_TEST_MODEL
