"""Configuration boundary tests."""

from __future__ import annotations

import pytest

from conduit.config import Config, RoutingConfig, ToolConfig
from conduit.errors import ConfigurationError

pytestmark = pytest.mark.unit


def test_config_creation_with_mock_mode() -> None:
    """Config can be created with mock mode (no API key needed)."""
    cfg = Config(model="gpt-4o-mini", use_mock=True)
    assert cfg.model == "gpt-4o-mini"
    assert cfg.api_key is None
    assert cfg.base_url == "https://api.openai.com/v1"


def test_config_auto_resolves_api_key_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """API key should be auto-resolved from environment."""
    monkeypatch.setenv("OPENAI_API_KEY", "env-key")

    cfg = Config()

    assert cfg.api_key == "env-key"


def test_explicit_api_key_takes_precedence(monkeypatch: pytest.MonkeyPatch) -> None:
    """Explicit api_key should override env."""
    monkeypatch.setenv("OPENAI_API_KEY", "env-key")

    cfg = Config(api_key="explicit-key")

    assert cfg.api_key == "explicit-key"


def test_base_url_resolves_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_BASE_URL", "https://proxy.internal/v1")
    assert Config(use_mock=True).base_url == "https://proxy.internal/v1"


def test_missing_api_key_raises_clear_error() -> None:
    """Missing API key without mock mode must fail clearly."""
    with pytest.raises(ConfigurationError, match="API key required") as exc:
        Config()
    assert exc.value.hint is not None
    assert "OPENAI_API_KEY" in exc.value.hint


def test_mock_mode_ignores_env_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "env-key")
    assert Config(use_mock=True).api_key is None


@pytest.mark.parametrize(
    "kwargs",
    [
        {"model": "  "},
        {"max_tool_rounds": 0},
        {"timeout_s": 0},
        {"stream_timeout_s": -1},
        {"idempotency_bucket_s": 0},
    ],
)
def test_invalid_values_are_rejected(kwargs: dict) -> None:
    with pytest.raises(ConfigurationError):
        Config(use_mock=True, **kwargs)


def test_config_str_and_repr_redact_api_key() -> None:
    """String representations must not leak secrets."""
    secret = "top-secret-key"
    cfg = Config(api_key=secret)

    assert secret not in str(cfg)
    assert secret not in repr(cfg)
    assert "[REDACTED]" in str(cfg)


# =============================================================================
# Sub-configs
# =============================================================================


def test_routing_config_defaults() -> None:
    routing = RoutingConfig()
    assert routing.priority[0] == "audio_transcription"
    assert routing.priority[-1] == "response_api"
    assert routing.conflict_behavior == "error"
    assert routing.validate_conflicts is True


def test_routing_priority_list_is_frozen_to_tuple() -> None:
    routing = RoutingConfig(priority=["response_api", "chat_completion"])  # type: ignore[arg-type]
    assert routing.priority == ("response_api", "chat_completion")


@pytest.mark.parametrize("priority", [(), "response_api"])
def test_routing_priority_must_be_a_non_empty_sequence(priority) -> None:
    with pytest.raises(ConfigurationError, match="priority"):
        RoutingConfig(priority=priority)


def test_unknown_conflict_behavior_raises() -> None:
    with pytest.raises(ConfigurationError, match="conflict_behavior"):
        RoutingConfig(conflict_behavior="shout")  # type: ignore[arg-type]


def test_unknown_tool_mode_raises() -> None:
    with pytest.raises(ConfigurationError, match="Unknown tool mode"):
        ToolConfig(mode="batch")  # type: ignore[arg-type]
