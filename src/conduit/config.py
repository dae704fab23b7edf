"""Configuration: frozen Config plus routing and tool sub-configs."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from typing import Literal

from dotenv import load_dotenv

from conduit._http import DEFAULT_BASE_URL, DEFAULT_TIMEOUT_S, STREAM_TIMEOUT_S
from conduit.errors import ConfigurationError
from conduit.retry import RetryPolicy

load_dotenv()

ConflictBehavior = Literal["error", "warn", "silent"]
ToolMode = Literal["inline", "deferred"]

API_KEY_ENV_VAR = "OPENAI_API_KEY"
BASE_URL_ENV_VAR = "OPENAI_BASE_URL"

DEFAULT_ENDPOINT_PRIORITY: tuple[str, ...] = (
    "audio_transcription",
    "audio_translation",
    "audio_speech",
    "image_generation",
    "image_edit",
    "image_variation",
    "chat_completion",
    "response_api",
)


@dataclass(frozen=True)
class RoutingConfig:
    """How the router orders endpoints and reacts to modality conflicts.

    Endpoint names are kept as strings here; the router resolves them so an
    unknown name can be reported (or skipped) per ``validate_endpoint_names``.
    """

    priority: tuple[str, ...] = DEFAULT_ENDPOINT_PRIORITY
    validate_conflicts: bool = True
    conflict_behavior: ConflictBehavior = "error"
    validate_endpoint_names: bool = True

    def __post_init__(self) -> None:
        """Normalize the priority list and validate the conflict behavior."""
        if isinstance(self.priority, str) or not self.priority:
            raise ConfigurationError(
                "priority must be a non-empty sequence of endpoint names",
                hint="Omit it to use the default order.",
            )
        object.__setattr__(self, "priority", tuple(self.priority))
        if self.conflict_behavior not in ("error", "warn", "silent"):
            raise ConfigurationError(
                f"Unknown conflict_behavior: {self.conflict_behavior!r}",
                hint="Use 'error', 'warn' or 'silent'.",
            )


@dataclass(frozen=True)
class ToolConfig:
    """Tool execution strategy, selected once at orchestrator construction."""

    mode: ToolMode = "inline"
    #: Deferred mode only: wait for each job instead of returning a placeholder.
    wait: bool = False
    #: Deferred mode only: run one round's calls concurrently when waiting.
    parallel: bool = False

    def __post_init__(self) -> None:
        """Reject unknown modes early."""
        if self.mode not in ("inline", "deferred"):
            raise ConfigurationError(
                f"Unknown tool mode: {self.mode!r}",
                hint="Use 'inline' or 'deferred'.",
            )


@dataclass(frozen=True)
class Config:
    """Immutable configuration for Conduit.

    The API key is auto-resolved from ``OPENAI_API_KEY`` and the base URL from
    ``OPENAI_BASE_URL`` when not passed explicitly.

    Example:
        config = Config(model="gpt-4o-mini")
        # API key is automatically resolved from OPENAI_API_KEY
    """

    #: Default model for text endpoints; audio/image adapters keep their own.
    model: str = "gpt-4o-mini"
    api_key: str | None = None
    base_url: str | None = None
    organization: str | None = None
    use_mock: bool = False
    timeout_s: float = DEFAULT_TIMEOUT_S
    stream_timeout_s: float = STREAM_TIMEOUT_S
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    routing: RoutingConfig = field(default_factory=RoutingConfig)
    tools: ToolConfig = field(default_factory=ToolConfig)
    max_tool_rounds: int = 3
    #: Derive an Idempotency-Key header for response calls without one.
    idempotency_enabled: bool = True
    idempotency_bucket_s: int = 60
    default_instructions: str | None = None

    def __post_init__(self) -> None:
        """Auto-resolve credentials and validate configuration."""
        if not isinstance(self.model, str) or not self.model.strip():
            raise ConfigurationError(
                "model must be a non-empty string",
                hint="For example Config(model='gpt-4o-mini').",
            )
        if self.max_tool_rounds < 1:
            raise ConfigurationError(
                f"max_tool_rounds must be ≥ 1, got {self.max_tool_rounds}",
                hint="This bounds how many tool-calling rounds one turn may take.",
            )
        if self.timeout_s <= 0 or self.stream_timeout_s <= 0:
            raise ConfigurationError(
                "timeouts must be > 0",
                hint="timeout_s and stream_timeout_s are in seconds.",
            )
        if self.idempotency_bucket_s < 1:
            raise ConfigurationError(
                f"idempotency_bucket_s must be ≥ 1, got {self.idempotency_bucket_s}",
                hint="Keys derived within one bucket are identical for identical payloads.",
            )

        if self.base_url is None:
            object.__setattr__(
                self,
                "base_url",
                os.environ.get(BASE_URL_ENV_VAR) or DEFAULT_BASE_URL,
            )

        if self.api_key is None and not self.use_mock:
            object.__setattr__(self, "api_key", os.environ.get(API_KEY_ENV_VAR))

        if not self.use_mock and not self.api_key:
            raise ConfigurationError(
                "API key required",
                hint=f"Set {API_KEY_ENV_VAR} environment variable or pass api_key=...",
            )

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"Config(model={self.model!r}, base_url={self.base_url!r}, "
            f"api_key={'[REDACTED]' if self.api_key else None}, use_mock={self.use_mock})"
        )

    __repr__ = __str__
