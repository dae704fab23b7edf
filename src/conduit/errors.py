"""Exception hierarchy for Conduit."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator


class ConduitError(Exception):
    """Base exception for all Conduit errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(ConduitError):
    """Configuration validation or resolution failed."""


class ValidationError(ConduitError):
    """A unified request is missing or has malformed endpoint fields.

    Raised locally by adapters and request constructors; never retried.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        endpoint: str | None = None,
        field: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.endpoint = endpoint
        self.field = field


class FileValidationError(ValidationError):
    """A file referenced by a request failed validation."""

    def __init__(
        self,
        message: str,
        *,
        kind: str,
        hint: str | None = None,
        endpoint: str | None = None,
        field: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint, endpoint=endpoint, field=field)
        self.kind = kind


class EndpointRoutingError(ConduitError):
    """Endpoint routing failed: conflicting modalities or a bad priority list."""

    code = 500

    @classmethod
    def conflicting_endpoints(
        cls, endpoints: Iterable[str], reasoning: str
    ) -> EndpointRoutingError:
        names = ", ".join(endpoints)
        return cls(
            "Conflicting endpoint configuration detected.\n\n"
            f"Reasoning:\n{reasoning}\n\n"
            f"Conflicting endpoints: {names}\n\n"
            "Conclusion: Please resolve the conflict by disabling conflicting "
            "endpoints or adjusting the routing priority configuration.",
            hint="Populate only one of text, audio or image per request.",
        )

    @classmethod
    def invalid_priority_configuration(cls, reasoning: str) -> EndpointRoutingError:
        return cls(
            "Invalid endpoint priority configuration.\n\n"
            f"Reasoning:\n{reasoning}\n\n"
            "Conclusion: Please correct RoutingConfig.priority.",
            hint="Valid names are the values of conduit.Endpoint.",
        )


class ToolError(ConduitError):
    """Tool registration or invocation failed."""


class ToolNotFoundError(ToolError):
    """A tool was requested by name but is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Tool not registered: {name}",
            hint="Register it with ToolRegistry.register(name, fn).",
        )
        self.name = name


class APIError(ConduitError):
    """Provider call failed.

    Transports attach retry metadata so the orchestrator can perform bounded
    retries without guessing from messages.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        retryable: bool | None = None,
        status_code: int | None = None,
        retry_after_s: float | None = None,
        provider: str | None = None,
        phase: str | None = None,
        endpoint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.retryable = retryable
        self.status_code = status_code
        self.retry_after_s = retry_after_s
        self.provider = provider
        self.phase = phase
        self.endpoint = endpoint


class RateLimitError(APIError):
    """Rate limit exceeded (HTTP 429)."""


class ResponseCanceledError(ConduitError):
    """The provider canceled a streamed response mid-flight."""

    code = 499

    def __init__(
        self,
        message: str = "Response streaming was canceled by client or server.",
        *,
        hint: str | None = None,
        response_id: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.response_id = response_id


class MaxToolRoundsError(ConduitError):
    """The tool-calling loop exceeded its configured round limit."""

    def __init__(self, max_rounds: int, *, pending: Iterable[str] = ()) -> None:
        names = ", ".join(pending)
        detail = f" (still pending: {names})" if names else ""
        super().__init__(
            f"Tool calling exceeded {max_rounds} round(s){detail}",
            hint="Raise Config.max_tool_rounds or check for tools that loop.",
        )
        self.max_rounds = max_rounds


class InternalError(ConduitError):
    """A Conduit internal error (bug) or invariant violation."""


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
