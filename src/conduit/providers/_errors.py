"""Shared transport-side error helpers.

Transports attach retry metadata via APIError so the orchestrator's retry
loop stays bounded and deterministic without guessing from messages.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import httpx

from conduit._http import RETRYABLE_STATUS_CODES
from conduit.errors import APIError, RateLimitError, _walk_exception_chain

if TYPE_CHECKING:
    from collections.abc import Mapping


def extract_status_code(exc: BaseException) -> int | None:
    """Walk the exception chain to find an HTTP status code."""
    for e in _walk_exception_chain(exc):
        for attr in ("status_code", "status"):
            value = getattr(e, attr, None)
            if isinstance(value, int) and 100 <= value <= 599:
                return value
        response = getattr(e, "response", None)
        value = getattr(response, "status_code", None)
        if isinstance(value, int) and 100 <= value <= 599:
            return value
    return None


def parse_retry_after(headers: Mapping[str, str] | None) -> float | None:
    """Read a numeric ``Retry-After`` header in seconds, if present."""
    if headers is None:
        return None
    raw = headers.get("Retry-After") or headers.get("retry-after")
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        seconds = float(raw)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def extract_retry_after_s(exc: BaseException) -> float | None:
    """Walk the exception chain to find a retry-after delay in seconds."""
    for e in _walk_exception_chain(exc):
        value = getattr(e, "retry_after", None)
        if isinstance(value, (int, float)) and value >= 0:
            return float(value)
        response = getattr(e, "response", None)
        headers: Any = getattr(response, "headers", None)
        seconds = parse_retry_after(headers) if headers is not None else None
        if seconds is not None:
            return seconds
    return None


def auth_hint(status_code: int | None, cause_message: str) -> str | None:
    """Name the env var when the failure looks like a credentials problem."""
    cause_lower = cause_message.lower()
    if status_code in {401, 403} or (
        status_code == 400 and ("api key" in cause_lower or "api_key" in cause_lower)
    ):
        return "Check credentials/permissions (try setting OPENAI_API_KEY or Config.api_key)."
    return None


def error_for_status(
    status_code: int,
    message: str,
    *,
    provider: str = "openai",
    phase: str,
    endpoint: str | None = None,
    retry_after_s: float | None = None,
) -> APIError:
    """Build the APIError for an HTTP error status."""
    err_cls: type[APIError] = RateLimitError if status_code == 429 else APIError
    return err_cls(
        f"{provider} {phase} failed (status={status_code}): {message}",
        hint=auth_hint(status_code, message),
        retryable=status_code in RETRYABLE_STATUS_CODES or retry_after_s is not None,
        status_code=status_code,
        retry_after_s=retry_after_s,
        provider=provider,
        phase=phase,
        endpoint=endpoint,
    )


def wrap_provider_error(
    exc: BaseException,
    *,
    provider: str = "openai",
    phase: str,
    endpoint: str | None = None,
    allow_network_errors: bool = True,
    message: str | None = None,
    hint: str | None = None,
) -> APIError:
    """Map transport or SDK exceptions into APIError with stable retry metadata."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    # Already wrapped: fill in missing context only.
    if isinstance(exc, APIError):
        if exc.provider is None:
            exc.provider = provider
        if exc.phase is None:
            exc.phase = phase
        if exc.endpoint is None:
            exc.endpoint = endpoint
        if hint is not None and exc.hint is None:
            exc.hint = hint
        return exc

    status_code = extract_status_code(exc)
    retry_after_s = extract_retry_after_s(exc)

    retryable = retry_after_s is not None
    if isinstance(status_code, int) and status_code in RETRYABLE_STATUS_CODES:
        retryable = True
    elif allow_network_errors:
        for e in _walk_exception_chain(exc):
            if isinstance(e, (httpx.TimeoutException, httpx.RequestError)):
                retryable = True
                break

    msg = message or f"{provider} {phase} failed"
    status_note = f" (status={status_code})" if isinstance(status_code, int) else ""
    cause = str(exc)
    err_cls: type[APIError] = RateLimitError if status_code == 429 else APIError
    return err_cls(
        f"{msg}{status_note}: {cause}" if cause else f"{msg}{status_note}",
        hint=hint if hint is not None else auth_hint(status_code, cause),
        retryable=retryable,
        status_code=status_code,
        retry_after_s=retry_after_s,
        provider=provider,
        phase=phase,
        endpoint=endpoint,
    )
