"""Adapter protocol and shared helpers.

Adapters are stateless translators between the unified shapes and one
endpoint's wire format. ``transform_request`` validates and raises
``ValidationError``; ``transform_response`` never raises.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
import uuid

from conduit.errors import FileValidationError

if TYPE_CHECKING:
    from collections.abc import Collection

    from conduit.endpoints import Endpoint
    from conduit.files import FileValidator
    from conduit.request import UnifiedRequest
    from conduit.response import ResponseDto


@runtime_checkable
class EndpointAdapter(Protocol):
    """Translate unified requests/responses for a single endpoint."""

    endpoint: Endpoint

    def transform_request(self, request: UnifiedRequest) -> dict[str, Any]:
        """Return the endpoint payload, or raise ValidationError."""
        ...

    def transform_response(self, payload: Mapping[str, Any]) -> ResponseDto:
        """Return a ResponseDto; missing fields degrade to None."""
        ...


def new_response_id(endpoint: Endpoint) -> str:
    return f"{endpoint.value}_{uuid.uuid4()}"


def as_mapping(payload: Any) -> dict[str, Any]:
    """Coerce a provider payload to a dict without raising."""
    if isinstance(payload, Mapping):
        return dict(payload)
    return {}


def opt_str(value: Any) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def set_if_present(target: dict[str, Any], key: str, value: Any) -> None:
    """Copy *value* into *target* unless it is None."""
    if value is not None:
        target[key] = value


def check_file(
    validator: FileValidator,
    path: Any,
    *,
    endpoint: Endpoint,
    field: str,
    allowed_extensions: Collection[str],
    max_bytes: int,
    label: str,
) -> None:
    """Raise FileValidationError when *validator* rejects *path*."""
    issue = validator.validate(
        path,
        allowed_extensions=allowed_extensions,
        max_bytes=max_bytes,
        label=label,
    )
    if issue is not None:
        raise FileValidationError(
            issue.message,
            kind=issue.kind,
            endpoint=endpoint.value,
            field=field,
        )
