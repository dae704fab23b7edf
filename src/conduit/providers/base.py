"""Transport protocol: the minimal interface the orchestrator calls through."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from conduit.endpoints import Endpoint


@runtime_checkable
class ProviderTransport(Protocol):
    """Send adapted payloads to a provider endpoint."""

    async def call(
        self,
        endpoint: Endpoint,
        payload: Mapping[str, Any],
        *,
        headers: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        """POST a payload and return the decoded response body.

        Raises:
            APIError: On transport failures or error statuses, with retry metadata.
        """
        ...

    def stream(
        self,
        endpoint: Endpoint,
        payload: Mapping[str, Any],
        *,
        headers: Mapping[str, str] | None = None,
    ) -> AsyncIterator[str | bytes]:
        """POST a streaming payload and yield SSE lines or raw body chunks."""
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        ...
