"""Conversation persistence behind a small async Protocol."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
import logging
import time
from typing import Any, Protocol, runtime_checkable
import uuid

from conduit.errors import APIError, ValidationError
from conduit.providers._errors import wrap_provider_error

logger = logging.getLogger(__name__)

_ORDERS = ("asc", "desc")


@runtime_checkable
class ConversationStore(Protocol):
    """Server-side (or local) conversation state used by the tool loop."""

    async def create_conversation(self, metadata: Mapping[str, Any] | None = None) -> str:
        """Create a conversation and return its id."""
        ...

    async def list_items(
        self, conversation_id: str, params: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """List items; ``params`` may carry ``limit`` and ``order``."""
        ...

    async def create_items(
        self, conversation_id: str, items: list[dict[str, Any]]
    ) -> dict[str, Any]:
        """Append items and return ``{"data": [...]}`` with their stored form."""
        ...

    async def delete_item(self, conversation_id: str, item_id: str) -> bool:
        """Delete one item; False when it did not exist."""
        ...


def _list_params(params: Mapping[str, Any] | None) -> tuple[int | None, str]:
    params = params or {}
    limit = params.get("limit")
    if limit is not None and (not isinstance(limit, int) or isinstance(limit, bool) or limit < 1):
        raise ValidationError("limit must be a positive integer", field="limit")
    order = params.get("order", "asc")
    if order not in _ORDERS:
        raise ValidationError(
            f"order must be one of {', '.join(_ORDERS)}", field="order"
        )
    return limit, order


class InMemoryConversationStore:
    """Append-only, process-local store. Useful for tests and the mock transport."""

    def __init__(self) -> None:
        self._conversations: dict[str, dict[str, Any]] = {}
        self._items: dict[str, list[dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    async def create_conversation(self, metadata: Mapping[str, Any] | None = None) -> str:
        conversation_id = f"conv_{uuid.uuid4().hex}"
        async with self._lock:
            self._conversations[conversation_id] = {
                "id": conversation_id,
                "object": "conversation",
                "created_at": int(time.time()),
                "metadata": dict(metadata or {}),
            }
            self._items[conversation_id] = []
        logger.debug("Created conversation %s", conversation_id)
        return conversation_id

    async def get_conversation(self, conversation_id: str) -> dict[str, Any] | None:
        conversation = self._conversations.get(conversation_id)
        return dict(conversation) if conversation is not None else None

    async def delete_conversation(self, conversation_id: str) -> bool:
        async with self._lock:
            self._items.pop(conversation_id, None)
            return self._conversations.pop(conversation_id, None) is not None

    async def list_items(
        self, conversation_id: str, params: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        limit, order = _list_params(params)
        items = list(self._items.get(conversation_id, ()))
        if order == "desc":
            items.reverse()
        if limit is not None:
            items = items[:limit]
        return [dict(i) for i in items]

    async def create_items(
        self, conversation_id: str, items: list[dict[str, Any]]
    ) -> dict[str, Any]:
        stored: list[dict[str, Any]] = []
        async with self._lock:
            bucket = self._items.setdefault(conversation_id, [])
            for item in items:
                record = {"id": f"item_{uuid.uuid4().hex}", **dict(item)}
                bucket.append(record)
                stored.append(dict(record))
        return {"object": "list", "data": stored}

    async def delete_item(self, conversation_id: str, item_id: str) -> bool:
        async with self._lock:
            bucket = self._items.get(conversation_id, [])
            for idx, item in enumerate(bucket):
                if item.get("id") == item_id:
                    del bucket[idx]
                    return True
        return False


def _to_wire_item(item: Mapping[str, Any]) -> dict[str, Any]:
    """Express a ``tool_result`` item as the API's ``function_call_output``."""
    if item.get("type") != "tool_result":
        return dict(item)
    content = item.get("content")
    parts = [
        c.get("text")
        for c in (content if isinstance(content, list) else ())
        if isinstance(c, Mapping) and isinstance(c.get("text"), str)
    ]
    return {
        "type": "function_call_output",
        "call_id": item.get("tool_call_id"),
        "output": "".join(parts),
    }


def _dump(obj: Any) -> dict[str, Any]:
    dump = getattr(obj, "model_dump", None)
    if callable(dump):
        result = dump()
        return result if isinstance(result, dict) else {}
    return dict(obj) if isinstance(obj, Mapping) else {}


class OpenAIConversationStore:
    """Conversations API via the official SDK (``AsyncOpenAI``)."""

    def __init__(self, api_key: str, *, base_url: str | None = None) -> None:
        self.api_key = api_key
        self.base_url = base_url
        self._client: Any = None

    def _get_client(self) -> Any:
        """Lazily initialize and return the OpenAI client."""
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError as e:
                raise APIError(
                    "openai package not installed",
                    hint="pip install openai",
                ) from e
            self._client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    async def create_conversation(self, metadata: Mapping[str, Any] | None = None) -> str:
        client = self._get_client()
        kwargs: dict[str, Any] = {}
        if metadata:
            kwargs["metadata"] = {str(k): str(v) for k, v in metadata.items()}
        try:
            conversation = await client.conversations.create(**kwargs)
        except Exception as e:
            raise wrap_provider_error(e, phase="conversations.create") from e
        return str(conversation.id)

    async def get_conversation(self, conversation_id: str) -> dict[str, Any] | None:
        client = self._get_client()
        try:
            conversation = await client.conversations.retrieve(conversation_id)
        except Exception as e:
            err = wrap_provider_error(e, phase="conversations.retrieve")
            if err.status_code == 404:
                return None
            raise err from e
        return _dump(conversation)

    async def delete_conversation(self, conversation_id: str) -> bool:
        client = self._get_client()
        try:
            result = await client.conversations.delete(conversation_id)
        except Exception as e:
            raise wrap_provider_error(e, phase="conversations.delete") from e
        return bool(getattr(result, "deleted", True))

    async def list_items(
        self, conversation_id: str, params: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        limit, order = _list_params(params)
        kwargs: dict[str, Any] = {"order": order}
        if limit is not None:
            kwargs["limit"] = limit
        client = self._get_client()
        try:
            page = await client.conversations.items.list(conversation_id, **kwargs)
        except Exception as e:
            raise wrap_provider_error(e, phase="conversations.items.list") from e
        return [_dump(item) for item in getattr(page, "data", ())]

    async def create_items(
        self, conversation_id: str, items: list[dict[str, Any]]
    ) -> dict[str, Any]:
        client = self._get_client()
        try:
            created = await client.conversations.items.create(
                conversation_id, items=[_to_wire_item(i) for i in items]
            )
        except Exception as e:
            raise wrap_provider_error(e, phase="conversations.items.create") from e
        return _dump(created)

    async def delete_item(self, conversation_id: str, item_id: str) -> bool:
        client = self._get_client()
        try:
            await client.conversations.items.delete(item_id, conversation_id=conversation_id)
        except Exception as e:
            err = wrap_provider_error(e, phase="conversations.items.delete")
            if err.status_code == 404:
                return False
            raise err from e
        return True

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
