"""HTTP transport for OpenAI-compatible endpoints, built on httpx."""

from __future__ import annotations

import base64
from contextlib import ExitStack
import json
import logging
import mimetypes
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx

from conduit._http import (
    AUDIO_SPEECH_TIMEOUT_S,
    DEFAULT_BASE_URL,
    DEFAULT_TIMEOUT_S,
    IMAGE_TIMEOUT_S,
    STREAM_TIMEOUT_S,
    speech_metadata,
)
from conduit.endpoints import Endpoint
from conduit.errors import APIError
from conduit.providers._errors import error_for_status, parse_retry_after, wrap_provider_error

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from conduit.config import Config

logger = logging.getLogger(__name__)

# Payload keys that carry local file paths on multipart endpoints.
_FILE_FIELDS = ("file", "image", "mask")


def _form_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    return json.dumps(value)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500] or response.reason_phrase
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    if isinstance(error, str):
        return error
    return response.text[:500]


class HttpTransport:
    """Bearer-authenticated JSON, multipart and SSE calls over ``httpx.AsyncClient``."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        organization: str | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        stream_timeout_s: float = STREAM_TIMEOUT_S,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.organization = organization
        self.timeout_s = timeout_s
        self.stream_timeout_s = stream_timeout_s
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_config(cls, config: Config) -> HttpTransport:
        return cls(
            api_key=config.api_key or "",
            base_url=config.base_url or DEFAULT_BASE_URL,
            organization=config.organization,
            timeout_s=config.timeout_s,
            stream_timeout_s=config.stream_timeout_s,
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    def timeout_for(self, endpoint: Endpoint, *, stream: bool = False) -> float:
        if stream:
            return self.stream_timeout_s
        if endpoint is Endpoint.AUDIO_SPEECH:
            return AUDIO_SPEECH_TIMEOUT_S
        if endpoint.is_image:
            return IMAGE_TIMEOUT_S
        return self.timeout_s

    def _url(self, endpoint: Endpoint) -> str:
        return f"{self.base_url}{endpoint.path}"

    def _headers(self, extra: Mapping[str, str] | None) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if self.organization:
            headers["OpenAI-Organization"] = self.organization
        if extra:
            headers.update(extra)
        return headers

    def _raise_for_status(self, response: httpx.Response, endpoint: Endpoint, phase: str) -> None:
        if response.status_code < 400:
            return
        raise error_for_status(
            response.status_code,
            _error_message(response),
            phase=phase,
            endpoint=endpoint.value,
            retry_after_s=parse_retry_after(response.headers),
        )

    async def call(
        self,
        endpoint: Endpoint,
        payload: Mapping[str, Any],
        *,
        headers: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        url = self._url(endpoint)
        timeout = self.timeout_for(endpoint)
        logger.debug("POST %s (timeout=%.0fs)", url, timeout)
        client = self._get_client()
        try:
            if endpoint.requires_multipart:
                with ExitStack() as stack:
                    files = []
                    data: dict[str, str] = {}
                    for key, value in payload.items():
                        if value is None:
                            continue
                        if key in _FILE_FIELDS:
                            path = Path(str(value))
                            content_type = (
                                mimetypes.guess_type(path.name)[0] or "application/octet-stream"
                            )
                            handle = stack.enter_context(path.open("rb"))
                            files.append((key, (path.name, handle, content_type)))
                        else:
                            data[key] = _form_value(value)
                    response = await client.post(
                        url,
                        data=data,
                        files=files,
                        headers=self._headers(headers),
                        timeout=timeout,
                    )
            else:
                response = await client.post(
                    url, json=dict(payload), headers=self._headers(headers), timeout=timeout
                )
        except APIError:
            raise
        except (httpx.HTTPError, OSError) as e:
            raise wrap_provider_error(e, phase="call", endpoint=endpoint.value) from e

        self._raise_for_status(response, endpoint, "call")

        if endpoint is Endpoint.AUDIO_SPEECH:
            return {
                "content": base64.b64encode(response.content).decode("ascii"),
                "content_type": response.headers.get("content-type"),
                **speech_metadata(payload),
            }
        try:
            body = response.json()
        except ValueError:
            # text/srt/vtt transcription formats come back as plain text.
            return {"text": response.text}
        return body if isinstance(body, dict) else {"data": body}

    async def stream(
        self,
        endpoint: Endpoint,
        payload: Mapping[str, Any],
        *,
        headers: Mapping[str, str] | None = None,
    ) -> AsyncIterator[bytes]:
        url = self._url(endpoint)
        body = {**payload, "stream": True}
        stream_headers = {"Accept": "text/event-stream", **(headers or {})}
        logger.debug("POST %s (stream)", url)
        client = self._get_client()
        try:
            async with client.stream(
                "POST",
                url,
                json=body,
                headers=self._headers(stream_headers),
                timeout=self.timeout_for(endpoint, stream=True),
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                    self._raise_for_status(response, endpoint, "stream")
                # Line framing is left to SseParser; httpx would also split on U+2028.
                async for chunk in response.aiter_bytes():
                    yield chunk
        except APIError:
            raise
        except httpx.HTTPError as e:
            raise wrap_provider_error(e, phase="stream", endpoint=endpoint.value) from e

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
