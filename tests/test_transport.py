"""HTTP transport contract tests against an in-process httpx mock."""

from __future__ import annotations

import base64
import json
from pathlib import Path

import httpx
import pytest

from conduit.adapters import AudioSpeechAdapter
from conduit.config import Config
from conduit.endpoints import Endpoint
from conduit.errors import APIError, RateLimitError
from conduit.providers import HttpTransport, MockTransport, ProviderTransport
from conduit.streaming import StreamingEngine

pytestmark = pytest.mark.contract

BASE_URL = "https://api.test/v1"


def _transport(handler, **kwargs) -> tuple[HttpTransport, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpTransport(api_key="sk-test", base_url=BASE_URL, client=client, **kwargs), client


# =============================================================================
# JSON calls
# =============================================================================


@pytest.mark.asyncio
async def test_json_call_sends_auth_and_extra_headers() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "resp_1", "output": []})

    transport, _ = _transport(handler, organization="org_1")
    body = await transport.call(
        Endpoint.RESPONSE_API,
        {"model": "gpt-4o-mini", "input": "hi"},
        headers={"Idempotency-Key": "k1"},
    )

    assert body == {"id": "resp_1", "output": []}
    (request,) = seen
    assert str(request.url) == f"{BASE_URL}/responses"
    assert request.headers["Authorization"] == "Bearer sk-test"
    assert request.headers["OpenAI-Organization"] == "org_1"
    assert request.headers["Idempotency-Key"] == "k1"
    assert json.loads(request.content) == {"model": "gpt-4o-mini", "input": "hi"}


@pytest.mark.asyncio
async def test_rate_limit_maps_to_rate_limit_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            429,
            json={"error": {"message": "Slow down"}},
            headers={"Retry-After": "7"},
        )

    transport, _ = _transport(handler)
    with pytest.raises(RateLimitError) as exc:
        await transport.call(Endpoint.CHAT_COMPLETION, {"messages": []})

    err = exc.value
    assert err.status_code == 429
    assert err.retry_after_s == 7.0
    assert err.retryable is True
    assert err.endpoint == "chat_completion"
    assert "Slow down" in str(err)


@pytest.mark.asyncio
async def test_auth_failure_carries_hint() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"message": "Invalid key"}})

    transport, _ = _transport(handler)
    with pytest.raises(APIError) as exc:
        await transport.call(Endpoint.RESPONSE_API, {})

    assert exc.value.status_code == 401
    assert exc.value.retryable is False
    assert exc.value.hint is not None
    assert "OPENAI_API_KEY" in exc.value.hint


@pytest.mark.asyncio
async def test_network_errors_are_wrapped_as_retryable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    transport, _ = _transport(handler)
    with pytest.raises(APIError) as exc:
        await transport.call(Endpoint.RESPONSE_API, {})

    assert exc.value.retryable is True
    assert exc.value.phase == "call"
    assert isinstance(exc.value.__cause__, httpx.ConnectError)


@pytest.mark.asyncio
async def test_plain_text_body_is_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="1\n00:00:00,000 --> 00:00:01,000\nhi\n")

    transport, _ = _transport(handler)
    body = await transport.call(Endpoint.RESPONSE_API, {})
    assert body["text"].startswith("1\n00:00:00")


@pytest.mark.asyncio
async def test_speech_returns_base64_audio() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"ID3audio", headers={"content-type": "audio/mpeg"})

    transport, _ = _transport(handler)
    body = await transport.call(Endpoint.AUDIO_SPEECH, {"input": "hi"})
    assert base64.b64decode(body["content"]) == b"ID3audio"
    assert body["content_type"] == "audio/mpeg"


@pytest.mark.asyncio
async def test_speech_reply_carries_requested_voice_and_format() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"OggS", headers={"content-type": "audio/ogg"})

    transport, _ = _transport(handler)
    payload = {
        "model": "tts-1-hd",
        "input": "hi",
        "voice": "nova",
        "response_format": "opus",
        "speed": 1.5,
    }
    body = await transport.call(Endpoint.AUDIO_SPEECH, payload)

    dto = AudioSpeechAdapter().transform_response(body)
    assert dto.metadata == {"format": "opus", "voice": "nova", "model": "tts-1-hd", "speed": 1.5}


# =============================================================================
# Multipart
# =============================================================================


@pytest.mark.asyncio
async def test_multipart_uploads_file_and_form_fields(tmp_path: Path) -> None:
    clip = tmp_path / "clip.mp3"
    clip.write_bytes(b"ID3-bytes")
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"text": "hi"})

    transport, _ = _transport(handler)
    await transport.call(
        Endpoint.AUDIO_TRANSCRIPTION,
        {"file": str(clip), "model": "whisper-1", "temperature": 0, "prompt": None},
        headers={"Idempotency-Key": "ignored-by-server"},
    )

    (request,) = seen
    assert request.headers["content-type"].startswith("multipart/form-data")
    content = request.content
    assert b'name="file"; filename="clip.mp3"' in content
    assert b"ID3-bytes" in content
    assert b'name="model"' in content
    assert b"whisper-1" in content
    assert b'name="prompt"' not in content


@pytest.mark.asyncio
async def test_missing_upload_file_is_wrapped(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
        return httpx.Response(200, json={})

    transport, _ = _transport(handler)
    with pytest.raises(APIError) as exc:
        await transport.call(
            Endpoint.IMAGE_VARIATION, {"image": str(tmp_path / "gone.png"), "n": 1}
        )
    assert exc.value.retryable is False
    assert isinstance(exc.value.__cause__, OSError)


# =============================================================================
# Streaming
# =============================================================================


@pytest.mark.asyncio
async def test_stream_yields_raw_body_chunks() -> None:
    seen: list[httpx.Request] = []
    sse_body = (
        "event: response.output_text.delta\n"
        'data: {"delta": "Hi"}\n'
        "\n"
        "event: response.completed\n"
        "data: {}\n"
        "\n"
    )

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200, text=sse_body, headers={"content-type": "text/event-stream"}
        )

    transport, _ = _transport(handler)
    chunks = [c async for c in transport.stream(Endpoint.RESPONSE_API, {"input": "x"})]

    assert b"".join(chunks) == sse_body.encode()
    assert seen[0].headers["Accept"] == "text/event-stream"
    assert json.loads(seen[0].content)["stream"] is True


@pytest.mark.asyncio
async def test_stream_keeps_unicode_line_separators_inside_data() -> None:
    sse_body = 'data: {"type": "response.output_text.delta", "delta": "a\u2028b"}\n\n'

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, content=sse_body.encode(), headers={"content-type": "text/event-stream"}
        )

    transport, _ = _transport(handler)
    events = [
        e async for e in StreamingEngine().stream(transport.stream(Endpoint.RESPONSE_API, {}))
    ]

    deltas = [e for e in events if e.is_text_delta]
    assert [e.data["delta"] for e in deltas] == ["a\u2028b"]
    assert deltas[0].data["accumulated"] == "a\u2028b"


@pytest.mark.asyncio
async def test_stream_error_status_raises_with_body_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error": {"message": "overloaded"}})

    transport, _ = _transport(handler)
    with pytest.raises(APIError) as exc:
        async for _ in transport.stream(Endpoint.RESPONSE_API, {}):
            pass

    assert exc.value.status_code == 503
    assert exc.value.retryable is True
    assert exc.value.phase == "stream"
    assert "overloaded" in str(exc.value)


# =============================================================================
# Configuration and lifecycle
# =============================================================================


def test_timeouts_follow_endpoint_kind() -> None:
    transport = HttpTransport(api_key="k", timeout_s=10, stream_timeout_s=90)
    assert transport.timeout_for(Endpoint.RESPONSE_API) == 10
    assert transport.timeout_for(Endpoint.AUDIO_SPEECH) == 120
    assert transport.timeout_for(Endpoint.IMAGE_EDIT) == 180
    assert transport.timeout_for(Endpoint.RESPONSE_API, stream=True) == 90


def test_from_config_copies_connection_settings() -> None:
    config = Config(api_key="sk-x", base_url="https://proxy.test/v1/", organization="org")
    transport = HttpTransport.from_config(config)
    assert transport.api_key == "sk-x"
    assert transport.base_url == "https://proxy.test/v1"
    assert transport.organization == "org"


@pytest.mark.asyncio
async def test_injected_client_is_left_open() -> None:
    transport, client = _transport(lambda request: httpx.Response(200, json={}))
    await transport.aclose()
    assert not client.is_closed
    await client.aclose()


def test_transports_satisfy_protocol() -> None:
    assert isinstance(HttpTransport(api_key="k"), ProviderTransport)
    assert isinstance(MockTransport(), ProviderTransport)
