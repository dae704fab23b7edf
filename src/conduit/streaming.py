"""Server-sent-event parsing and the streaming engine.

``SseParser`` turns raw SSE lines into ``StreamingEvent`` objects and keeps the
running text buffer; ``StreamingEngine`` drives a line source through a parser
and applies cancellation, callbacks and cooperative stop checks.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, Mapping
import codecs
from contextlib import aclosing
import inspect
import json
import logging
import re
from typing import TYPE_CHECKING, Any

from conduit.errors import ResponseCanceledError
from conduit.response import TERMINAL_EVENT_TYPES, StreamingEvent

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Iterable

    LineSource = AsyncIterable[str | bytes] | Iterable[str | bytes]
    EventCallback = Callable[[StreamingEvent], Awaitable[None] | None]
    StopPredicate = Callable[[], bool]

logger = logging.getLogger(__name__)

_LINE_BREAK = re.compile(r"\r\n|\r|\n")

TEXT_DELTA = "response.output_text.delta"
TEXT_DONE = ("response.output_text.completed", "response.output_text.done")
TOOL_CALL_CREATED = "response.tool_call.created"
CANCELED = "response.canceled"
COMPLETED = "response.completed"


def _first_str(data: Mapping[str, Any], *paths: tuple[str, ...]) -> str | None:
    for path in paths:
        node: Any = data
        for key in path:
            node = node.get(key) if isinstance(node, Mapping) else None
        if isinstance(node, str):
            return node
    return None


class SseParser:
    """Incremental SSE parser with text accumulation.

    One parser instance serves exactly one stream.
    """

    def __init__(self) -> None:
        self._event: str | None = None
        self._data: list[str] = []
        self._accumulated = ""
        # Chat Completions streams tool calls in fragments keyed by index.
        self._chat_calls: dict[int, dict[str, Any]] = {}
        # Raw byte chunks may end mid-character or mid-line.
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    @property
    def accumulated(self) -> str:
        return self._accumulated

    def feed(self, chunk: str | bytes) -> list[StreamingEvent]:
        """Consume input and return the events it completes.

        ``str`` input is one or more complete lines. ``bytes`` input is a raw
        wire chunk; the trailing partial line is held until its line break
        arrives. Only CR, LF and CRLF end a line.
        """
        if isinstance(chunk, bytes):
            text = self._pending + self._decoder.decode(chunk)
            # A trailing CR may be the first half of a CRLF.
            cut = len(text) - 1 if text.endswith("\r") else len(text)
            *lines, rest = _LINE_BREAK.split(text[:cut])
            self._pending = rest + text[cut:]
        else:
            lines = _LINE_BREAK.split(chunk)
            if len(lines) > 1 and not lines[-1]:
                lines.pop()
        events: list[StreamingEvent] = []
        for line in lines:
            events.extend(self._feed_line(line.strip()))
        return events

    def flush(self) -> list[StreamingEvent]:
        """Dispatch whatever is left once the source is exhausted."""
        tail = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        events: list[StreamingEvent] = []
        if tail:
            for line in _LINE_BREAK.split(tail):
                events.extend(self._feed_line(line.strip()))
        events.extend(self._dispatch())
        events.extend(self._emit_chat_calls())
        return events

    def _feed_line(self, line: str) -> list[StreamingEvent]:
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return []
        if line.startswith("event:"):
            # Some transports drop blank separators; a new event name ends the frame.
            events = self._dispatch() if self._data else []
            self._event = line[len("event:") :].strip()
            return events
        if line.startswith("data:"):
            self._data.append(line[len("data:") :].strip())
            return []
        logger.debug("Ignoring unrecognised SSE line: %.80s", line)
        return []

    def _dispatch(self) -> list[StreamingEvent]:
        name, lines = self._event, self._data
        self._event, self._data = None, []
        if not lines:
            return []
        raw = "\n".join(lines)
        if raw == "[DONE]":
            events = self._emit_chat_calls()
            events.append(self._accumulate(COMPLETED, {"done": True}))
            return events

        try:
            decoded: Any = json.loads(raw)
        except ValueError:
            decoded = None
        data: dict[str, Any] = decoded if isinstance(decoded, dict) else {"data": raw}

        if name:
            return self._expand(name, data)
        return self._normalize_envelope(data)

    def _normalize_envelope(self, data: dict[str, Any]) -> list[StreamingEvent]:
        kind = data.get("type")
        if isinstance(kind, str) and kind:
            inner = data.get("data")
            payload = inner if isinstance(inner, dict) and set(data) <= {"type", "data"} else data
            return self._expand(kind, payload)
        if isinstance(data.get("content"), str):
            return [self._accumulate(TEXT_DELTA, {"delta": data["content"]})]
        if isinstance(data.get("delta"), str):
            return [self._accumulate(TEXT_DELTA, {"delta": data["delta"]})]
        choices = data.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], Mapping):
            return self._chat_chunk(choices[0], data)
        return [self._accumulate("message", data)]

    def _chat_chunk(self, choice: Mapping[str, Any], chunk: dict[str, Any]) -> list[StreamingEvent]:
        events: list[StreamingEvent] = []
        delta = choice.get("delta")
        delta = delta if isinstance(delta, Mapping) else {}
        content = delta.get("content")
        if isinstance(content, str) and content:
            events.append(self._accumulate(TEXT_DELTA, {"delta": content, "id": chunk.get("id")}))
        for fragment in delta.get("tool_calls") or ():
            if not isinstance(fragment, Mapping):
                continue
            slot = self._chat_calls.setdefault(
                int(fragment.get("index", 0)), {"id": None, "name": None, "arguments": ""}
            )
            if fragment.get("id"):
                slot["id"] = fragment["id"]
            fn = fragment.get("function")
            if isinstance(fn, Mapping):
                if fn.get("name"):
                    slot["name"] = fn["name"]
                if isinstance(fn.get("arguments"), str):
                    slot["arguments"] += fn["arguments"]
        if choice.get("finish_reason"):
            events.extend(self._emit_chat_calls())
        return events

    def _emit_chat_calls(self) -> list[StreamingEvent]:
        calls, self._chat_calls = self._chat_calls, {}
        return [
            StreamingEvent(TOOL_CALL_CREATED, dict(slot))
            for _, slot in sorted(calls.items())
            if slot["id"] and slot["name"]
        ]

    def _expand(self, kind: str, data: dict[str, Any]) -> list[StreamingEvent]:
        events = [self._accumulate(kind, data)]
        # Responses streams announce finished function calls as output items.
        item = data.get("item")
        if (
            kind == "response.output_item.done"
            and isinstance(item, Mapping)
            and item.get("type") in ("function_call", "tool_call")
        ):
            events.append(
                StreamingEvent(
                    TOOL_CALL_CREATED,
                    {
                        "id": item.get("call_id") or item.get("id"),
                        "name": item.get("name"),
                        "arguments": item.get("arguments"),
                    },
                )
            )
        return events

    def _accumulate(self, kind: str, data: dict[str, Any]) -> StreamingEvent:
        if kind == TEXT_DELTA:
            delta = _first_str(
                data, ("delta",), ("text",), ("item", "delta"), ("output_text", "delta")
            ) or ""
            self._accumulated += delta
            return StreamingEvent(
                kind,
                {**data, "delta": delta, "accumulated": self._accumulated, "typing": True},
                is_final=False,
            )
        if kind in TEXT_DONE:
            text = data.get("text")
            return StreamingEvent(
                kind,
                {
                    **data,
                    "text": text if isinstance(text, str) else self._accumulated,
                    "typing": False,
                },
            )
        if kind in TERMINAL_EVENT_TYPES:
            self._accumulated = ""
            return StreamingEvent(kind, data, is_final=True)
        return StreamingEvent(kind, data)


async def _aiter_lines(source: LineSource) -> AsyncIterator[str | bytes]:
    if isinstance(source, AsyncIterable):
        async for line in source:
            yield line
    else:
        for line in source:
            yield line


async def _parse(source: LineSource) -> AsyncIterator[StreamingEvent]:
    parser = SseParser()
    async with aclosing(_aiter_lines(source)) as lines:
        async for line in lines:
            for event in parser.feed(line):
                yield event
    for event in parser.flush():
        yield event


class StreamingEngine:
    """Turn an SSE line source into normalized, accumulated events."""

    async def stream(
        self,
        source: LineSource,
        *,
        on_event: EventCallback | None = None,
        should_stop: StopPredicate | None = None,
    ) -> AsyncIterator[StreamingEvent]:
        """Yield events until the source ends, a stop is requested, or it is canceled.

        Raises:
            ResponseCanceledError: When the provider emits ``response.canceled``.
                Events before it have already been yielded.
        """
        count = 0
        try:
            async with aclosing(_parse(source)) as events:
                async for event in events:
                    count += 1
                    if event.type == CANCELED:
                        response = event.data.get("response")
                        response_id = (
                            response.get("id") if isinstance(response, Mapping) else None
                        )
                        raise ResponseCanceledError(response_id=response_id)

                    if on_event is not None:
                        await _notify(on_event, event)

                    yield event

                    if should_stop is not None and should_stop():
                        logger.info("Stream stopped by caller after %d event(s)", count)
                        return
        except ResponseCanceledError:
            logger.info("Stream canceled by provider after %d event(s)", count)
            raise
        except Exception as exc:
            logger.error("Stream failed after %d event(s): %s", count, exc)
            raise
        logger.debug("Stream finished after %d event(s)", count)


async def _notify(callback: EventCallback, event: StreamingEvent) -> None:
    try:
        result = callback(event)
        if inspect.isawaitable(result):
            await result
    except Exception as exc:
        # Callback failures never interrupt the stream.
        logger.warning("on_event callback failed for %s: %s", event.type, exc)
