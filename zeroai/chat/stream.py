from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, assert_never

import httpx

from zeroai.chat.events import (
    ChatStreamEvent,
    ReasoningChunk,
    StreamChunk,
    StreamEnd,
    StreamError,
    StreamStart,
    ToolCallChunk,
)
from zeroai.chat.types import ChatOptions, ToolCall
from zeroai.errors import ProtocolParseError, TransportError, ZeroAIError

logger = logging.getLogger("zeroai.stream")


async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """Yield the ``data:`` payloads of a server-sent event stream.

    Multi-line data fields are joined with newlines; ``[DONE]`` sentinels are
    dropped. Transport errors propagate to the caller.
    """
    data_lines: list[str] = []
    async for line in lines:
        if not line:
            if data_lines:
                payload = "\n".join(data_lines)
                data_lines = []
                if payload.strip() and payload.strip() != "[DONE]":
                    yield payload
            continue
        if line.startswith(":"):
            continue
        if line.startswith("data:"):
            data_lines.append(line[5:].lstrip(" "))
    if data_lines:
        payload = "\n".join(data_lines)
        if payload.strip() and payload.strip() != "[DONE]":
            yield payload


async def iter_sse_json(
    lines: AsyncIterator[str], *, provider: str
) -> AsyncIterator[dict[str, Any]]:
    async for payload in iter_sse_data(lines):
        yield _decode_json_object(payload, provider=provider)


async def iter_ndjson(
    lines: AsyncIterator[str], *, provider: str
) -> AsyncIterator[dict[str, Any]]:
    async for line in lines:
        if not line.strip():
            continue
        yield _decode_json_object(line, provider=provider)


def _decode_json_object(payload: str, *, provider: str) -> dict[str, Any]:
    try:
        parsed = json.loads(payload)
    except ValueError as exc:
        raise ProtocolParseError(
            provider, f"stream frame is not valid JSON: {payload[:200]!r}"
        ) from exc
    if not isinstance(parsed, dict):
        raise ProtocolParseError(provider, "stream frame is not a JSON object")
    return parsed


@dataclass(slots=True)
class _ToolCallAccumulator:
    call_id: str = ""
    fn_name: str = ""
    arguments: list[str] = field(default_factory=list)

    def to_tool_call(self) -> ToolCall:
        raw = "".join(self.arguments).strip()
        arguments: dict[str, Any] = {}
        if raw:
            try:
                parsed = json.loads(raw)
            except ValueError:
                parsed = {"_raw": raw}
            arguments = parsed if isinstance(parsed, dict) else {"value": parsed}
        return ToolCall(call_id=self.call_id, fn_name=self.fn_name, fn_arguments=arguments)


class ChatStream:
    """Uniform event stream over one provider response.

    Events are handed out as soon as the adapter decodes them. Captures only
    accumulate what the terminal ``StreamEnd`` needs. After ``StreamEnd`` or
    ``StreamError`` nothing else is yielded.
    """

    def __init__(
        self,
        events: AsyncIterator[ChatStreamEvent],
        options: ChatOptions | None = None,
        on_close: Callable[[], Awaitable[None]] | None = None,
        provider: str = "unknown",
    ) -> None:
        options = options or ChatOptions()
        self._provider = provider
        self._events = events
        self._on_close = on_close
        self._capture_content = bool(options.capture_content)
        self._capture_reasoning = bool(options.capture_reasoning_content)
        self._capture_usage = bool(options.capture_usage)
        self._capture_tool_calls = bool(options.capture_tool_calls)
        self._content: list[str] = []
        self._reasoning: list[str] = []
        self._tool_calls: dict[int, _ToolCallAccumulator] = {}
        self._started = False
        self._finished = False
        self._closed = False
        self._iterator = self._run()

    def __aiter__(self) -> ChatStream:
        return self

    async def __anext__(self) -> ChatStreamEvent:
        return await self._iterator.__anext__()

    async def __aenter__(self) -> ChatStream:
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._iterator.aclose()
        await self._release()

    async def _release(self) -> None:
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self._events, "aclose", None)
        if aclose is not None:
            await aclose()
        if self._on_close is not None:
            await self._on_close()

    async def _run(self) -> AsyncIterator[ChatStreamEvent]:
        try:
            try:
                async for event in self._events:
                    if not self._started and not isinstance(event, StreamStart):
                        self._started = True
                        yield StreamStart()
                    output = self._observe(event)
                    if output is None:
                        continue
                    yield output
                    if self._finished:
                        return
            except httpx.RequestError as exc:
                logger.warning("stream_transport_error error=%s", exc)
                yield self._error(TransportError.from_httpx(exc))
                return
            except httpx.StreamError as exc:
                logger.warning("stream_transport_error error=%s", exc)
                yield self._error(TransportError(str(exc) or repr(exc)))
                return
            except ZeroAIError as exc:
                logger.warning(
                    "stream_error type=%s error=%s", exc.__class__.__name__, exc
                )
                yield self._error(exc)
                return
            except Exception as exc:
                logger.exception("stream_decode_failed type=%s", exc.__class__.__name__)
                yield self._error(
                    ProtocolParseError(
                        self._provider, f"cannot decode stream frame: {exc!r}"
                    )
                )
                return

            if not self._started:
                self._started = True
                yield StreamStart()
            # Transport closed cleanly without a terminal frame.
            yield self._end(StreamEnd())
        finally:
            await self._release()

    def _observe(self, event: ChatStreamEvent) -> ChatStreamEvent | None:
        if isinstance(event, StreamStart):
            if self._started:
                return None
            self._started = True
            return event
        if isinstance(event, StreamChunk):
            if self._capture_content:
                self._content.append(event.content)
            return event
        if isinstance(event, ReasoningChunk):
            if self._capture_reasoning:
                self._reasoning.append(event.content)
            return event
        if isinstance(event, ToolCallChunk):
            if self._capture_tool_calls:
                accumulator = self._tool_calls.setdefault(
                    event.index, _ToolCallAccumulator()
                )
                if event.call_id:
                    accumulator.call_id = event.call_id
                if event.fn_name:
                    accumulator.fn_name = event.fn_name
                if event.fn_arguments:
                    accumulator.arguments.append(event.fn_arguments)
            return event
        if isinstance(event, StreamEnd):
            return self._end(event)
        if isinstance(event, StreamError):
            self._finished = True
            return event
        assert_never(event)

    def _end(self, event: StreamEnd) -> StreamEnd:
        self._finished = True
        tool_calls = None
        if self._capture_tool_calls:
            tool_calls = [
                self._tool_calls[index].to_tool_call()
                for index in sorted(self._tool_calls)
            ]
        return StreamEnd(
            finish_reason=event.finish_reason,
            usage=event.usage,
            captured_usage=event.usage if self._capture_usage else None,
            captured_content="".join(self._content) if self._capture_content else None,
            captured_reasoning_content=(
                "".join(self._reasoning) if self._capture_reasoning else None
            ),
            captured_tool_calls=tool_calls,
        )

    def _error(self, error: ZeroAIError) -> StreamError:
        self._finished = True
        return StreamError(error=error)
