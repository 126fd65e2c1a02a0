from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

from zeroai.adapters.base import (
    ProtocolAdapter,
    WireRequest,
    as_int,
    drop_none_fields,
)
from zeroai.chat.events import (
    ChatStreamEvent,
    ReasoningChunk,
    StreamChunk,
    StreamEnd,
    StreamStart,
    ToolCallChunk,
)
from zeroai.chat.stream import iter_sse_json
from zeroai.chat.types import (
    ChatMessage,
    ChatOptions,
    ChatRequest,
    ChatResponse,
    ToolCall,
    ToolResponse,
    Usage,
)
from zeroai.errors import ProtocolParseError, ProviderStatusError
from zeroai.targets import ModelIdentity, ServiceTarget

ANTHROPIC_VERSION = "2023-06-01"
SETUP_TOKEN_PREFIX = "sk-ant-oat"
OAUTH_BETA = "oauth-2025-04-20"
DEFAULT_MAX_TOKENS = 4096

_THINKING_BUDGETS = {"low": 1024, "medium": 8000, "high": 24000}


def _message_blocks(message: ChatMessage) -> tuple[str, list[dict[str, Any]]]:
    content = message.content
    if isinstance(content, str):
        role = "assistant" if message.role == "assistant" else "user"
        return role, [{"type": "text", "text": content}]
    if isinstance(content, ToolResponse):
        return "user", [
            {
                "type": "tool_result",
                "tool_use_id": content.call_id,
                "content": content.content,
            }
        ]
    return "assistant", [
        {
            "type": "tool_use",
            "id": call.call_id,
            "name": call.fn_name,
            "input": call.fn_arguments,
        }
        for call in content
    ]


def _to_anthropic_messages(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    # Consecutive same-role turns must be merged into one message.
    merged: list[dict[str, Any]] = []
    for message in messages:
        role, blocks = _message_blocks(message)
        if merged and merged[-1]["role"] == role:
            merged[-1]["content"].extend(blocks)
            continue
        merged.append({"role": role, "content": blocks})
    for entry in merged:
        blocks = entry["content"]
        if len(blocks) == 1 and blocks[0]["type"] == "text":
            entry["content"] = blocks[0]["text"]
    return merged


def _usage_from_anthropic(raw: Any) -> Usage:
    if not isinstance(raw, dict):
        return Usage()
    input_tokens = as_int(raw.get("input_tokens"))
    cache_tokens = (as_int(raw.get("cache_creation_input_tokens")) or 0) + (
        as_int(raw.get("cache_read_input_tokens")) or 0
    )
    prompt_tokens = (
        input_tokens + cache_tokens if input_tokens is not None else None
    )
    return Usage(
        prompt_tokens=prompt_tokens,
        completion_tokens=as_int(raw.get("output_tokens")),
    )


class AnthropicAdapter(ProtocolAdapter):
    name = "anthropic"

    def build_request(
        self,
        target: ServiceTarget,
        request: ChatRequest,
        options: ChatOptions,
        stream: bool = False,
    ) -> WireRequest:
        placement = self.place_auth(target)
        headers = self.base_headers(stream, options)
        headers["anthropic-version"] = ANTHROPIC_VERSION
        if placement.is_override:
            url = placement.override_url or ""
            headers.update(placement.override_headers)
        else:
            url = target.endpoint.join("messages")
            if placement.secret.startswith(SETUP_TOKEN_PREFIX):
                headers["Authorization"] = f"Bearer {placement.secret}"
                headers["anthropic-beta"] = OAUTH_BETA
            elif placement.secret:
                headers["x-api-key"] = placement.secret

        max_tokens = options.max_tokens or DEFAULT_MAX_TOKENS
        payload: dict[str, Any] = {
            "model": target.model.model_name,
            "max_tokens": max_tokens,
            "system": request.system,
            "messages": _to_anthropic_messages(request.messages),
            "stream": stream,
            "temperature": options.temperature,
            "top_p": options.top_p,
            "stop_sequences": (
                list(options.stop_sequences) if options.stop_sequences else None
            ),
        }
        budget = _THINKING_BUDGETS.get((options.reasoning_effort or "").lower())
        if budget is not None:
            payload["thinking"] = {
                "type": "enabled",
                "budget_tokens": min(budget, max(1024, max_tokens - 1)),
            }
        if request.tools:
            payload["tools"] = [
                drop_none_fields(
                    {
                        "name": tool.name,
                        "description": tool.description,
                        "input_schema": tool.schema
                        or {"type": "object", "properties": {}},
                    }
                )
                for tool in request.tools
            ]
        return WireRequest(
            url=url,
            headers=headers,
            payload=drop_none_fields(payload),
            stream=stream,
            framing="sse",
        )

    def parse_response(self, body: bytes, model: ModelIdentity) -> ChatResponse:
        data = self.load_body(body)
        self._raise_for_error_body(data)
        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise ProtocolParseError(self.name, "response has no 'content'", raw=data)

        content: list[str] = []
        reasoning: list[str] = []
        tool_calls: list[ToolCall] = []
        for block in blocks:
            if not isinstance(block, dict):
                continue
            block_type = block.get("type")
            if block_type == "text" and isinstance(block.get("text"), str):
                content.append(block["text"])
            elif block_type == "thinking" and isinstance(block.get("thinking"), str):
                reasoning.append(block["thinking"])
            elif block_type == "tool_use":
                raw_input = block.get("input")
                tool_calls.append(
                    ToolCall(
                        call_id=str(block.get("id") or ""),
                        fn_name=str(block.get("name") or ""),
                        fn_arguments=raw_input if isinstance(raw_input, dict) else {},
                    )
                )

        return ChatResponse(
            model=model,
            content=content,
            reasoning_content="".join(reasoning) or None,
            tool_calls=tool_calls,
            usage=_usage_from_anthropic(data.get("usage")),
            finish_reason=data.get("stop_reason"),
            provider_model_name=data.get("model"),
        )

    async def parse_stream(
        self, lines: AsyncIterator[str], model: ModelIdentity
    ) -> AsyncIterator[ChatStreamEvent]:
        yield StreamStart()
        prompt_tokens: int | None = None
        completion_tokens: int | None = None
        finish_reason: str | None = None
        tool_blocks: dict[int, tuple[str, str]] = {}

        async for frame in iter_sse_json(lines, provider=self.name):
            event_type = frame.get("type")
            if event_type == "error":
                self._raise_for_error_body(frame)
            elif event_type == "message_start":
                message = self.object_field(frame, "message")
                usage = _usage_from_anthropic(message.get("usage"))
                prompt_tokens = usage.prompt_tokens
                completion_tokens = usage.completion_tokens
            elif event_type == "content_block_start":
                block = self.object_field(frame, "content_block")
                index = as_int(frame.get("index")) or 0
                if block.get("type") == "tool_use":
                    call_id = str(block.get("id") or "")
                    fn_name = str(block.get("name") or "")
                    tool_blocks[index] = (call_id, fn_name)
                    yield ToolCallChunk(call_id=call_id, fn_name=fn_name, index=index)
                elif block.get("type") == "text" and block.get("text"):
                    yield StreamChunk(content=str(block["text"]))
            elif event_type == "content_block_delta":
                delta = self.object_field(frame, "delta")
                delta_type = delta.get("type")
                if delta_type == "text_delta" and delta.get("text"):
                    yield StreamChunk(content=str(delta["text"]))
                elif delta_type == "thinking_delta" and delta.get("thinking"):
                    yield ReasoningChunk(content=str(delta["thinking"]))
                elif delta_type == "input_json_delta":
                    index = as_int(frame.get("index")) or 0
                    call_id, fn_name = tool_blocks.get(index, ("", ""))
                    yield ToolCallChunk(
                        call_id=call_id,
                        fn_name=fn_name,
                        fn_arguments=str(delta.get("partial_json") or ""),
                        index=index,
                    )
            elif event_type == "message_delta":
                delta = self.object_field(frame, "delta")
                if delta.get("stop_reason"):
                    finish_reason = str(delta["stop_reason"])
                output_tokens = as_int(
                    self.object_field(frame, "usage").get("output_tokens")
                )
                if output_tokens is not None:
                    completion_tokens = output_tokens
            elif event_type == "message_stop":
                break

        usage = None
        if prompt_tokens is not None or completion_tokens is not None:
            usage = Usage(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens)
        yield StreamEnd(finish_reason=finish_reason, usage=usage)

    def _raise_for_error_body(self, data: dict[str, Any]) -> None:
        if data.get("type") != "error":
            return
        error = data.get("error")
        overloaded = isinstance(error, dict) and error.get("type") == "overloaded_error"
        raise ProviderStatusError(529 if overloaded else 500, json.dumps(error)[:2000])
