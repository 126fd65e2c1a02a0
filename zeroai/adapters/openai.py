from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

from zeroai.adapters.base import (
    ProtocolAdapter,
    WireRequest,
    as_int,
    drop_none_fields,
    parse_tool_arguments,
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


def _message_to_openai(message: ChatMessage) -> dict[str, Any]:
    content = message.content
    if isinstance(content, str):
        return {"role": message.role, "content": content}
    if isinstance(content, ToolResponse):
        return {
            "role": "tool",
            "tool_call_id": content.call_id,
            "content": content.content,
        }
    return {
        "role": "assistant",
        "tool_calls": [
            {
                "id": call.call_id,
                "type": "function",
                "function": {
                    "name": call.fn_name,
                    "arguments": json.dumps(call.fn_arguments, separators=(",", ":")),
                },
            }
            for call in content
        ],
    }


def _usage_from_openai(raw: Any) -> Usage:
    if not isinstance(raw, dict):
        return Usage()
    details = raw.get("completion_tokens_details")
    reasoning_tokens = (
        as_int(details.get("reasoning_tokens")) if isinstance(details, dict) else None
    )
    return Usage(
        prompt_tokens=as_int(raw.get("prompt_tokens")),
        completion_tokens=as_int(raw.get("completion_tokens")),
        total_tokens=as_int(raw.get("total_tokens")),
        reasoning_tokens=reasoning_tokens,
    )


def _reasoning_text(message: dict[str, Any]) -> str | None:
    for key in ("reasoning_content", "reasoning"):
        value = message.get(key)
        if isinstance(value, str) and value:
            return value
    return None


class OpenAIAdapter(ProtocolAdapter):
    """Chat Completions API, shared by every OpenAI-compatible provider."""

    name = "openai"

    def build_request(
        self,
        target: ServiceTarget,
        request: ChatRequest,
        options: ChatOptions,
        stream: bool = False,
    ) -> WireRequest:
        placement = self.place_auth(target)
        headers = self.base_headers(stream, options)
        if placement.is_override:
            url = placement.override_url or ""
            headers.update(placement.override_headers)
        else:
            url = target.endpoint.join("chat/completions")
            if placement.secret:
                headers["Authorization"] = f"Bearer {placement.secret}"

        messages: list[dict[str, Any]] = []
        if request.system:
            messages.append({"role": "system", "content": request.system})
        messages.extend(_message_to_openai(message) for message in request.messages)

        payload: dict[str, Any] = {
            "model": target.model.model_name,
            "messages": messages,
            "stream": stream,
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
            "top_p": options.top_p,
            "stop": list(options.stop_sequences) if options.stop_sequences else None,
            "reasoning_effort": options.reasoning_effort,
        }
        if request.tools:
            payload["tools"] = [
                {
                    "type": "function",
                    "function": drop_none_fields(
                        {
                            "name": tool.name,
                            "description": tool.description,
                            "parameters": tool.schema,
                        }
                    ),
                }
                for tool in request.tools
            ]
        if stream:
            payload["stream_options"] = {"include_usage": True}
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
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            raise ProtocolParseError(self.name, "response has no 'choices'", raw=data)
        choice = choices[0]
        message = choice.get("message") if isinstance(choice, dict) else None
        if not isinstance(message, dict):
            raise ProtocolParseError(self.name, "choice has no 'message'", raw=data)

        content: list[str] = []
        text = message.get("content")
        if isinstance(text, str) and text:
            content.append(text)

        tool_calls: list[ToolCall] = []
        for raw_call in self.list_field(message, "tool_calls"):
            if not isinstance(raw_call, dict):
                continue
            function = self.object_field(raw_call, "function")
            tool_calls.append(
                ToolCall(
                    call_id=str(raw_call.get("id") or ""),
                    fn_name=str(function.get("name") or ""),
                    fn_arguments=parse_tool_arguments(function.get("arguments")),
                )
            )

        return ChatResponse(
            model=model,
            content=content,
            reasoning_content=_reasoning_text(message),
            tool_calls=tool_calls,
            usage=_usage_from_openai(data.get("usage")),
            finish_reason=choice.get("finish_reason"),
            provider_model_name=data.get("model"),
        )

    async def parse_stream(
        self, lines: AsyncIterator[str], model: ModelIdentity
    ) -> AsyncIterator[ChatStreamEvent]:
        yield StreamStart()
        finish_reason: str | None = None
        usage: Usage | None = None
        async for frame in iter_sse_json(lines, provider=self.name):
            self._raise_for_error_body(frame)
            if frame.get("usage"):
                usage = _usage_from_openai(frame["usage"])
            choices = frame.get("choices")
            if not isinstance(choices, list) or not choices:
                continue
            choice = choices[0]
            if not isinstance(choice, dict):
                continue
            if choice.get("finish_reason"):
                finish_reason = str(choice["finish_reason"])
            delta = choice.get("delta")
            if not isinstance(delta, dict):
                continue

            reasoning = _reasoning_text(delta)
            if reasoning:
                yield ReasoningChunk(content=reasoning)
            text = delta.get("content")
            if isinstance(text, str) and text:
                yield StreamChunk(content=text)
            for raw_call in self.list_field(delta, "tool_calls"):
                if not isinstance(raw_call, dict):
                    continue
                function = self.object_field(raw_call, "function")
                yield ToolCallChunk(
                    call_id=str(raw_call.get("id") or ""),
                    fn_name=str(function.get("name") or ""),
                    fn_arguments=str(function.get("arguments") or ""),
                    index=as_int(raw_call.get("index")) or 0,
                )
        yield StreamEnd(finish_reason=finish_reason, usage=usage)

    def _raise_for_error_body(self, data: dict[str, Any]) -> None:
        error = data.get("error")
        if not error:
            return
        code = as_int(error.get("code")) if isinstance(error, dict) else None
        raise ProviderStatusError(code or 500, json.dumps(error)[:2000])
