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
from zeroai.auth.auth_data import NoAuth
from zeroai.chat.events import (
    ChatStreamEvent,
    ReasoningChunk,
    StreamChunk,
    StreamEnd,
    StreamStart,
    ToolCallChunk,
)
from zeroai.chat.stream import iter_ndjson
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


def _message_to_ollama(message: ChatMessage) -> dict[str, Any]:
    content = message.content
    if isinstance(content, str):
        return {"role": message.role, "content": content}
    if isinstance(content, ToolResponse):
        return {"role": "tool", "content": content.content}
    return {
        "role": "assistant",
        "content": "",
        "tool_calls": [
            {"function": {"name": call.fn_name, "arguments": call.fn_arguments}}
            for call in content
        ],
    }


def _usage_from_frame(frame: dict[str, Any]) -> Usage:
    return Usage(
        prompt_tokens=as_int(frame.get("prompt_eval_count")),
        completion_tokens=as_int(frame.get("eval_count")),
    )


class OllamaAdapter(ProtocolAdapter):
    """Native ``/api/chat``; streams newline-delimited JSON."""

    name = "ollama"
    framing = "ndjson"

    def build_request(
        self,
        target: ServiceTarget,
        request: ChatRequest,
        options: ChatOptions,
        stream: bool = False,
    ) -> WireRequest:
        headers = self.base_headers(stream, options)
        url = target.endpoint.join("api/chat")
        if not isinstance(target.auth, NoAuth):
            placement = self.place_auth(target)
            if placement.is_override:
                url = placement.override_url or url
                headers.update(placement.override_headers)
            elif placement.secret:
                headers["Authorization"] = f"Bearer {placement.secret}"

        messages: list[dict[str, Any]] = []
        if request.system:
            messages.append({"role": "system", "content": request.system})
        messages.extend(_message_to_ollama(message) for message in request.messages)

        payload: dict[str, Any] = {
            "model": target.model.model_name,
            "messages": messages,
            "stream": stream,
            "options": drop_none_fields(
                {
                    "temperature": options.temperature,
                    "num_predict": options.max_tokens,
                    "top_p": options.top_p,
                    "stop": (
                        list(options.stop_sequences) if options.stop_sequences else None
                    ),
                }
            )
            or None,
        }
        if options.reasoning_effort:
            payload["think"] = True
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
        return WireRequest(
            url=url,
            headers=headers,
            payload=drop_none_fields(payload),
            stream=stream,
            framing="ndjson",
        )

    def parse_response(self, body: bytes, model: ModelIdentity) -> ChatResponse:
        data = self.load_body(body)
        self._raise_for_error_body(data)
        message = data.get("message")
        if not isinstance(message, dict):
            raise ProtocolParseError(self.name, "response has no 'message'", raw=data)

        content: list[str] = []
        text = message.get("content")
        if isinstance(text, str) and text:
            content.append(text)
        thinking = message.get("thinking")

        tool_calls: list[ToolCall] = []
        for position, raw_call in enumerate(self.list_field(message, "tool_calls")):
            if not isinstance(raw_call, dict):
                continue
            function = self.object_field(raw_call, "function")
            name = str(function.get("name") or "")
            tool_calls.append(
                ToolCall(
                    call_id=str(raw_call.get("id") or f"call_{position}"),
                    fn_name=name,
                    fn_arguments=parse_tool_arguments(function.get("arguments")),
                )
            )

        return ChatResponse(
            model=model,
            content=content,
            reasoning_content=thinking if isinstance(thinking, str) and thinking else None,
            tool_calls=tool_calls,
            usage=_usage_from_frame(data),
            finish_reason=data.get("done_reason"),
            provider_model_name=data.get("model"),
        )

    async def parse_stream(
        self, lines: AsyncIterator[str], model: ModelIdentity
    ) -> AsyncIterator[ChatStreamEvent]:
        yield StreamStart()
        tool_index = 0
        async for frame in iter_ndjson(lines, provider=self.name):
            self._raise_for_error_body(frame)
            message = frame.get("message")
            if isinstance(message, dict):
                thinking = message.get("thinking")
                if isinstance(thinking, str) and thinking:
                    yield ReasoningChunk(content=thinking)
                text = message.get("content")
                if isinstance(text, str) and text:
                    yield StreamChunk(content=text)
                for raw_call in self.list_field(message, "tool_calls"):
                    if not isinstance(raw_call, dict):
                        continue
                    function = self.object_field(raw_call, "function")
                    arguments = function.get("arguments")
                    yield ToolCallChunk(
                        call_id=str(raw_call.get("id") or f"call_{tool_index}"),
                        fn_name=str(function.get("name") or ""),
                        fn_arguments=(
                            arguments
                            if isinstance(arguments, str)
                            else json.dumps(arguments or {}, separators=(",", ":"))
                        ),
                        index=tool_index,
                    )
                    tool_index += 1
            if frame.get("done"):
                yield StreamEnd(
                    finish_reason=frame.get("done_reason"),
                    usage=_usage_from_frame(frame),
                )
                return

    def _raise_for_error_body(self, data: dict[str, Any]) -> None:
        error = data.get("error")
        if error:
            raise ProviderStatusError(500, str(error)[:2000])
