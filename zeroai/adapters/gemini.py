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
from zeroai.providers import ProviderKind
from zeroai.targets import ModelIdentity, ServiceTarget

_THINKING_BUDGETS = {"low": 1024, "medium": 8192, "high": 24576}


def _composite_secret(secret: str) -> tuple[str, str] | None:
    """Split a ``{"token": ..., "projectId": ...}`` secret, if that is what it is."""
    if not secret.startswith("{"):
        return None
    try:
        parsed = json.loads(secret)
    except ValueError:
        return None
    if not isinstance(parsed, dict):
        return None
    token = parsed.get("token")
    project_id = parsed.get("projectId")
    if isinstance(token, str) and isinstance(project_id, str):
        return token, project_id
    return None


def _stream_url(url: str) -> str:
    url = url.replace(":generateContent", ":streamGenerateContent")
    if "alt=sse" in url:
        return url
    return f"{url}{'&' if '?' in url else '?'}alt=sse"


def _to_gemini_contents(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    call_names: dict[str, str] = {}
    contents: list[dict[str, Any]] = []
    for message in messages:
        content = message.content
        if isinstance(content, str):
            role = "model" if message.role == "assistant" else "user"
            parts: list[dict[str, Any]] = [{"text": content}]
        elif isinstance(content, ToolResponse):
            role = "user"
            parts = [
                {
                    "functionResponse": {
                        "name": call_names.get(content.call_id, content.call_id),
                        "response": {"content": content.content},
                    }
                }
            ]
        else:
            role = "model"
            parts = []
            for call in content:
                call_names[call.call_id] = call.fn_name
                parts.append(
                    {"functionCall": {"name": call.fn_name, "args": call.fn_arguments}}
                )
        if contents and contents[-1]["role"] == role:
            contents[-1]["parts"].extend(parts)
        else:
            contents.append({"role": role, "parts": parts})
    return contents


def _usage_from_gemini(raw: Any) -> Usage | None:
    if not isinstance(raw, dict):
        return None
    return Usage(
        prompt_tokens=as_int(raw.get("promptTokenCount")),
        completion_tokens=as_int(raw.get("candidatesTokenCount")),
        total_tokens=as_int(raw.get("totalTokenCount")),
        reasoning_tokens=as_int(raw.get("thoughtsTokenCount")),
    )


def _first_candidate(data: dict[str, Any]) -> dict[str, Any] | None:
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return None
    candidate = candidates[0]
    return candidate if isinstance(candidate, dict) else None


def _candidate_parts(candidate: dict[str, Any]) -> list[dict[str, Any]]:
    content = candidate.get("content") or {}
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return []
    return [part for part in parts if isinstance(part, dict)]


class GeminiAdapter(ProtocolAdapter):
    """Gemini ``generateContent``; serves AI Studio keys, OAuth tokens and Vertex."""

    name = "gemini"

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
            if stream:
                url = _stream_url(url)
            headers.update(placement.override_headers)
        else:
            action = "streamGenerateContent?alt=sse" if stream else "generateContent"
            url = target.endpoint.join(f"models/{target.model.model_name}:{action}")
            composite = _composite_secret(placement.secret)
            if composite is not None:
                token, project_id = composite
                headers["Authorization"] = f"Bearer {token}"
                headers["x-goog-user-project"] = project_id
            elif target.model.provider == ProviderKind.VERTEX:
                headers["Authorization"] = f"Bearer {placement.secret}"
            elif placement.secret:
                headers["x-goog-api-key"] = placement.secret

        generation_config: dict[str, Any] = {
            "temperature": options.temperature,
            "maxOutputTokens": options.max_tokens,
            "topP": options.top_p,
            "stopSequences": (
                list(options.stop_sequences) if options.stop_sequences else None
            ),
        }
        budget = _THINKING_BUDGETS.get((options.reasoning_effort or "").lower())
        if budget is not None:
            generation_config["thinkingConfig"] = {
                "thinkingBudget": budget,
                "includeThoughts": True,
            }
        payload: dict[str, Any] = {
            "contents": _to_gemini_contents(request.messages),
            "generationConfig": drop_none_fields(generation_config) or None,
        }
        if request.system:
            payload["systemInstruction"] = {"parts": [{"text": request.system}]}
        if request.tools:
            payload["tools"] = [
                {
                    "functionDeclarations": [
                        drop_none_fields(
                            {
                                "name": tool.name,
                                "description": tool.description,
                                "parameters": tool.schema,
                            }
                        )
                        for tool in request.tools
                    ]
                }
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
        candidate = _first_candidate(data)
        if candidate is None:
            feedback = data.get("promptFeedback")
            reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
            message = (
                f"prompt blocked: {reason}" if reason else "response has no 'candidates'"
            )
            raise ProtocolParseError(self.name, message, raw=data)

        content: list[str] = []
        reasoning: list[str] = []
        tool_calls: list[ToolCall] = []
        for part in _candidate_parts(candidate):
            text = part.get("text")
            if isinstance(text, str):
                (reasoning if part.get("thought") else content).append(text)
                continue
            call = part.get("functionCall")
            if isinstance(call, dict):
                name = str(call.get("name") or "")
                args = call.get("args")
                tool_calls.append(
                    ToolCall(
                        call_id=str(call.get("id") or name),
                        fn_name=name,
                        fn_arguments=args if isinstance(args, dict) else {},
                    )
                )

        return ChatResponse(
            model=model,
            content=content,
            reasoning_content="".join(reasoning) or None,
            tool_calls=tool_calls,
            usage=_usage_from_gemini(data.get("usageMetadata")) or Usage(),
            finish_reason=candidate.get("finishReason"),
            provider_model_name=data.get("modelVersion"),
        )

    async def parse_stream(
        self, lines: AsyncIterator[str], model: ModelIdentity
    ) -> AsyncIterator[ChatStreamEvent]:
        yield StreamStart()
        finish_reason: str | None = None
        usage: Usage | None = None
        tool_index = 0
        async for frame in iter_sse_json(lines, provider=self.name):
            self._raise_for_error_body(frame)
            usage = _usage_from_gemini(frame.get("usageMetadata")) or usage
            candidate = _first_candidate(frame)
            if candidate is None:
                continue
            if candidate.get("finishReason"):
                finish_reason = str(candidate["finishReason"])
            for part in _candidate_parts(candidate):
                text = part.get("text")
                if isinstance(text, str) and text:
                    if part.get("thought"):
                        yield ReasoningChunk(content=text)
                    else:
                        yield StreamChunk(content=text)
                    continue
                call = part.get("functionCall")
                if isinstance(call, dict):
                    name = str(call.get("name") or "")
                    yield ToolCallChunk(
                        call_id=str(call.get("id") or name),
                        fn_name=name,
                        fn_arguments=json.dumps(call.get("args") or {}),
                        index=tool_index,
                    )
                    tool_index += 1
        yield StreamEnd(finish_reason=finish_reason, usage=usage)

    def _raise_for_error_body(self, data: dict[str, Any]) -> None:
        error = data.get("error")
        if not isinstance(error, dict):
            return
        raise ProviderStatusError(
            as_int(error.get("code")) or 500, json.dumps(error)[:2000]
        )
