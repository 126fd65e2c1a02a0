from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator
from typing import Any
from uuid import uuid4

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from zeroai.auth.oauth import OAuthTokenRefresher
from zeroai.auth.refresh import CredentialRefreshService
from zeroai.auth.store import CredentialStore
from zeroai.chat.events import (
    ReasoningChunk,
    StreamChunk,
    StreamEnd,
    StreamError,
    ToolCallChunk,
)
from zeroai.chat.types import (
    ChatMessage,
    ChatOptions,
    ChatRequest,
    ChatResponse,
    Tool,
    ToolCall,
    Usage,
)
from zeroai.client import Client, ClientConfig
from zeroai.config import ConfigStore
from zeroai.errors import (
    AuthError,
    ProtocolParseError,
    ProviderStatusError,
    ResolutionError,
    TransportError,
    ZeroAIError,
)
from zeroai.mapper import ModelMapper
from zeroai.providers import ProviderKind
from zeroai.settings import Settings, get_settings

logger = logging.getLogger("uvicorn.error")


def _error_response(status_code: int, message: str, error_type: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"message": message, "type": error_type, "code": None}},
    )


def _error_for_exception(exc: ZeroAIError) -> JSONResponse:
    if isinstance(exc, ResolutionError):
        return _error_response(400, str(exc), "invalid_request_error")
    if isinstance(exc, AuthError):
        return _error_response(401, str(exc), "authentication_error")
    if isinstance(exc, TransportError):
        return _error_response(
            504 if exc.is_timeout else 502, str(exc), "upstream_transport_error"
        )
    if isinstance(exc, ProviderStatusError):
        status_code = exc.status_code if exc.status_code in {429, 529} else 502
        return _error_response(status_code, str(exc), "upstream_error")
    if isinstance(exc, ProtocolParseError):
        return _error_response(502, str(exc), "upstream_protocol_error")
    return _error_response(500, str(exc), "internal_error")


def build_models_response(enabled_models: list[str], mapper: ModelMapper) -> dict[str, Any]:
    data = []
    for full_id in enabled_models:
        split = mapper.split_id(full_id)
        data.append(
            {
                "id": full_id,
                "object": "model",
                "created": 0,
                "owned_by": split[0] if split else "unknown",
            }
        )
    return {"object": "list", "data": data}


def _text_content(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, list):
        parts = []
        for item in raw:
            if isinstance(item, dict) and item.get("type") == "text":
                parts.append(str(item.get("text") or ""))
            elif isinstance(item, str):
                parts.append(item)
        return "".join(parts)
    return ""


def _parse_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str) and raw.strip():
        try:
            parsed = json.loads(raw)
        except ValueError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def _max_tokens(payload: dict[str, Any]) -> int | None:
    for key in ("max_completion_tokens", "max_tokens"):
        value = payload.get(key)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"'{key}' must be an integer, got {value!r}")
        if (isinstance(value, float) and not value.is_integer()) or value < 1:
            raise ValueError(f"'{key}' must be a positive integer, got {value!r}")
        return int(value)
    return None


def convert_openai_request(payload: dict[str, Any]) -> tuple[ChatRequest, ChatOptions]:
    """Map an OpenAI chat-completions body onto the uniform request model."""
    system_parts: list[str] = []
    messages: list[ChatMessage] = []
    for raw in payload.get("messages") or []:
        if not isinstance(raw, dict):
            continue
        role = raw.get("role")
        if role in {"system", "developer"}:
            text = _text_content(raw.get("content"))
            if text:
                system_parts.append(text)
        elif role == "user":
            messages.append(ChatMessage.user(_text_content(raw.get("content"))))
        elif role == "assistant":
            raw_calls = raw.get("tool_calls")
            if isinstance(raw_calls, list) and raw_calls:
                calls = []
                for raw_call in raw_calls:
                    if not isinstance(raw_call, dict):
                        continue
                    function = raw_call.get("function") or {}
                    calls.append(
                        ToolCall(
                            call_id=str(raw_call.get("id") or ""),
                            fn_name=str(function.get("name") or ""),
                            fn_arguments=_parse_arguments(function.get("arguments")),
                        )
                    )
                messages.append(ChatMessage.tool_calls(calls))
            else:
                messages.append(
                    ChatMessage.assistant(_text_content(raw.get("content")))
                )
        elif role == "tool":
            messages.append(
                ChatMessage.tool_response(
                    str(raw.get("tool_call_id") or ""),
                    _text_content(raw.get("content")),
                )
            )

    tools = []
    for raw_tool in payload.get("tools") or []:
        function = raw_tool.get("function") if isinstance(raw_tool, dict) else None
        if not isinstance(function, dict) or not function.get("name"):
            continue
        tools.append(
            Tool(
                name=str(function["name"]),
                description=function.get("description"),
                schema=function.get("parameters"),
            )
        )

    stop = payload.get("stop")
    if isinstance(stop, str):
        stop = [stop]
    max_tokens = _max_tokens(payload)
    options = ChatOptions(
        temperature=payload.get("temperature"),
        max_tokens=max_tokens,
        top_p=payload.get("top_p"),
        stop_sequences=tuple(str(item) for item in stop) if stop else None,
        reasoning_effort=payload.get("reasoning_effort"),
    )
    request = ChatRequest(
        messages=messages,
        system="\n\n".join(system_parts) or None,
        tools=tools,
    )
    return request, options


def _usage_payload(usage: Usage | None) -> dict[str, int] | None:
    if usage is None:
        return None
    return {
        "prompt_tokens": usage.prompt_tokens or 0,
        "completion_tokens": usage.completion_tokens or 0,
        "total_tokens": usage.total_tokens or 0,
    }


def build_completion_payload(model: str, response: ChatResponse) -> dict[str, Any]:
    tool_calls = [
        {
            "id": call.call_id,
            "type": "function",
            "function": {
                "name": call.fn_name,
                "arguments": json.dumps(call.fn_arguments),
            },
        }
        for call in response.tool_calls
    ]
    message: dict[str, Any] = {"role": "assistant", "content": response.joined_text()}
    if response.reasoning_content:
        message["reasoning_content"] = response.reasoning_content
    if tool_calls:
        message["tool_calls"] = tool_calls
    return {
        "id": f"chatcmpl-{uuid4().hex}",
        "object": "chat.completion",
        "created": int(time.time()),
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": message,
                "finish_reason": "tool_calls" if tool_calls else "stop",
            }
        ],
        "usage": _usage_payload(response.usage),
    }


def _chunk_payload(
    completion_id: str,
    model: str,
    delta: dict[str, Any],
    finish_reason: str | None = None,
    usage: Usage | None = None,
) -> bytes:
    payload: dict[str, Any] = {
        "id": completion_id,
        "object": "chat.completion.chunk",
        "created": int(time.time()),
        "model": model,
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }
    if usage is not None:
        payload["usage"] = _usage_payload(usage)
    return f"data: {json.dumps(payload)}\n\n".encode("utf-8")


def create_app(
    *,
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    app = FastAPI(
        title="ZeroAI Proxy",
        description="OpenAI-compatible front-end over heterogeneous AI providers.",
        version="0.1.0",
    )
    mapper = ModelMapper()

    @app.on_event("startup")
    async def startup() -> None:
        resolved_settings = settings or get_settings()
        config_store = ConfigStore(resolved_settings.zeroai_config_path)
        config = await asyncio.to_thread(config_store.load)
        store = CredentialStore(config_store)
        loaded = await asyncio.to_thread(store.load)
        client = Client(
            ClientConfig.from_settings(resolved_settings, mapper=mapper),
            credential_store=store,
            http_client=http_client,
        )
        refresher = OAuthTokenRefresher(
            lambda: client.http_client, config.oauth_clients
        )
        refresh_service = CredentialRefreshService(
            store=store,
            refresher=refresher,
            enabled=resolved_settings.credential_refresh_enabled,
            check_interval_seconds=resolved_settings.credential_refresh_interval_seconds,
            refresh_threshold_seconds=resolved_settings.credential_refresh_threshold_seconds,
        )
        await refresh_service.start()
        app.state.settings = resolved_settings
        app.state.config_store = config_store
        app.state.enabled_models = list(config.enabled_models)
        app.state.client = client
        app.state.refresh_service = refresh_service
        logger.info(
            "startup complete config_path=%s enabled_models=%d credentials=%d "
            "credential_refresh_enabled=%s",
            config_store.path,
            len(config.enabled_models),
            loaded,
            resolved_settings.credential_refresh_enabled,
        )

    @app.on_event("shutdown")
    async def shutdown() -> None:
        refresh_service: CredentialRefreshService | None = getattr(
            app.state, "refresh_service", None
        )
        if refresh_service is not None:
            await refresh_service.stop()
        client: Client | None = getattr(app.state, "client", None)
        if client is not None:
            await client.close()
        logger.info("shutdown complete")

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/v1/models")
    async def models() -> dict[str, Any]:
        return build_models_response(app.state.enabled_models, mapper)

    @app.post("/v1/chat/completions")
    async def chat_completions(request: Request) -> Response:
        try:
            payload = await request.json()
        except Exception as exc:
            raise HTTPException(
                status_code=400, detail=f"Expected JSON body: {exc}"
            ) from exc
        if not isinstance(payload, dict):
            raise HTTPException(
                status_code=400, detail="Expected a JSON object request body."
            )

        model = str(payload.get("model") or "").strip()
        split = mapper.split_id(model)
        if split is None:
            return _error_response(
                400,
                "Invalid model ID format, expected provider/model",
                "invalid_request_error",
            )
        if ProviderKind.from_lower_str(split[0]) is None:
            return _error_response(
                400, f"Unknown provider: {split[0]}", "invalid_request_error"
            )

        client: Client = app.state.client
        try:
            chat_request, options = convert_openai_request(payload)
        except ValueError as exc:
            return _error_response(400, str(exc), "invalid_request_error")
        is_stream = bool(payload.get("stream"))
        request_id = request.headers.get("x-request-id") or uuid4().hex[:12]
        logger.info(
            "chat_completion request_id=%s model=%s stream=%s",
            request_id,
            model,
            is_stream,
        )

        if not is_stream:
            try:
                response = await client.exec_chat(model, chat_request, options)
            except ZeroAIError as exc:
                logger.warning(
                    "chat_completion_error request_id=%s model=%s type=%s",
                    request_id,
                    model,
                    exc.__class__.__name__,
                )
                return _error_for_exception(exc)
            return JSONResponse(content=build_completion_payload(model, response))

        stream_options = ChatOptions(
            capture_usage=True, capture_content=True
        ).merged_over(options)
        try:
            stream = await client.exec_chat_stream(model, chat_request, stream_options)
        except ZeroAIError as exc:
            logger.warning(
                "chat_completion_error request_id=%s model=%s type=%s",
                request_id,
                model,
                exc.__class__.__name__,
            )
            return _error_for_exception(exc)

        completion_id = f"chatcmpl-{uuid4().hex}"

        async def stream_generator() -> AsyncIterator[bytes]:
            saw_tool_calls = False
            try:
                async for event in stream:
                    if isinstance(event, StreamChunk):
                        yield _chunk_payload(
                            completion_id, model, {"content": event.content}
                        )
                    elif isinstance(event, ReasoningChunk):
                        yield _chunk_payload(
                            completion_id, model, {"reasoning_content": event.content}
                        )
                    elif isinstance(event, ToolCallChunk):
                        saw_tool_calls = True
                        call: dict[str, Any] = {
                            "index": event.index,
                            "function": {"arguments": event.fn_arguments},
                        }
                        if event.call_id:
                            call["id"] = event.call_id
                            call["type"] = "function"
                        if event.fn_name:
                            call["function"]["name"] = event.fn_name
                        yield _chunk_payload(
                            completion_id, model, {"tool_calls": [call]}
                        )
                    elif isinstance(event, StreamEnd):
                        yield _chunk_payload(
                            completion_id,
                            model,
                            {},
                            finish_reason="tool_calls" if saw_tool_calls else "stop",
                            usage=event.captured_usage,
                        )
                    elif isinstance(event, StreamError):
                        logger.warning(
                            "chat_stream_error request_id=%s model=%s type=%s",
                            request_id,
                            model,
                            event.error.__class__.__name__,
                        )
                        error = {"error": {"message": str(event.error)}}
                        yield f"data: {json.dumps(error)}\n\n".encode("utf-8")
                yield b"data: [DONE]\n\n"
            finally:
                await stream.aclose()

        return StreamingResponse(
            content=stream_generator(),
            media_type="text/event-stream",
        )

    return app


app = create_app()
