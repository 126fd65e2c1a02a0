from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
import pytest

from zeroai.auth.auth_data import Key
from zeroai.auth.credentials import ApiKeyCredential, OAuthCredential
from zeroai.auth.store import CredentialStore
from zeroai.chat.events import StreamChunk, StreamEnd, StreamStart
from zeroai.chat.types import ChatOptions, ChatRequest
from zeroai.client import Client, ClientConfig
from zeroai.errors import (
    CredentialExpiredError,
    CredentialRejectedError,
    MissingEnvVarError,
    ProviderStatusError,
    TransportError,
)
from zeroai.providers import ProviderKind
from zeroai.settings import Settings
from zeroai.targets import Endpoint, ModelIdentity, ServiceTarget

COMPLETION = {
    "model": "gpt-4o-mini",
    "choices": [
        {"message": {"role": "assistant", "content": "Hello"}, "finish_reason": "stop"}
    ],
    "usage": {"prompt_tokens": 3, "completion_tokens": 1},
}


def _client(
    handler: Any,
    credentials: dict[str, Any] | None = None,
    default_options: ChatOptions | None = None,
) -> Client:
    return Client(
        ClientConfig(default_options=default_options),
        credential_store=CredentialStore(credentials=credentials),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def test_exec_chat_uses_env_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    seen: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=COMPLETION)

    client = _client(handler, default_options=ChatOptions(temperature=0.2))
    response = asyncio.run(
        client.exec_chat("openai/gpt-4o-mini", ChatRequest.from_user("hi"))
    )

    assert response.first_text() == "Hello"
    assert response.usage.total_tokens == 4
    assert seen["url"] == "https://api.openai.com/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-env"
    assert seen["body"]["model"] == "gpt-4o-mini"
    assert seen["body"]["temperature"] == 0.2


def test_stored_credential_wins_over_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers["authorization"])
        return httpx.Response(200, json=COMPLETION)

    client = _client(handler, credentials={"openai": ApiKeyCredential(key="sk-stored")})
    asyncio.run(client.exec_chat("gpt-4o-mini", ChatRequest.from_user("hi")))

    assert seen == ["Bearer sk-stored"]


def test_missing_env_key_is_an_auth_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GROQ_API_KEY", raising=False)

    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    client = _client(handler)
    with pytest.raises(MissingEnvVarError):
        asyncio.run(client.exec_chat("groq/llama-3.1-8b", ChatRequest.from_user("hi")))


def test_expired_oauth_credential_fails_before_sending() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    expired = OAuthCredential(refresh="r", access="a", expires=1)
    client = _client(handler, credentials={"anthropic": expired})

    with pytest.raises(CredentialExpiredError):
        asyncio.run(
            client.exec_chat("anthropic/claude-sonnet-4", ChatRequest.from_user("hi"))
        )


def test_explicit_target_is_sent_as_given(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    seen: list[tuple[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((str(request.url), request.headers["authorization"]))
        return httpx.Response(200, json=COMPLETION)

    target = ServiceTarget(
        endpoint=Endpoint.from_static("https://proxy.internal/v1/"),
        auth=Key("sk-explicit"),
        model=ModelIdentity(ProviderKind.OPENAI, "gpt-4o-mini"),
    )
    client = _client(handler, credentials={"openai": ApiKeyCredential(key="sk-stored")})
    asyncio.run(client.exec_chat(target, ChatRequest.from_user("hi")))

    assert seen == [("https://proxy.internal/v1/chat/completions", "Bearer sk-explicit")]


@pytest.mark.parametrize(
    ("status_code", "error_type"),
    [(401, CredentialRejectedError), (403, CredentialRejectedError), (500, ProviderStatusError)],
)
def test_error_statuses(
    monkeypatch: pytest.MonkeyPatch, status_code: int, error_type: type
) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, text="nope")

    client = _client(handler)
    with pytest.raises(error_type) as excinfo:
        asyncio.run(client.exec_chat("openai/gpt-4o", ChatRequest.from_user("hi")))

    assert excinfo.value.status_code == status_code
    assert excinfo.value.body == "nope"


def test_transport_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client = _client(handler)
    with pytest.raises(TransportError) as excinfo:
        asyncio.run(client.exec_chat("openai/gpt-4o", ChatRequest.from_user("hi")))

    assert excinfo.value.is_timeout is True


def test_exec_chat_stream(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    frames = [
        {"choices": [{"delta": {"content": "Hel"}}]},
        {"choices": [{"delta": {"content": "lo"}, "finish_reason": "stop"}]},
        {"choices": [], "usage": {"prompt_tokens": 2, "completion_tokens": 2}},
    ]
    body = "".join(f"data: {json.dumps(frame)}\n\n" for frame in frames)
    body += "data: [DONE]\n\n"
    seen: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200, content=body.encode(), headers={"content-type": "text/event-stream"}
        )

    async def collect() -> list[Any]:
        client = _client(handler)
        stream = await client.exec_chat_stream(
            "openai/gpt-4o",
            ChatRequest.from_user("hi"),
            ChatOptions(capture_content=True, capture_usage=True),
        )
        async with stream:
            return [event async for event in stream]

    events = asyncio.run(collect())

    assert seen["body"]["stream"] is True
    assert seen["body"]["stream_options"] == {"include_usage": True}
    assert events[:3] == [StreamStart(), StreamChunk("Hel"), StreamChunk("lo")]
    end = events[-1]
    assert isinstance(end, StreamEnd)
    assert end.finish_reason == "stop"
    assert end.captured_content == "Hello"
    assert end.captured_usage is not None
    assert end.captured_usage.total_tokens == 4


def test_exec_chat_stream_error_status(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, text="slow down")

    client = _client(handler)
    with pytest.raises(ProviderStatusError) as excinfo:
        asyncio.run(
            client.exec_chat_stream("openai/gpt-4o", ChatRequest.from_user("hi"))
        )

    assert excinfo.value.status_code == 429
    assert excinfo.value.body == "slow down"


def test_client_config_from_settings() -> None:
    settings = Settings(
        request_timeout_seconds=60,
        connect_timeout_seconds=2,
        read_timeout_seconds=50,
        write_timeout_seconds=10,
        pool_timeout_seconds=3,
    )

    timeout = ClientConfig.from_settings(settings).build_timeout()

    assert timeout.connect == 2
    assert timeout.read == 50
    assert timeout.write == 10
    assert timeout.pool == 3


def test_build_timeout_defaults_follow_total() -> None:
    timeout = ClientConfig(timeout_seconds=3).build_timeout()

    assert timeout.connect == 3
    assert timeout.read == 3
    assert timeout.pool == 3


def test_closes_only_owned_http_client() -> None:
    shared = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))

    async def run() -> None:
        async with Client(http_client=shared):
            pass

    asyncio.run(run())

    assert shared.is_closed is False
