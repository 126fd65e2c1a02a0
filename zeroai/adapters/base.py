from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Literal

from zeroai.auth.auth_data import RequestOverride, resolve_secret
from zeroai.chat.events import ChatStreamEvent
from zeroai.chat.types import ChatOptions, ChatRequest, ChatResponse
from zeroai.errors import ProtocolParseError
from zeroai.targets import ModelIdentity, ServiceTarget


@dataclass(slots=True)
class WireRequest:
    url: str
    headers: dict[str, str]
    payload: dict[str, Any]
    stream: bool = False
    framing: Literal["sse", "ndjson"] = "sse"
    method: str = "POST"


@dataclass(slots=True)
class AuthPlacement:
    """Where the resolved secret lands: an override URL/headers or a plain secret."""

    secret: str
    override_url: str | None = None
    override_headers: dict[str, str] = field(default_factory=dict)

    @property
    def is_override(self) -> bool:
        return self.override_url is not None


class ProtocolAdapter(ABC):
    name: str = "base"
    framing: Literal["sse", "ndjson"] = "sse"

    @abstractmethod
    def build_request(
        self,
        target: ServiceTarget,
        request: ChatRequest,
        options: ChatOptions,
        stream: bool = False,
    ) -> WireRequest: ...

    @abstractmethod
    def parse_response(self, body: bytes, model: ModelIdentity) -> ChatResponse: ...

    @abstractmethod
    def parse_stream(
        self, lines: AsyncIterator[str], model: ModelIdentity
    ) -> AsyncIterator[ChatStreamEvent]: ...

    @staticmethod
    def place_auth(target: ServiceTarget) -> AuthPlacement:
        if isinstance(target.auth, RequestOverride):
            return AuthPlacement(
                secret="",
                override_url=target.auth.url,
                override_headers=dict(target.auth.headers),
            )
        return AuthPlacement(secret=resolve_secret(target.auth))

    def base_headers(self, stream: bool, options: ChatOptions) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream" if stream else "application/json",
        }
        if stream and self.framing == "ndjson":
            headers["Accept"] = "application/x-ndjson"
        if options.extra_headers:
            headers.update(options.extra_headers)
        return headers

    def load_body(self, body: bytes) -> dict[str, Any]:
        try:
            parsed = json.loads(body)
        except ValueError as exc:
            raise ProtocolParseError(
                self.name, f"response body is not valid JSON: {body[:200]!r}"
            ) from exc
        if not isinstance(parsed, dict):
            raise ProtocolParseError(self.name, "response body is not a JSON object")
        return parsed

    def object_field(self, data: dict[str, Any], key: str) -> dict[str, Any]:
        """``data[key]`` as a JSON object; a missing or null field gives ``{}``."""
        value = data.get(key)
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ProtocolParseError(
                self.name, f"field '{key}' is not a JSON object", raw=data
            )
        return value

    def list_field(self, data: dict[str, Any], key: str) -> list[Any]:
        value = data.get(key)
        if value is None:
            return []
        if not isinstance(value, list):
            raise ProtocolParseError(
                self.name, f"field '{key}' is not a JSON array", raw=data
            )
        return value


def as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return None


def parse_tool_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        return {"_raw": raw}
    return parsed if isinstance(parsed, dict) else {"value": parsed}


def drop_none_fields(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: drop_none_fields(item)
            for key, item in value.items()
            if item is not None
        }
    if isinstance(value, list):
        return [drop_none_fields(item) for item in value if item is not None]
    return value
