from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from zeroai.adapters.registry import AdapterRegistry
from zeroai.auth.resolver import AuthResolver
from zeroai.auth.store import CredentialStore
from zeroai.chat.stream import ChatStream
from zeroai.chat.types import ChatOptions, ChatRequest, ChatResponse
from zeroai.errors import CredentialRejectedError, ProviderStatusError, TransportError
from zeroai.mapper import ModelMapper
from zeroai.settings import Settings
from zeroai.targets import ModelSpec, ServiceTarget, TargetResolver

logger = logging.getLogger("zeroai.client")

_AUTH_REJECTED_STATUSES = {401, 403}
_ERROR_BODY_LIMIT = 4000


@dataclass(slots=True)
class ClientConfig:
    registry: AdapterRegistry = field(default_factory=AdapterRegistry)
    mapper: ModelMapper = field(default_factory=ModelMapper)
    default_options: ChatOptions | None = None
    timeout_seconds: float = 120.0
    connect_timeout_seconds: float | None = None
    read_timeout_seconds: float | None = None
    write_timeout_seconds: float | None = None
    pool_timeout_seconds: float | None = None
    max_connections: int = 100
    max_keepalive_connections: int = 20

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> ClientConfig:
        values: dict[str, Any] = {
            "timeout_seconds": settings.request_timeout_seconds,
            "connect_timeout_seconds": settings.connect_timeout_seconds,
            "read_timeout_seconds": settings.read_timeout_seconds,
            "write_timeout_seconds": settings.write_timeout_seconds,
            "pool_timeout_seconds": settings.pool_timeout_seconds,
        }
        values.update(overrides)
        return cls(**values)

    def build_timeout(self) -> httpx.Timeout:
        timeout_seconds = max(0.1, float(self.timeout_seconds))
        connect_timeout = (
            max(0.1, float(self.connect_timeout_seconds))
            if self.connect_timeout_seconds is not None
            else max(0.1, min(5.0, timeout_seconds))
        )
        read_timeout = (
            max(0.1, float(self.read_timeout_seconds))
            if self.read_timeout_seconds is not None
            else timeout_seconds
        )
        write_timeout = (
            max(0.1, float(self.write_timeout_seconds))
            if self.write_timeout_seconds is not None
            else timeout_seconds
        )
        pool_timeout = (
            max(0.1, float(self.pool_timeout_seconds))
            if self.pool_timeout_seconds is not None
            else connect_timeout
        )
        return httpx.Timeout(
            timeout=None,
            connect=connect_timeout,
            read=read_timeout,
            write=write_timeout,
            pool=pool_timeout,
        )


def build_http_client(config: ClientConfig) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=config.build_timeout(),
        limits=httpx.Limits(
            max_connections=config.max_connections,
            max_keepalive_connections=config.max_keepalive_connections,
        ),
        http2=_can_enable_http2(),
    )


def _can_enable_http2() -> bool:
    try:
        import h2  # noqa: F401
    except Exception:
        return False
    return True


def raise_for_provider_status(status_code: int, body: str) -> None:
    if status_code < 400:
        return
    body = body[:_ERROR_BODY_LIMIT]
    if status_code in _AUTH_REJECTED_STATUSES:
        raise CredentialRejectedError(status_code, body)
    raise ProviderStatusError(status_code, body)


class Client:
    """Entry point: resolve a model spec, then run a chat against its provider.

    A bare name or a ``ModelIdentity`` picks up stored credentials before the
    registry defaults. A ``ServiceTarget`` is sent exactly as given.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        credential_store: CredentialStore | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or ClientConfig()
        self._registry = self._config.registry
        self._target_resolver = TargetResolver(self._registry, self._config.mapper)
        self._store = credential_store or CredentialStore()
        self._auth_resolver = AuthResolver(self._store, self._registry)
        self._owns_http_client = http_client is None
        self._http_client = http_client or build_http_client(self._config)

    @property
    def registry(self) -> AdapterRegistry:
        return self._registry

    @property
    def credential_store(self) -> CredentialStore:
        return self._store

    @property
    def http_client(self) -> httpx.AsyncClient:
        return self._http_client

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()

    def resolve(self, spec: ModelSpec) -> ServiceTarget:
        target, prefix = self._target_resolver.resolve(spec)
        if isinstance(spec, ServiceTarget):
            return target
        provider_id = prefix or target.model.provider.value
        return target.with_auth(self._auth_resolver.auth_for(provider_id, target.auth))

    def resolve_api_key(self, provider_id: str) -> str | None:
        return self._auth_resolver.resolve_api_key(provider_id)

    def _effective_options(self, options: ChatOptions | None) -> ChatOptions:
        return (options or ChatOptions()).merged_over(self._config.default_options)

    async def exec_chat(
        self,
        spec: ModelSpec,
        request: ChatRequest,
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        target = self.resolve(spec)
        adapter = self._registry.adapter_for(target.model.provider)
        wire = adapter.build_request(
            target, request, self._effective_options(options), stream=False
        )
        logger.debug(
            "chat_request provider=%s model=%s stream=false",
            target.model.provider.value,
            target.model.model_name,
        )
        try:
            response = await self._http_client.request(
                wire.method, wire.url, headers=wire.headers, json=wire.payload
            )
        except httpx.RequestError as exc:
            logger.warning(
                "chat_transport_error provider=%s error=%s",
                target.model.provider.value,
                exc,
            )
            raise TransportError.from_httpx(exc) from exc

        raise_for_provider_status(response.status_code, response.text)
        return adapter.parse_response(response.content, target.model)

    async def exec_chat_stream(
        self,
        spec: ModelSpec,
        request: ChatRequest,
        options: ChatOptions | None = None,
    ) -> ChatStream:
        target = self.resolve(spec)
        adapter = self._registry.adapter_for(target.model.provider)
        effective = self._effective_options(options)
        wire = adapter.build_request(target, request, effective, stream=True)
        logger.debug(
            "chat_request provider=%s model=%s stream=true",
            target.model.provider.value,
            target.model.model_name,
        )
        http_request = self._http_client.build_request(
            wire.method, wire.url, headers=wire.headers, json=wire.payload
        )
        try:
            response = await self._http_client.send(http_request, stream=True)
        except httpx.RequestError as exc:
            logger.warning(
                "chat_transport_error provider=%s error=%s",
                target.model.provider.value,
                exc,
            )
            raise TransportError.from_httpx(exc) from exc

        if response.status_code >= 400:
            try:
                body = await response.aread()
            except httpx.RequestError as exc:
                raise TransportError.from_httpx(exc) from exc
            finally:
                await response.aclose()
            raise_for_provider_status(
                response.status_code, body.decode("utf-8", errors="replace")
            )

        events = adapter.parse_stream(response.aiter_lines(), target.model)
        return ChatStream(
            events, effective, on_close=response.aclose, provider=adapter.name
        )
