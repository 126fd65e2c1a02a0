from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from zeroai.adapters.anthropic import AnthropicAdapter
from zeroai.adapters.base import ProtocolAdapter
from zeroai.adapters.gemini import GeminiAdapter
from zeroai.adapters.ollama import OllamaAdapter
from zeroai.adapters.openai import OpenAIAdapter
from zeroai.auth.auth_data import AuthData, FromEnv, NoAuth
from zeroai.auth.credentials import (
    ApiKeyMethod,
    AuthMethod,
    OAuthMethod,
    SetupTokenMethod,
)
from zeroai.errors import MissingEnvVarError
from zeroai.providers import ProviderKind
from zeroai.targets import Endpoint

VERTEX_PROJECT_ENV = "VERTEX_PROJECT"
VERTEX_LOCATION_ENV = "VERTEX_LOCATION"
DEFAULT_VERTEX_LOCATION = "us-central1"


@dataclass(frozen=True, slots=True)
class ProviderEntry:
    adapter: ProtocolAdapter
    base_url: str | None
    env_var: str | None
    auth_methods: tuple[AuthMethod, ...] = field(default_factory=tuple)


def _api_key(env_var: str, hint: str | None = None) -> ApiKeyMethod:
    return ApiKeyMethod(env_var=env_var, hint=hint)


def _build_default_table() -> dict[ProviderKind, ProviderEntry]:
    openai = OpenAIAdapter()
    anthropic = AnthropicAdapter()
    gemini = GeminiAdapter()
    ollama = OllamaAdapter()

    def compatible(base_url: str, env_var: str) -> ProviderEntry:
        return ProviderEntry(
            adapter=openai,
            base_url=base_url,
            env_var=env_var,
            auth_methods=(_api_key(env_var),),
        )

    return {
        ProviderKind.OPENAI: ProviderEntry(
            adapter=openai,
            base_url="https://api.openai.com/v1/",
            env_var="OPENAI_API_KEY",
            auth_methods=(
                _api_key("OPENAI_API_KEY"),
                OAuthMethod(hint="ChatGPT account sign-in"),
            ),
        ),
        ProviderKind.ANTHROPIC: ProviderEntry(
            adapter=anthropic,
            base_url="https://api.anthropic.com/v1/",
            env_var="ANTHROPIC_API_KEY",
            auth_methods=(
                _api_key("ANTHROPIC_API_KEY"),
                SetupTokenMethod(hint="Paste the token from `claude setup-token`"),
                OAuthMethod(hint="Claude account sign-in"),
            ),
        ),
        ProviderKind.GEMINI: ProviderEntry(
            adapter=gemini,
            base_url="https://generativelanguage.googleapis.com/v1beta/",
            env_var="GEMINI_API_KEY",
            auth_methods=(
                _api_key("GEMINI_API_KEY", hint="Google AI Studio key"),
                OAuthMethod(hint="Google account sign-in (Gemini CLI)"),
            ),
        ),
        ProviderKind.VERTEX: ProviderEntry(
            adapter=gemini,
            # Built per call from the project and location environment.
            base_url=None,
            env_var="VERTEX_ACCESS_TOKEN",
            auth_methods=(
                _api_key("VERTEX_ACCESS_TOKEN", hint="gcloud auth print-access-token"),
            ),
        ),
        ProviderKind.OLLAMA: ProviderEntry(
            adapter=ollama,
            base_url="http://localhost:11434/",
            env_var=None,
        ),
        ProviderKind.OPENROUTER: compatible(
            "https://openrouter.ai/api/v1/", "OPENROUTER_API_KEY"
        ),
        ProviderKind.GROQ: compatible("https://api.groq.com/openai/v1/", "GROQ_API_KEY"),
        ProviderKind.DEEPSEEK: compatible(
            "https://api.deepseek.com/v1/", "DEEPSEEK_API_KEY"
        ),
        ProviderKind.XAI: compatible("https://api.x.ai/v1/", "XAI_API_KEY"),
        ProviderKind.TOGETHER: compatible(
            "https://api.together.xyz/v1/", "TOGETHER_API_KEY"
        ),
        ProviderKind.FIREWORKS: compatible(
            "https://api.fireworks.ai/inference/v1/", "FIREWORKS_API_KEY"
        ),
        ProviderKind.NEBIUS: compatible(
            "https://api.studio.nebius.ai/v1/", "NEBIUS_API_KEY"
        ),
        ProviderKind.SILICONFLOW: compatible(
            "https://api.siliconflow.cn/v1/", "SILICONFLOW_API_KEY"
        ),
        ProviderKind.ZHIPUAI: compatible(
            "https://open.bigmodel.cn/api/paas/v4/", "ZHIPUAI_API_KEY"
        ),
        ProviderKind.ZAI: compatible("https://api.z.ai/api/paas/v4/", "ZAI_API_KEY"),
        ProviderKind.ZAI_CODING: compatible(
            "https://api.z.ai/api/coding/paas/v4/", "ZAI_API_KEY"
        ),
    }


class AdapterRegistry:
    """Read-only provider table: adapter, default endpoint and default auth."""

    def __init__(
        self, table: Mapping[ProviderKind, ProviderEntry] | None = None
    ) -> None:
        self._table: Mapping[ProviderKind, ProviderEntry] = MappingProxyType(
            dict(table if table is not None else _build_default_table())
        )

    def _entry(self, provider: ProviderKind) -> ProviderEntry:
        return self._table[provider]

    def providers(self) -> list[ProviderKind]:
        return list(self._table)

    def adapter_for(self, provider: ProviderKind) -> ProtocolAdapter:
        return self._entry(provider).adapter

    def env_var(self, provider: ProviderKind) -> str | None:
        return self._entry(provider).env_var

    def auth_methods(self, provider: ProviderKind) -> list[AuthMethod]:
        return list(self._entry(provider).auth_methods)

    def default_endpoint(self, provider: ProviderKind) -> Endpoint:
        entry = self._entry(provider)
        if entry.base_url is not None:
            return Endpoint.from_static(entry.base_url)
        if provider == ProviderKind.VERTEX:
            return vertex_endpoint()
        raise KeyError(provider)

    def default_auth(self, provider: ProviderKind) -> AuthData:
        env_var = self._entry(provider).env_var
        if env_var is None:
            return NoAuth()
        return FromEnv(env_var)


def vertex_endpoint(
    project: str | None = None, location: str | None = None
) -> Endpoint:
    project = project or os.environ.get(VERTEX_PROJECT_ENV, "").strip()
    if not project:
        raise MissingEnvVarError(VERTEX_PROJECT_ENV)
    location = (
        location
        or os.environ.get(VERTEX_LOCATION_ENV, "").strip()
        or DEFAULT_VERTEX_LOCATION
    )
    return Endpoint.from_owned(
        f"https://{location}-aiplatform.googleapis.com/v1/projects/{project}"
        f"/locations/{location}/publishers/google/"
    )
