from __future__ import annotations

import pytest

from zeroai.adapters.anthropic import AnthropicAdapter
from zeroai.adapters.gemini import GeminiAdapter
from zeroai.adapters.ollama import OllamaAdapter
from zeroai.adapters.openai import OpenAIAdapter
from zeroai.adapters.registry import AdapterRegistry, vertex_endpoint
from zeroai.auth.auth_data import FromEnv, NoAuth
from zeroai.auth.credentials import ApiKeyMethod, OAuthMethod, SetupTokenMethod
from zeroai.errors import MissingEnvVarError
from zeroai.providers import ProviderKind


def test_every_provider_has_an_entry() -> None:
    registry = AdapterRegistry()

    assert set(registry.providers()) == set(ProviderKind)


@pytest.mark.parametrize(
    ("provider", "adapter_type"),
    [
        (ProviderKind.OPENAI, OpenAIAdapter),
        (ProviderKind.GROQ, OpenAIAdapter),
        (ProviderKind.ZAI_CODING, OpenAIAdapter),
        (ProviderKind.ANTHROPIC, AnthropicAdapter),
        (ProviderKind.GEMINI, GeminiAdapter),
        (ProviderKind.VERTEX, GeminiAdapter),
        (ProviderKind.OLLAMA, OllamaAdapter),
    ],
)
def test_adapter_for(provider: ProviderKind, adapter_type: type) -> None:
    assert isinstance(AdapterRegistry().adapter_for(provider), adapter_type)


def test_default_endpoints_and_auth() -> None:
    registry = AdapterRegistry()

    assert registry.default_endpoint(ProviderKind.OPENAI).base_url == (
        "https://api.openai.com/v1/"
    )
    assert registry.default_endpoint(ProviderKind.ZAI_CODING).base_url == (
        "https://api.z.ai/api/coding/paas/v4/"
    )
    assert registry.default_auth(ProviderKind.ANTHROPIC) == FromEnv("ANTHROPIC_API_KEY")
    assert registry.default_auth(ProviderKind.OLLAMA) == NoAuth()
    assert registry.env_var(ProviderKind.ZAI) == registry.env_var(ProviderKind.ZAI_CODING)


def test_auth_methods() -> None:
    registry = AdapterRegistry()

    anthropic = registry.auth_methods(ProviderKind.ANTHROPIC)
    assert [type(method) for method in anthropic] == [
        ApiKeyMethod,
        SetupTokenMethod,
        OAuthMethod,
    ]
    assert registry.auth_methods(ProviderKind.OLLAMA) == []
    assert [type(method) for method in registry.auth_methods(ProviderKind.GROQ)] == [
        ApiKeyMethod
    ]


def test_vertex_endpoint_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("VERTEX_PROJECT", "my-proj")
    monkeypatch.setenv("VERTEX_LOCATION", "europe-west4")

    endpoint = AdapterRegistry().default_endpoint(ProviderKind.VERTEX)

    assert endpoint.base_url == (
        "https://europe-west4-aiplatform.googleapis.com/v1/projects/my-proj"
        "/locations/europe-west4/publishers/google/"
    )


def test_vertex_endpoint_requires_project(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("VERTEX_PROJECT", raising=False)

    with pytest.raises(MissingEnvVarError):
        vertex_endpoint()

    assert "us-central1" in vertex_endpoint(project="p").base_url
