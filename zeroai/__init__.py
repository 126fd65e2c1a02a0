from __future__ import annotations

from zeroai.adapters.registry import AdapterRegistry
from zeroai.auth.auth_data import (
    AuthData,
    FromEnv,
    Key,
    MultiKeys,
    NoAuth,
    RequestOverride,
    resolve_multi,
    resolve_secret,
)
from zeroai.auth.credentials import (
    ApiKeyCredential,
    Credential,
    OAuthCredential,
    SetupTokenCredential,
)
from zeroai.auth.refresh import CredentialRefreshService
from zeroai.auth.resolver import AuthResolver
from zeroai.auth.store import CredentialStore
from zeroai.chat.events import (
    ChatStreamEvent,
    ReasoningChunk,
    StreamChunk,
    StreamEnd,
    StreamError,
    StreamStart,
    ToolCallChunk,
)
from zeroai.chat.stream import ChatStream
from zeroai.chat.types import (
    ChatMessage,
    ChatOptions,
    ChatRequest,
    ChatResponse,
    Tool,
    ToolCall,
    ToolResponse,
    Usage,
)
from zeroai.client import Client, ClientConfig
from zeroai.config import ConfigStore, ZeroAIConfig
from zeroai.errors import ZeroAIError
from zeroai.mapper import ModelMapper
from zeroai.providers import ProviderKind
from zeroai.targets import (
    Endpoint,
    ModelIdentity,
    ModelSpec,
    ServiceTarget,
    TargetResolver,
)

__all__ = [
    "AdapterRegistry",
    "ApiKeyCredential",
    "AuthData",
    "AuthResolver",
    "ChatMessage",
    "ChatOptions",
    "ChatRequest",
    "ChatResponse",
    "ChatStream",
    "ChatStreamEvent",
    "Client",
    "ClientConfig",
    "ConfigStore",
    "Credential",
    "CredentialRefreshService",
    "CredentialStore",
    "Endpoint",
    "FromEnv",
    "Key",
    "ModelIdentity",
    "ModelMapper",
    "ModelSpec",
    "MultiKeys",
    "NoAuth",
    "OAuthCredential",
    "ProviderKind",
    "ReasoningChunk",
    "RequestOverride",
    "ServiceTarget",
    "SetupTokenCredential",
    "StreamChunk",
    "StreamEnd",
    "StreamError",
    "StreamStart",
    "TargetResolver",
    "Tool",
    "ToolCall",
    "ToolCallChunk",
    "ToolResponse",
    "Usage",
    "ZeroAIConfig",
    "ZeroAIError",
    "resolve_multi",
    "resolve_secret",
]
