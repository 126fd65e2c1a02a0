"""How a request authenticates against a provider.

``AuthData`` is a closed union. Every consumer narrows it with ``isinstance``
and ends with ``assert_never`` so that adding a variant breaks type checking at
each consumption site instead of silently falling through.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Union, assert_never

from zeroai.errors import AuthDataNotSingleValueError, MissingEnvVarError


@dataclass(frozen=True, slots=True)
class FromEnv:
    env_name: str

    def __repr__(self) -> str:
        return "AuthData.FromEnv(REDACTED)"


@dataclass(frozen=True, slots=True)
class Key:
    value: str

    def __repr__(self) -> str:
        return "AuthData.Key(REDACTED)"


@dataclass(frozen=True, slots=True)
class RequestOverride:
    """Custom URL and headers for schemes a single bearer token cannot express."""

    url: str
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    def __repr__(self) -> str:
        return "AuthData.RequestOverride(url=REDACTED, headers=REDACTED)"


@dataclass(frozen=True, slots=True)
class MultiKeys:
    values: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def __repr__(self) -> str:
        return "AuthData.MultiKeys(REDACTED)"


@dataclass(frozen=True, slots=True)
class NoAuth:
    def __repr__(self) -> str:
        return "AuthData.NoAuth"


AuthData = Union[FromEnv, Key, RequestOverride, MultiKeys, NoAuth]


def resolve_secret(auth: AuthData) -> str:
    """Resolve ``auth`` into the single secret placed on the wire.

    Environment variables are read on every call, never cached.
    ``RequestOverride`` resolves to ``""``: the override carries its own URL and
    headers, so callers must check for it before injecting a bearer token.
    """
    if isinstance(auth, RequestOverride):
        return ""
    if isinstance(auth, FromEnv):
        value = os.environ.get(auth.env_name)
        if value is None:
            raise MissingEnvVarError(auth.env_name)
        return value
    if isinstance(auth, Key):
        return auth.value
    if isinstance(auth, MultiKeys):
        raise AuthDataNotSingleValueError("MultiKeys")
    if isinstance(auth, NoAuth):
        raise AuthDataNotSingleValueError("NoAuth")
    assert_never(auth)


def resolve_multi(auth: AuthData) -> dict[str, str]:
    if isinstance(auth, MultiKeys):
        return dict(auth.values)
    raise AuthDataNotSingleValueError(type(auth).__name__)
