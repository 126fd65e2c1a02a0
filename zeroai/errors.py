from __future__ import annotations

from typing import Any

import httpx


class ZeroAIError(Exception):
    """Base class for every error raised by zeroai."""


class ConfigError(ZeroAIError):
    """Raised when the persisted config cannot be read or validated."""


# -- Resolution


class ResolutionError(ZeroAIError):
    pass


class UnresolvableModelError(ResolutionError):
    def __init__(self, model: str) -> None:
        self.model = model
        super().__init__(f"Cannot resolve a provider for model '{model}'.")


class UnknownProviderError(ResolutionError):
    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Unknown provider '{provider}'.")


# -- Auth


class AuthError(ZeroAIError):
    pass


class MissingEnvVarError(AuthError):
    def __init__(self, env_name: str) -> None:
        self.env_name = env_name
        super().__init__(f"Environment variable '{env_name}' is not set.")


class AuthDataNotSingleValueError(AuthError):
    def __init__(self, variant: str) -> None:
        self.variant = variant
        super().__init__(f"AuthData variant '{variant}' has no single secret value.")


class CredentialExpiredError(AuthError):
    def __init__(self, provider: str, expires_at: int) -> None:
        self.provider = provider
        self.expires_at = expires_at
        super().__init__(
            f"OAuth credential for '{provider}' expired at {expires_at} (epoch ms)."
        )


class CredentialRejectedError(AuthError):
    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Provider rejected the credential (HTTP {status_code}).")


class CredentialRefreshError(AuthError):
    def __init__(self, provider: str, reason: str) -> None:
        self.provider = provider
        self.reason = reason
        super().__init__(f"OAuth refresh failed for '{provider}': {reason}")


# -- Network and protocol


class TransportError(ZeroAIError):
    def __init__(self, message: str, *, is_timeout: bool = False) -> None:
        self.is_timeout = is_timeout
        super().__init__(message)

    @classmethod
    def from_httpx(cls, exc: httpx.RequestError) -> TransportError:
        message = str(exc).strip() or repr(exc)
        try:
            request = exc.request
        except RuntimeError:
            request = None
        if isinstance(request, httpx.Request):
            message = f"{request.method} {request.url}: {message}"
        return cls(message, is_timeout=isinstance(exc, httpx.TimeoutException))


class ProviderStatusError(ZeroAIError):
    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Provider returned HTTP {status_code}: {body[:300]}")


class ProtocolParseError(ZeroAIError):
    def __init__(self, provider: str, message: str, *, raw: Any = None) -> None:
        self.provider = provider
        self.raw = raw
        super().__init__(f"[{provider}] {message}")
