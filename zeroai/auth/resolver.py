from __future__ import annotations

import os
from typing import TYPE_CHECKING

from zeroai.auth.auth_data import AuthData, Key
from zeroai.auth.credentials import Credential, OAuthCredential
from zeroai.auth.oauth import now_ms as _now_ms
from zeroai.auth.store import CredentialStore
from zeroai.errors import CredentialExpiredError, UnknownProviderError
from zeroai.providers import ProviderKind

if TYPE_CHECKING:
    from zeroai.adapters.registry import AdapterRegistry


class AuthResolver:
    """Finds the secret for a provider: stored credential first, then the env var.

    ``provider_id`` may be a store key that is not a provider tag itself, such
    as ``gemini-cli``; its credential is looked up under that key before the
    canonical provider tag.
    """

    def __init__(self, store: CredentialStore, registry: AdapterRegistry) -> None:
        self._store = store
        self._registry = registry

    def stored_credential(self, provider_id: str) -> tuple[str, Credential] | None:
        credential = self._store.get(provider_id)
        if credential is not None:
            return provider_id, credential
        kind = ProviderKind.from_lower_str(provider_id)
        if kind is not None and kind.value != provider_id:
            credential = self._store.get(kind.value)
            if credential is not None:
                return kind.value, credential
        return None

    def resolve_api_key(
        self, provider_id: str, now_ms: int | None = None
    ) -> str | None:
        stored = self.stored_credential(provider_id)
        if stored is not None:
            key, credential = stored
            current = _now_ms() if now_ms is None else now_ms
            if isinstance(credential, OAuthCredential) and credential.is_expired(
                current
            ):
                raise CredentialExpiredError(key, credential.expires)
            return credential.materialize()

        kind = ProviderKind.from_lower_str(provider_id)
        if kind is None:
            raise UnknownProviderError(provider_id)
        env_var = self._registry.env_var(kind)
        if env_var is None:
            return None
        value = os.environ.get(env_var, "").strip()
        return value or None

    def auth_for(
        self, provider_id: str, default: AuthData, now_ms: int | None = None
    ) -> AuthData:
        secret = self.resolve_api_key(provider_id, now_ms=now_ms)
        if secret:
            return Key(secret)
        return default
