from __future__ import annotations

import asyncio
import threading
from collections.abc import Mapping

from zeroai.auth.credentials import Credential, OAuthCredential
from zeroai.config import ConfigStore


class CredentialStore:
    """Provider-id to credential map shared by the auth resolver and the refresher.

    Credentials are immutable; a write swaps the whole object, so a reader gets
    either the old credential or the new one. Writes for one provider are
    serialized by a per-provider ``asyncio.Lock``.
    """

    def __init__(
        self,
        config_store: ConfigStore | None = None,
        credentials: Mapping[str, Credential] | None = None,
    ) -> None:
        self._config_store = config_store
        self._credentials: dict[str, Credential] = dict(credentials or {})
        self._swap_lock = threading.Lock()
        self._write_locks: dict[str, asyncio.Lock] = {}

    def load(self) -> int:
        if self._config_store is None:
            return len(self._credentials)
        loaded = self._config_store.read_credentials()
        with self._swap_lock:
            self._credentials = dict(loaded)
        return len(loaded)

    def get(self, provider_id: str) -> Credential | None:
        return self._credentials.get(provider_id)

    def items(self) -> list[tuple[str, Credential]]:
        with self._swap_lock:
            return list(self._credentials.items())

    def oauth_items(self) -> list[tuple[str, OAuthCredential]]:
        return [
            (provider_id, credential)
            for provider_id, credential in self.items()
            if isinstance(credential, OAuthCredential)
        ]

    def refresh_lock(self, provider_id: str) -> asyncio.Lock:
        return self._write_locks.setdefault(provider_id, asyncio.Lock())

    async def put(self, provider_id: str, credential: Credential) -> None:
        async with self.refresh_lock(provider_id):
            await self.put_locked(provider_id, credential)

    async def put_locked(self, provider_id: str, credential: Credential) -> None:
        """Persist and swap in ``credential``; caller holds ``refresh_lock``."""
        if self._config_store is not None:
            await asyncio.to_thread(
                self._config_store.write_credential, provider_id, credential
            )
        with self._swap_lock:
            self._credentials[provider_id] = credential
