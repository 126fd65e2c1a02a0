from __future__ import annotations

import asyncio
import threading
from typing import TYPE_CHECKING

from zeroai.auth.credentials import ApiKeyCredential, OAuthCredential
from zeroai.auth.store import CredentialStore
from zeroai.config import ConfigStore

if TYPE_CHECKING:
    from pathlib import Path


def _oauth(access: str, expires: int = 1_000) -> OAuthCredential:
    return OAuthCredential(refresh=f"refresh-{access}", access=access, expires=expires)


def test_load_reads_all_credentials(tmp_path: Path) -> None:
    config_store = ConfigStore(tmp_path / "config.yaml")
    config_store.write_credential("openai", ApiKeyCredential(key="sk-1"))
    config_store.write_credential("anthropic", _oauth("a1"))

    store = CredentialStore(config_store)

    assert store.load() == 2
    assert store.get("openai") == ApiKeyCredential(key="sk-1")
    assert [provider for provider, _ in store.oauth_items()] == ["anthropic"]


def test_put_persists_and_swaps(tmp_path: Path) -> None:
    config_store = ConfigStore(tmp_path / "config.yaml")
    store = CredentialStore(config_store)

    asyncio.run(store.put("anthropic", _oauth("a2", expires=99)))

    assert store.get("anthropic") == _oauth("a2", expires=99)
    assert config_store.read_credentials()["anthropic"] == _oauth("a2", expires=99)


def test_store_without_config_keeps_credentials_in_memory() -> None:
    store = CredentialStore(credentials={"openai": ApiKeyCredential(key="k")})

    assert store.load() == 1
    asyncio.run(store.put("groq", ApiKeyCredential(key="g")))
    assert dict(store.items()) == {
        "openai": ApiKeyCredential(key="k"),
        "groq": ApiKeyCredential(key="g"),
    }


def test_readers_never_observe_a_partial_credential() -> None:
    old = _oauth("old", expires=1)
    new = _oauth("new", expires=2)
    store = CredentialStore(credentials={"anthropic": old})
    observed: set[tuple[str, str, int]] = set()
    stop = threading.Event()

    def reader() -> None:
        while not stop.is_set():
            credential = store.get("anthropic")
            assert isinstance(credential, OAuthCredential)
            observed.add((credential.access, credential.refresh, credential.expires))

    threads = [threading.Thread(target=reader) for _ in range(4)]
    for thread in threads:
        thread.start()

    async def writer() -> None:
        for index in range(200):
            await store.put("anthropic", new if index % 2 == 0 else old)

    try:
        asyncio.run(writer())
    finally:
        stop.set()
        for thread in threads:
            thread.join()

    assert observed <= {("old", "refresh-old", 1), ("new", "refresh-new", 2)}


def test_refresh_lock_is_per_provider() -> None:
    store = CredentialStore()

    assert store.refresh_lock("a") is store.refresh_lock("a")
    assert store.refresh_lock("a") is not store.refresh_lock("b")
