from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from zeroai.auth.credentials import ApiKeyCredential, OAuthCredential
from zeroai.auth.refresh import CredentialRefreshService
from zeroai.auth.store import CredentialStore
from zeroai.config import ConfigStore
from zeroai.errors import CredentialRefreshError

MINUTE_MS = 60_000
NOW_MS = 1_700_000_000_000


class _FakeRefresher:
    def __init__(self, failing: set[str] | None = None, delay: float = 0.0) -> None:
        self.failing = failing or set()
        self.delay = delay
        self.calls: list[str] = []

    async def refresh(
        self, provider_id: str, credential: OAuthCredential
    ) -> OAuthCredential:
        self.calls.append(provider_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if provider_id in self.failing:
            raise CredentialRefreshError(provider_id, "invalid_grant")
        return credential.model_copy(
            update={
                "access": f"{credential.access}-refreshed",
                "expires": NOW_MS + 60 * MINUTE_MS,
            }
        )


def _oauth(access: str, expires_in_minutes: int) -> OAuthCredential:
    return OAuthCredential(
        refresh=f"refresh-{access}",
        access=access,
        expires=NOW_MS + expires_in_minutes * MINUTE_MS,
    )


def _service(
    store: CredentialStore, refresher: Any, **kwargs: Any
) -> CredentialRefreshService:
    return CredentialRefreshService(
        store=store,
        refresher=refresher,
        refresh_threshold_seconds=20 * 60,
        clock_ms=lambda: NOW_MS,
        **kwargs,
    )


def test_run_once_refreshes_only_credentials_inside_threshold() -> None:
    store = CredentialStore(
        credentials={
            "anthropic": _oauth("soon", 10),
            "gemini-cli": _oauth("later", 40),
            "openai": ApiKeyCredential(key="sk"),
        }
    )
    refresher = _FakeRefresher()
    service = _service(store, refresher)

    refreshed = asyncio.run(service.run_once())

    assert refreshed == ["anthropic"]
    assert refresher.calls == ["anthropic"]
    anthropic = store.get("anthropic")
    assert isinstance(anthropic, OAuthCredential)
    assert anthropic.access == "soon-refreshed"
    assert store.get("gemini-cli") == _oauth("later", 40)
    assert service.status.last_run_ms == NOW_MS


def test_run_once_refreshes_already_expired_credentials() -> None:
    store = CredentialStore(credentials={"anthropic": _oauth("gone", -5)})
    service = _service(store, _FakeRefresher())

    assert asyncio.run(service.run_once()) == ["anthropic"]


def test_one_failure_does_not_stop_other_providers(caplog: Any) -> None:
    store = CredentialStore(
        credentials={
            "anthropic": _oauth("a", 5),
            "gemini-cli": _oauth("g", 5),
        }
    )
    refresher = _FakeRefresher(failing={"anthropic"})
    service = _service(store, refresher)

    with caplog.at_level(logging.WARNING):
        refreshed = asyncio.run(service.run_once())

    assert refreshed == ["gemini-cli"]
    assert sorted(refresher.calls) == ["anthropic", "gemini-cli"]
    assert store.get("anthropic") == _oauth("a", 5)
    assert "anthropic" in service.status.last_errors
    assert "credential_refresh_error provider=anthropic" in caplog.text


def test_concurrent_ticks_refresh_each_provider_once() -> None:
    store = CredentialStore(credentials={"anthropic": _oauth("a", 5)})
    refresher = _FakeRefresher(delay=0.01)
    service = _service(store, refresher)

    async def run() -> list[list[str]]:
        return list(await asyncio.gather(service.run_once(), service.run_once()))

    results = asyncio.run(run())

    assert refresher.calls == ["anthropic"]
    assert sorted(results) == [[], ["anthropic"]]


def test_start_and_stop_background_loop() -> None:
    store = CredentialStore(credentials={"anthropic": _oauth("a", 5)})
    refresher = _FakeRefresher()
    service = _service(store, refresher, check_interval_seconds=60)

    async def run() -> None:
        await service.start()
        assert service.running
        for _ in range(50):
            if refresher.calls:
                break
            await asyncio.sleep(0.01)
        await service.stop()
        assert not service.running

    asyncio.run(run())

    assert refresher.calls == ["anthropic"]


def test_disabled_service_does_not_start() -> None:
    service = _service(CredentialStore(), _FakeRefresher(), enabled=False)

    async def run() -> None:
        await service.start()
        assert not service.running
        await service.stop()

    asyncio.run(run())


class _FailingWriteConfigStore:
    def __init__(self, tmp_path: Path, failing: str) -> None:
        self._inner = ConfigStore(tmp_path / "config.yaml")
        self.failing = failing

    def read_credentials(self) -> dict[str, Any]:
        return self._inner.read_credentials()

    def write_credential(self, provider_id: str, credential: Any) -> None:
        if provider_id == self.failing:
            raise OSError(28, "No space left on device")
        self._inner.write_credential(provider_id, credential)


def test_persistence_failure_does_not_stop_other_providers(
    tmp_path: Path, caplog: Any
) -> None:
    config_store = _FailingWriteConfigStore(tmp_path, failing="anthropic")
    store = CredentialStore(
        config_store,  # type: ignore[arg-type]
        credentials={
            "anthropic": _oauth("a", 5),
            "gemini-cli": _oauth("g", 5),
        },
    )
    refresher = _FakeRefresher()
    service = _service(store, refresher)

    with caplog.at_level(logging.WARNING):
        refreshed = asyncio.run(service.run_once())

    assert refreshed == ["gemini-cli"]
    assert sorted(refresher.calls) == ["anthropic", "gemini-cli"]
    assert store.get("anthropic") == _oauth("a", 5)
    assert "No space left on device" in service.status.last_errors["anthropic"]
    assert "credential_refresh_error provider=anthropic" in caplog.text


def test_config_write_error_is_recorded_per_provider(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    store = CredentialStore(
        ConfigStore(blocker / "config.yaml"),
        credentials={"anthropic": _oauth("a", 5)},
    )
    service = _service(store, _FakeRefresher())

    assert asyncio.run(service.run_once()) == []
    assert "Cannot write config" in service.status.last_errors["anthropic"]
