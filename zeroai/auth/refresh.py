from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from zeroai.auth.credentials import OAuthCredential
from zeroai.auth.oauth import OAuthTokenRefresher, now_ms
from zeroai.auth.store import CredentialStore
from zeroai.errors import ZeroAIError

logger = logging.getLogger("zeroai.auth.refresh")

DEFAULT_CHECK_INTERVAL_SECONDS = 15 * 60
DEFAULT_REFRESH_THRESHOLD_SECONDS = 20 * 60


@dataclass(slots=True)
class CredentialRefreshStatus:
    enabled: bool
    interval_seconds: float
    threshold_seconds: float
    last_run_ms: int | None = None
    last_refreshed: list[str] = field(default_factory=list)
    last_errors: dict[str, str] = field(default_factory=dict)


class CredentialRefreshService:
    """Keeps OAuth credentials ahead of their expiry.

    Every tick refreshes each OAuth credential that expires within the
    threshold. Providers are refreshed independently; one failure is logged and
    the rest of the tick proceeds.
    """

    def __init__(
        self,
        *,
        store: CredentialStore,
        refresher: OAuthTokenRefresher,
        enabled: bool = True,
        check_interval_seconds: float = DEFAULT_CHECK_INTERVAL_SECONDS,
        refresh_threshold_seconds: float = DEFAULT_REFRESH_THRESHOLD_SECONDS,
        clock_ms: Callable[[], int] = now_ms,
    ) -> None:
        self._store = store
        self._refresher = refresher
        self._enabled = enabled
        self._interval_seconds = max(1.0, float(check_interval_seconds))
        self._threshold_ms = int(float(refresh_threshold_seconds) * 1000)
        self._clock_ms = clock_ms
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._status = CredentialRefreshStatus(
            enabled=enabled,
            interval_seconds=self._interval_seconds,
            threshold_seconds=float(refresh_threshold_seconds),
        )

    @property
    def status(self) -> CredentialRefreshStatus:
        return self._status

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if not self._enabled or self._task is not None:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="credential-refresh")
        logger.info(
            "credential_refresh_started interval_seconds=%s threshold_seconds=%s",
            self._interval_seconds,
            self._status.threshold_seconds,
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        # The loop only checks the event between ticks, so an in-flight
        # refresh is allowed to finish and persist.
        self._stop_event.set()
        try:
            await self._task
        finally:
            self._task = None
        logger.info("credential_refresh_stopped")

    async def run_once(self, now_ms: int | None = None) -> list[str]:
        current = self._clock_ms() if now_ms is None else now_ms
        refreshed: list[str] = []
        errors: dict[str, str] = {}
        for provider_id, credential in self._store.oauth_items():
            if not credential.expires_within(current, self._threshold_ms):
                continue
            try:
                if await self._refresh_one(provider_id, current):
                    refreshed.append(provider_id)
            except ZeroAIError as exc:
                errors[provider_id] = str(exc)
                logger.warning(
                    "credential_refresh_error provider=%s reason=%s",
                    provider_id,
                    exc,
                )
            except Exception as exc:
                errors[provider_id] = f"{exc.__class__.__name__}: {exc}"
                logger.exception(
                    "credential_refresh_error provider=%s reason=unexpected", provider_id
                )
        self._status.last_run_ms = current
        self._status.last_refreshed = refreshed
        self._status.last_errors = errors
        return refreshed

    async def _refresh_one(self, provider_id: str, current_ms: int) -> bool:
        async with self._store.refresh_lock(provider_id):
            # Another writer may have refreshed while we waited on the lock.
            latest = self._store.get(provider_id)
            if not isinstance(latest, OAuthCredential):
                return False
            if not latest.expires_within(current_ms, self._threshold_ms):
                return False
            updated = await self._refresher.refresh(provider_id, latest)
            await self._store.put_locked(provider_id, updated)
        logger.info(
            "credential_refreshed provider=%s expires=%s", provider_id, updated.expires
        )
        return True

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as exc:
                self._status.last_run_ms = self._clock_ms()
                logger.warning("credential_refresh_tick_failed error=%s", str(exc))
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self._interval_seconds
                )
