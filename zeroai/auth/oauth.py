from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

import httpx
import jwt

from zeroai.auth.credentials import OAuthCredential
from zeroai.config import DEFAULT_OAUTH_CLIENTS, OAuthClientConfig
from zeroai.errors import CredentialRefreshError, TransportError

logger = logging.getLogger("zeroai.auth.oauth")

CHATGPT_ACCOUNT_CLAIM_PATH = "https://api.openai.com/auth"


def now_ms() -> int:
    return int(time.time() * 1000)


def _unverified_claims(token: str) -> dict[str, Any]:
    # Only metadata is read here; the provider verifies the token itself.
    try:
        claims = jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": False},
            algorithms=["RS256", "HS256", "ES256"],
        )
    except jwt.PyJWTError:
        return {}
    return claims if isinstance(claims, dict) else {}


def extract_expires_ms(token_response: Mapping[str, Any], current_ms: int) -> int | None:
    """Expiry as epoch ms from ``expires_in`` (seconds) or ``expires_at`` (seconds)."""
    raw_expires_in = token_response.get("expires_in")
    if raw_expires_in is not None:
        try:
            return current_ms + int(float(raw_expires_in) * 1000)
        except (TypeError, ValueError):
            pass

    raw_expires_at = token_response.get("expires_at")
    if raw_expires_at is not None:
        try:
            return int(float(raw_expires_at) * 1000)
        except (TypeError, ValueError):
            pass

    return None


def extract_jwt_expiry_ms(token: str | None) -> int | None:
    if not token:
        return None
    exp = _unverified_claims(token).get("exp")
    if isinstance(exp, (int, float)) and not isinstance(exp, bool):
        return int(exp * 1000)
    return None


def extract_chatgpt_account_id(token: str | None) -> str | None:
    if not token:
        return None
    claim = _unverified_claims(token).get(CHATGPT_ACCOUNT_CLAIM_PATH)
    if isinstance(claim, dict):
        account_id = claim.get("chatgpt_account_id")
        if isinstance(account_id, str) and account_id.strip():
            return account_id.strip()
    return None


class OAuthTokenRefresher:
    """Exchanges a refresh token for a new access token at the provider."""

    def __init__(
        self,
        client: httpx.AsyncClient | Callable[[], httpx.AsyncClient],
        oauth_clients: Mapping[str, OAuthClientConfig] | None = None,
        *,
        clock_ms: Callable[[], int] = now_ms,
    ) -> None:
        self._client_getter = client if callable(client) else (lambda: client)
        self._oauth_clients = dict(oauth_clients or {})
        self._clock_ms = clock_ms

    def client_config_for(self, provider_id: str) -> OAuthClientConfig | None:
        return self._oauth_clients.get(provider_id) or DEFAULT_OAUTH_CLIENTS.get(
            provider_id
        )

    async def refresh(
        self, provider_id: str, credential: OAuthCredential
    ) -> OAuthCredential:
        client_config = self.client_config_for(provider_id)
        if client_config is None:
            raise CredentialRefreshError(provider_id, "no OAuth client configured")
        if not credential.refresh:
            raise CredentialRefreshError(provider_id, "missing refresh token")

        payload: dict[str, str] = {
            "grant_type": "refresh_token",
            "refresh_token": credential.refresh,
        }
        client_id = client_config.resolved_client_id()
        client_secret = client_config.resolved_client_secret()
        if client_id:
            payload["client_id"] = client_id
        if client_secret:
            payload["client_secret"] = client_secret

        logger.info(
            "oauth_refresh_start provider=%s token_url=%s",
            provider_id,
            client_config.token_url,
        )
        request_kwargs: dict[str, Any] = (
            {"json": payload} if client_config.body_format == "json" else {"data": payload}
        )
        try:
            response = await self._client_getter().post(
                client_config.token_url,
                headers={"Accept": "application/json"},
                **request_kwargs,
            )
        except httpx.RequestError as exc:
            logger.warning(
                "oauth_refresh_error provider=%s reason=request_error", provider_id
            )
            raise TransportError.from_httpx(exc) from exc

        if response.status_code >= 400:
            logger.warning(
                "oauth_refresh_error provider=%s status=%d",
                provider_id,
                response.status_code,
            )
            raise CredentialRefreshError(
                provider_id, f"token endpoint returned HTTP {response.status_code}"
            )

        try:
            body = response.json()
        except ValueError as exc:
            logger.warning(
                "oauth_refresh_error provider=%s reason=invalid_json", provider_id
            )
            raise CredentialRefreshError(provider_id, "invalid JSON response") from exc
        if not isinstance(body, dict):
            raise CredentialRefreshError(provider_id, "token response is not an object")

        raw_access = body.get("access_token")
        access_token = str(raw_access).strip() if raw_access is not None else ""
        if not access_token:
            logger.warning(
                "oauth_refresh_error provider=%s reason=missing_access_token",
                provider_id,
            )
            raise CredentialRefreshError(provider_id, "missing access_token")

        raw_refresh = body.get("refresh_token")
        next_refresh = (
            str(raw_refresh).strip() if raw_refresh is not None else ""
        ) or credential.refresh
        expires = extract_expires_ms(body, self._clock_ms())
        if expires is None:
            expires = extract_jwt_expiry_ms(access_token)
        if expires is None:
            raise CredentialRefreshError(provider_id, "token response has no expiry")

        updates: dict[str, Any] = {
            "access": access_token,
            "refresh": next_refresh,
            "expires": expires,
        }
        account_id = extract_chatgpt_account_id(access_token)
        if account_id:
            updates["account_id"] = account_id
        refreshed = credential.model_copy(update=updates)
        logger.info(
            "oauth_refresh_success provider=%s expires=%s", provider_id, expires
        )
        return refreshed
