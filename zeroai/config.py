from __future__ import annotations

import contextlib
import logging
import os
import threading
from pathlib import Path
from typing import Any, Literal
from uuid import uuid4

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from zeroai.auth.credentials import Credential, dump_credential, parse_credential
from zeroai.errors import ConfigError

logger = logging.getLogger("zeroai.config")


class OAuthClientConfig(BaseModel):
    token_url: str
    client_id: str | None = None
    client_id_env: str | None = None
    client_secret: str | None = None
    client_secret_env: str | None = None
    body_format: Literal["form", "json"] = "form"

    @staticmethod
    def _resolve_env_or_value(env_name: str | None, value: str | None) -> str | None:
        if env_name:
            env_value = os.getenv(env_name, "").strip()
            if env_value:
                return env_value
        return value

    def resolved_client_id(self) -> str | None:
        return self._resolve_env_or_value(self.client_id_env, self.client_id)

    def resolved_client_secret(self) -> str | None:
        return self._resolve_env_or_value(self.client_secret_env, self.client_secret)


DEFAULT_OAUTH_CLIENTS: dict[str, OAuthClientConfig] = {
    "anthropic": OAuthClientConfig(
        token_url="https://console.anthropic.com/v1/oauth/token",
        client_id_env="ANTHROPIC_OAUTH_CLIENT_ID",
        body_format="json",
    ),
    "gemini-cli": OAuthClientConfig(
        token_url="https://oauth2.googleapis.com/token",
        client_id_env="GEMINI_CLI_OAUTH_CLIENT_ID",
        client_secret_env="GEMINI_CLI_OAUTH_CLIENT_SECRET",
    ),
    "antigravity": OAuthClientConfig(
        token_url="https://oauth2.googleapis.com/token",
        client_id_env="ANTIGRAVITY_OAUTH_CLIENT_ID",
        client_secret_env="ANTIGRAVITY_OAUTH_CLIENT_SECRET",
    ),
    "openai": OAuthClientConfig(
        token_url="https://auth.openai.com/oauth/token",
        client_id_env="OPENAI_OAUTH_CLIENT_ID",
    ),
}


class ZeroAIConfig(BaseModel):
    enabled_models: list[str] = Field(default_factory=list)
    credentials: dict[str, Credential] = Field(default_factory=dict)
    oauth_clients: dict[str, OAuthClientConfig] = Field(default_factory=dict)

    @field_validator("enabled_models")
    @classmethod
    def _clean_models(cls, value: list[str]) -> list[str]:
        cleaned: list[str] = []
        for item in value:
            normalized = item.strip()
            if normalized and normalized not in cleaned:
                cleaned.append(normalized)
        return cleaned

    def oauth_client_for(self, provider_id: str) -> OAuthClientConfig | None:
        return self.oauth_clients.get(provider_id) or DEFAULT_OAUTH_CLIENTS.get(
            provider_id
        )


class ConfigStore:
    """YAML-backed config file with atomic whole-file writes.

    Every write re-reads the file, patches one section and replaces the file via
    a temp file, so readers see either the old or the new document.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()
        self._write_lock = threading.Lock()

    def exists(self) -> bool:
        return self.path.exists()

    def _read_raw(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                payload = yaml.safe_load(handle)
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"Cannot read config '{self.path}': {exc}") from exc
        if payload is None:
            return {}
        if not isinstance(payload, dict):
            raise ConfigError(f"Expected a YAML mapping in '{self.path}'.")
        return payload

    def _write_raw(self, payload: dict[str, Any]) -> None:
        temp_path = self.path.with_name(f".{self.path.name}.{uuid4().hex}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with temp_path.open("w", encoding="utf-8") as handle:
                yaml.safe_dump(payload, handle, sort_keys=False)
            temp_path.replace(self.path)
        except (OSError, yaml.YAMLError) as exc:
            with contextlib.suppress(OSError):
                temp_path.unlink(missing_ok=True)
            raise ConfigError(f"Cannot write config '{self.path}': {exc}") from exc

    def load(self) -> ZeroAIConfig:
        raw = self._read_raw()
        try:
            return ZeroAIConfig.model_validate(raw)
        except ValidationError as exc:
            raise ConfigError(f"Invalid config '{self.path}': {exc}") from exc

    def get_enabled_models(self) -> list[str]:
        return self.load().enabled_models

    def set_enabled_models(self, models: list[str]) -> None:
        with self._write_lock:
            raw = self._read_raw()
            raw["enabled_models"] = ZeroAIConfig(enabled_models=models).enabled_models
            self._write_raw(raw)

    def read_credentials(self) -> dict[str, Credential]:
        raw = self._read_raw().get("credentials") or {}
        if not isinstance(raw, dict):
            raise ConfigError(f"'credentials' must be a mapping in '{self.path}'.")
        credentials: dict[str, Credential] = {}
        for provider_id, entry in raw.items():
            try:
                credentials[str(provider_id)] = parse_credential(entry)
            except ValidationError:
                logger.warning(
                    "credential_load_skipped provider=%s reason=invalid_entry path=%s",
                    provider_id,
                    self.path,
                )
        return credentials

    def write_credential(self, provider_id: str, credential: Credential) -> None:
        with self._write_lock:
            raw = self._read_raw()
            credentials = raw.get("credentials")
            if not isinstance(credentials, dict):
                credentials = {}
                raw["credentials"] = credentials
            credentials[provider_id] = dump_credential(credential)
            self._write_raw(raw)
        logger.info(
            "credential_persisted provider=%s path=%s", provider_id, self.path
        )
