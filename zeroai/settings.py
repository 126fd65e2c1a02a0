from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    zeroai_config_path: str = "~/.zeroai/config.yaml"
    request_timeout_seconds: float = 120.0
    connect_timeout_seconds: float = 5.0
    read_timeout_seconds: float = 120.0
    write_timeout_seconds: float = 30.0
    pool_timeout_seconds: float = 5.0
    credential_refresh_enabled: bool = True
    credential_refresh_interval_seconds: float = 900.0
    credential_refresh_threshold_seconds: float = 1200.0
    server_host: str = "127.0.0.1"
    server_port: int = 8787
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
