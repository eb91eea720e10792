"""Application settings loaded from environment variables and .env."""

import json
import logging
from functools import lru_cache
from typing import Annotated, Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger(__name__)

_ENV_FILE_CONFIG: dict[str, Any] = {
    "env_file": ".env",
    "env_file_encoding": "utf-8",
    "extra": "ignore",
}


class SpotifySettings(BaseSettings):
    """Spotify client-credentials configuration."""

    model_config = SettingsConfigDict(env_prefix="SPOTIFY_", **_ENV_FILE_CONFIG)

    client_id: str = Field(default="", description="Spotify application client id")
    client_secret: str = Field(
        default="", description="Spotify application client secret"
    )

    @property
    def is_configured(self) -> bool:
        """Check whether both credentials are present."""
        return bool(self.client_id.strip() and self.client_secret.strip())


# Hey future me - YOUTUBE_API_KEYS is a JSON array: YOUTUBE_API_KEYS='["key1","key2"]'.
# We decode it ourselves (NoDecode) so a malformed value degrades to the single-key
# YOUTUBE_API_KEY fallback instead of failing startup. That fallback is only used when
# the pool is empty.
class YouTubeSettings(BaseSettings):
    """YouTube Data API key pool configuration."""

    model_config = SettingsConfigDict(env_prefix="YOUTUBE_", **_ENV_FILE_CONFIG)

    api_keys: Annotated[list[str], NoDecode] = Field(
        default_factory=list, description="Ordered pool of YouTube Data API keys"
    )
    api_key: str | None = Field(
        default=None, description="Single-key fallback when no pool is configured"
    )

    @field_validator("api_keys", mode="before")
    @classmethod
    def _decode_keys(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        if not value.strip():
            return []
        try:
            decoded = json.loads(value)
        except ValueError:
            decoded = None
        if not isinstance(decoded, list) or not all(isinstance(k, str) for k in decoded):
            logger.warning("YOUTUBE_API_KEYS is not a JSON array of strings, ignoring it")
            return []
        return decoded

    @field_validator("api_keys")
    @classmethod
    def _strip_keys(cls, value: list[str]) -> list[str]:
        return [key.strip() for key in value if key and key.strip()]

    @model_validator(mode="after")
    def _fallback_to_single_key(self) -> "YouTubeSettings":
        if not self.api_keys and self.api_key and self.api_key.strip():
            self.api_keys = [self.api_key.strip()]
        return self


class DatabaseSettings(BaseSettings):
    """Document store configuration."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_", **_ENV_FILE_CONFIG)

    url: str = Field(
        default="sqlite+aiosqlite:///./audion.db",
        description="Async SQLAlchemy database URL",
    )
    echo: bool = Field(default=False, description="Echo SQL statements")
    pool_pre_ping: bool = Field(default=True, description="Ping before checkout")


class HttpSettings(BaseSettings):
    """Outbound HTTP client configuration."""

    model_config = SettingsConfigDict(env_prefix="HTTP_", **_ENV_FILE_CONFIG)

    timeout: float = Field(default=30.0, description="Per-call timeout in seconds")
    max_connections: int = Field(default=50, description="Max concurrent connections")
    max_keepalive: int = Field(default=20, description="Max idle keep-alive connections")


class ObservabilitySettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_", **_ENV_FILE_CONFIG)

    json_format: bool = Field(default=False, description="Emit JSON log lines")

    @property
    def log_json_format(self) -> bool:
        """Alias used by the lifespan."""
        return self.json_format


class ApiSettings(BaseSettings):
    """HTTP server configuration."""

    model_config = SettingsConfigDict(env_prefix="API_", **_ENV_FILE_CONFIG)

    host: str = Field(default="0.0.0.0", description="Bind host")  # nosec B104
    port: int = Field(default=8000, description="Bind port")


class Settings(BaseSettings):
    """Root settings object.

    Hey future me - each section reads its own env prefix (SPOTIFY_, YOUTUBE_,
    DATABASE_, HTTP_, LOG_, API_). Only app_name and log_level live at the top.
    """

    model_config = SettingsConfigDict(**_ENV_FILE_CONFIG)

    app_name: str = Field(default="audion", description="Application name")
    log_level: str = Field(default="INFO", description="Root log level")

    spotify: SpotifySettings = Field(default_factory=SpotifySettings)
    youtube: YouTubeSettings = Field(default_factory=YouTubeSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    http: HttpSettings = Field(default_factory=HttpSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)
    api: ApiSettings = Field(default_factory=ApiSettings)

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {value}")
        return normalized


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
