"""Configuration module for Audion."""

from .settings import (
    ApiSettings,
    DatabaseSettings,
    HttpSettings,
    ObservabilitySettings,
    Settings,
    SpotifySettings,
    YouTubeSettings,
    get_settings,
)

__all__ = [
    "ApiSettings",
    "DatabaseSettings",
    "HttpSettings",
    "ObservabilitySettings",
    "Settings",
    "SpotifySettings",
    "YouTubeSettings",
    "get_settings",
]
