"""External service integrations (Spotify catalog, YouTube videos)."""

from audion.infrastructure.integrations.http_pool import HttpClientPool
from audion.infrastructure.integrations.spotify_client import (
    SpotifyAccessToken,
    SpotifyClient,
    SpotifyTokenManager,
    SpotifyTokenState,
)
from audion.infrastructure.integrations.youtube_client import (
    ApiKeyPool,
    YouTubeClient,
    parse_iso8601_duration,
)

__all__ = [
    "ApiKeyPool",
    "HttpClientPool",
    "SpotifyAccessToken",
    "SpotifyClient",
    "SpotifyTokenManager",
    "SpotifyTokenState",
    "YouTubeClient",
    "parse_iso8601_duration",
]
