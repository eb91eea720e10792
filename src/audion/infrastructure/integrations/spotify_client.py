"""Spotify Web API client (client-credentials flow).

Hey future me - this client only reads PUBLIC catalog data (track search, playlist search,
playlist tracks, public user profiles). There is no user login here: the app authenticates
as itself with the client-credentials grant, so there's no refresh token either. When the
access token runs out we simply exchange the client id/secret again.

Failure handling is declarative (see infrastructure/retry.py), nested innermost first:
  transport policy  - connect/read error → retry once → UpstreamError
  auth policy       - 401 → force one re-exchange → retry once → UpstreamAuthError
  rate policy       - 429 → sleep Retry-After → retry once → UpstreamRateLimited
Anything else non-2xx → UpstreamError with endpoint/params/status in the log.
"""

import asyncio
import contextlib
import logging
import math
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from urllib.parse import quote

import httpx

from audion.config import HttpSettings, SpotifySettings
from audion.domain.entities import MiniUser, Playlist, Song
from audion.domain.exceptions import (
    ConfigurationError,
    UpstreamAuthError,
    UpstreamError,
    UpstreamRateLimited,
    ValidationException,
)
from audion.domain.ports import ICatalogClient
from audion.domain.value_objects.relevance import (
    DEFAULT_PATTERNS,
    RelevancePatterns,
    filter_relevant_songs,
)
from audion.infrastructure.integrations.http_pool import HttpClientPool
from audion.infrastructure.retry import RetryPolicy, on_status

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]
ClientFactory = Callable[[], Awaitable[httpx.AsyncClient]]

# Only what we normalize. "type" lets us skip podcast episodes mixed into playlists.
PLAYLIST_TRACK_FIELDS = (
    "items(added_at,track(id,name,type,duration_ms,artists(id,name),"
    "album(id,name,release_date,images)))"
)
MAX_PAGE_SIZE = 50


class SpotifyTokenState(str, Enum):
    """Lifecycle of the client-credentials access token."""

    ABSENT = "absent"
    VALID = "valid"
    EXPIRED = "expired"


@dataclass(frozen=True)
class SpotifyAccessToken:
    """Bearer token plus absolute expiry (on the manager's clock)."""

    value: str
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


# Hey future me - the token is a tiny state machine owned by this manager, never a module
# global. Transitions:
#   ABSENT/EXPIRED --exchange ok--> VALID (refresh task scheduled at max(expires_in-300, 60))
#   VALID --refresh task fires / clock passes expiry--> EXPIRED
#   any --exchange fails--> ABSENT (retry task scheduled in 60s, UpstreamAuthError raised)
# All exchanges run under one asyncio.Lock so 20 concurrent searches share ONE exchange.
# clock/sleep are injectable so tests can walk through an hour in microseconds.
class SpotifyTokenManager:
    """Owns the Spotify access token and its proactive refresh task."""

    TOKEN_URL = "https://accounts.spotify.com/api/token"  # nosec B105 - public endpoint URL
    REFRESH_MARGIN_SECONDS = 300
    MIN_REFRESH_DELAY_SECONDS = 60
    FAILURE_RETRY_DELAY_SECONDS = 60

    def __init__(
        self,
        settings: SpotifySettings,
        get_client: ClientFactory,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._get_client = get_client
        self._clock = clock
        self._sleep = sleep
        self._token: SpotifyAccessToken | None = None
        self._marked_expired = False
        self._lock = asyncio.Lock()
        self._refresh_task: asyncio.Task[None] | None = None
        self.exchange_count = 0

    @property
    def state(self) -> SpotifyTokenState:
        if self._token is None:
            return SpotifyTokenState.ABSENT
        if self._marked_expired or self._token.is_expired(self._clock()):
            return SpotifyTokenState.EXPIRED
        return SpotifyTokenState.VALID

    @property
    def expires_at(self) -> float | None:
        return self._token.expires_at if self._token else None

    @staticmethod
    def refresh_delay(expires_in: float) -> float:
        """Seconds after an exchange at which the proactive refresh fires."""
        return max(
            expires_in - SpotifyTokenManager.REFRESH_MARGIN_SECONDS,
            SpotifyTokenManager.MIN_REFRESH_DELAY_SECONDS,
        )

    async def get_token(self) -> str:
        """Return a valid access token, exchanging credentials if needed.

        Raises:
            ConfigurationError: If client id/secret are missing
            UpstreamAuthError: If the credential exchange fails
        """
        if self.state is SpotifyTokenState.VALID and self._token is not None:
            return self._token.value

        async with self._lock:
            # Another caller may have finished an exchange while we waited for the lock.
            if self.state is SpotifyTokenState.VALID and self._token is not None:
                return self._token.value
            return await self._exchange()

    async def force_refresh(self, rejected: str | None = None) -> str:
        """Discard the current token and exchange again (used after a 401).

        Pass the token Spotify rejected. If a sibling call already replaced it while we
        waited for the lock, its token is returned instead of exchanging once more.
        """
        async with self._lock:
            if (
                rejected is not None
                and self.state is SpotifyTokenState.VALID
                and self._token is not None
                and self._token.value != rejected
            ):
                return self._token.value
            self._marked_expired = True
            return await self._exchange()

    def mark_expired(self) -> None:
        if self._token is not None:
            self._marked_expired = True

    async def _exchange(self) -> str:
        if not self._settings.is_configured:
            raise ConfigurationError(
                "SPOTIFY_CLIENT_ID / SPOTIFY_CLIENT_SECRET are not configured. "
                "Get credentials at https://developer.spotify.com/dashboard"
            )

        client = await self._get_client()
        self.exchange_count += 1
        logger.debug("Fetching new Spotify access token")

        try:
            response = await client.post(
                self.TOKEN_URL,
                data={"grant_type": "client_credentials"},
                auth=(self._settings.client_id, self._settings.client_secret),
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.TransportError as e:
            self._fail_exchange(f"token endpoint unreachable: {e}")
            raise UpstreamAuthError(
                "Spotify token exchange failed: endpoint unreachable",
                service="spotify",
                endpoint=self.TOKEN_URL,
            ) from e

        if response.status_code != 200:
            self._fail_exchange(f"HTTP {response.status_code}")
            raise UpstreamAuthError(
                f"Spotify token exchange failed with HTTP {response.status_code}",
                service="spotify",
                endpoint=self.TOKEN_URL,
                status_code=response.status_code,
            )

        try:
            payload = response.json()
            access_token = str(payload["access_token"])
            expires_in = float(payload.get("expires_in", 3600))
        except (ValueError, KeyError, TypeError) as e:
            self._fail_exchange("malformed token response")
            raise UpstreamAuthError(
                "Spotify token exchange returned a malformed response",
                service="spotify",
                endpoint=self.TOKEN_URL,
                status_code=response.status_code,
            ) from e

        self._token = SpotifyAccessToken(
            value=access_token, expires_at=self._clock() + expires_in
        )
        self._marked_expired = False
        self._schedule_refresh(self.refresh_delay(expires_in))
        logger.debug("Received Spotify access token, expires in %.0fs", expires_in)
        return access_token

    def _fail_exchange(self, reason: str) -> None:
        logger.error("Spotify token exchange failed: %s", reason)
        self._token = None
        self._marked_expired = False
        self._schedule_refresh(self.FAILURE_RETRY_DELAY_SECONDS)

    def _schedule_refresh(self, delay: float) -> None:
        current = self._refresh_task
        # The refresh task itself reschedules after its exchange, so never cancel ourselves.
        if current is not None and not current.done() and current is not asyncio.current_task():
            current.cancel()
        self._refresh_task = asyncio.create_task(self._refresh_after(delay))
        logger.debug("Spotify token refresh scheduled in %.0fs", delay)

    async def _refresh_after(self, delay: float) -> None:
        await self._sleep(delay)
        logger.debug("Proactively refreshing Spotify token")
        self.mark_expired()
        async with self._lock:
            try:
                await self._exchange()
            except UpstreamAuthError:
                # _fail_exchange already logged it and scheduled the next attempt.
                return

    async def close(self) -> None:
        """Cancel the refresh task."""
        task, self._refresh_task = self._refresh_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task


# =============================================================================
# Normalization (Spotify JSON → domain entities)
# =============================================================================


def _first_image_url(images: Any) -> str | None:
    if isinstance(images, list) and images and isinstance(images[0], dict):
        url = images[0].get("url")
        return str(url) if url else None
    return None


def _parse_spotify_date(value: Any) -> datetime | None:
    """Parse Spotify dates: release_date precision is year, month or day; added_at is ISO."""
    if not value or not isinstance(value, str):
        return None
    for fmt in ("%Y-%m-%dT%H:%M:%SZ", "%Y-%m-%d", "%Y-%m", "%Y"):
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=UTC)
        except ValueError:
            continue
    logger.debug("Unparseable Spotify date %r", value)
    return None


def ms_to_seconds(duration_ms: Any) -> int | None:
    """Convert milliseconds to whole seconds, rounding up."""
    if duration_ms is None:
        return None
    try:
        return max(0, math.ceil(float(duration_ms) / 1000))
    except (TypeError, ValueError):
        return None


def track_to_song(track: Any, added_at: Any = None) -> Song | None:
    """Normalize one Spotify track object. Returns None for malformed items."""
    if not isinstance(track, dict):
        return None
    track_id = track.get("id")
    name = track.get("name")
    if not track_id or not name or not str(name).strip():
        return None
    if track.get("type") not in (None, "track"):
        return None

    artists = track.get("artists") or []
    album = track.get("album") or {}
    first_artist = artists[0] if artists and isinstance(artists[0], dict) else {}

    return Song(
        id=str(track_id),
        title=str(name),
        artist=first_artist.get("name") or "",
        album_name=album.get("name") or "",
        duration=ms_to_seconds(track.get("duration_ms")),
        thumbnail=_first_image_url(album.get("images")),
        released_at=_parse_spotify_date(album.get("release_date")),
        genres=[],  # Spotify has no genres at track level
        added_at=_parse_spotify_date(added_at),
    )


def playlist_to_shell(item: Any) -> Playlist | None:
    """Normalize one Spotify playlist search item into a playlist without songs."""
    if not isinstance(item, dict) or not item.get("id"):
        return None
    owner = item.get("owner") or {}
    return Playlist(
        title=(item.get("name") or "").strip() or "Untitled Playlist",
        description=item.get("description") or "",
        thumbnail=_first_image_url(item.get("images")),
        created_by=MiniUser(
            id=owner.get("id") or "unknown",
            full_name=owner.get("display_name") or "Unknown User",
        ),
        external_playlist_id=str(item["id"]),
    )


def _clamp_limit(limit: int) -> int:
    return max(1, min(int(limit), MAX_PAGE_SIZE))


def _parse_retry_after(response: httpx.Response | None) -> float | None:
    if response is None:
        return None
    raw = response.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        seconds = float(raw)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def _bearer_token(response: httpx.Response | None) -> str | None:
    """The token a rejected request was sent with (None if the request isn't attached)."""
    if response is None:
        return None
    try:
        header = response.request.headers.get("Authorization", "")
    except RuntimeError:
        return None
    return header.removeprefix("Bearer ") or None


class SpotifyClient(ICatalogClient):
    """HTTP client for the public Spotify catalog."""

    API_BASE_URL = "https://api.spotify.com/v1"

    # Hey future me - pass `client` only in tests (an httpx.AsyncClient on a MockTransport).
    # In the app the shared HttpClientPool client is used, and the pool owns its lifetime.
    def __init__(
        self,
        settings: SpotifySettings,
        http_settings: HttpSettings | None = None,
        client: httpx.AsyncClient | None = None,
        patterns: RelevancePatterns = DEFAULT_PATTERNS,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self._http_settings = http_settings
        self._client = client
        self._patterns = patterns
        self.token_manager = SpotifyTokenManager(
            settings, self._get_client, clock=clock, sleep=sleep
        )

        self._transport_policy = RetryPolicy(
            name="spotify.transport",
            max_attempts=2,
            retryable_exceptions=(httpx.TransportError,),
            give_up=lambda _resp, err, attempts: UpstreamError(
                f"Spotify unreachable after {attempts} attempts: {err}",
                service="spotify",
            ),
        )
        self._auth_policy = RetryPolicy(
            name="spotify.auth",
            max_attempts=2,
            retryable_status=on_status(401),
            before_retry=self._reauthenticate,
            give_up=lambda _resp, _err, _attempts: UpstreamAuthError(
                "Spotify rejected the access token after re-authentication",
                service="spotify",
                status_code=401,
            ),
        )
        self._rate_policy = RetryPolicy(
            name="spotify.rate_limit",
            max_attempts=2,
            retryable_status=on_status(429),
            backoff=self._retry_after,
            give_up=self._rate_limit_give_up,
            sleep=sleep,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = await HttpClientPool.get_client(self._http_settings)
        return self._client

    async def close(self) -> None:
        """Stop the token refresh task. The HTTP client belongs to the pool (or the caller)."""
        await self.token_manager.close()

    async def _reauthenticate(self, response: httpx.Response | None, _attempt: int) -> None:
        logger.info("Spotify answered 401, re-exchanging client credentials")
        await self.token_manager.force_refresh(_bearer_token(response))

    @staticmethod
    def _retry_after(response: httpx.Response | None) -> float | None:
        seconds = _parse_retry_after(response)
        if seconds is None:
            logger.warning(
                "Spotify answered 429 without a usable Retry-After header (%r)",
                response.headers.get("Retry-After") if response is not None else None,
            )
        return seconds

    @staticmethod
    def _rate_limit_give_up(
        response: httpx.Response | None, _err: BaseException | None, attempts: int
    ) -> BaseException:
        retry_after = _parse_retry_after(response)
        return UpstreamRateLimited(
            f"Spotify rate limit exceeded after {attempts} attempt(s)",
            retry_after=math.ceil(retry_after) if retry_after is not None else None,
        )

    # Listen future me, ALL catalog calls go through here. `send` re-reads the token on every
    # attempt, which is how the 401 policy's re-exchange reaches the retry.
    async def _get(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        client = await self._get_client()
        url = f"{self.API_BASE_URL}/{endpoint}"

        async def send() -> httpx.Response:
            token = await self.token_manager.get_token()
            return await client.get(
                url, params=params, headers={"Authorization": f"Bearer {token}"}
            )

        log_context = {"endpoint": endpoint, "params": params}
        try:
            response = await self._rate_policy.execute(
                lambda: self._auth_policy.execute(
                    lambda: self._transport_policy.execute(send)
                )
            )
        except UpstreamRateLimited as e:
            e.endpoint = endpoint
            logger.error("Spotify rate limited", extra={**log_context, "status": 429})
            raise
        except UpstreamError as e:
            e.endpoint = e.endpoint or endpoint
            logger.error(
                "Spotify request failed: %s",
                e.message,
                extra={**log_context, "status": e.status_code},
            )
            raise

        if not response.is_success:
            logger.error(
                "Spotify request failed with HTTP %d",
                response.status_code,
                extra={**log_context, "status": response.status_code},
            )
            raise UpstreamError(
                f"Spotify API error: HTTP {response.status_code}",
                service="spotify",
                endpoint=endpoint,
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            logger.error("Spotify returned invalid JSON", extra=log_context)
            raise UpstreamError(
                "Spotify returned invalid JSON",
                service="spotify",
                endpoint=endpoint,
                status_code=response.status_code,
            ) from e

    async def search_tracks(self, query: str, limit: int = 5) -> list[Song]:
        """Search tracks and return relevant songs (at most `limit`).

        Raises:
            ValidationException: If the query is blank
            UpstreamError: If Spotify is unreachable after retry
        """
        if not query or not query.strip():
            raise ValidationException("Search query cannot be empty")
        if limit < 1:
            raise ValidationException(f"Search limit must be at least 1, got {limit}")

        data = await self._get(
            "search",
            {"q": query.strip(), "type": "track", "limit": _clamp_limit(limit), "offset": 0},
        )
        items = ((data or {}).get("tracks") or {}).get("items") or []
        songs = [song for song in (track_to_song(item) for item in items) if song]

        relevant = filter_relevant_songs(songs, query, self._patterns)
        logger.debug(
            "Spotify track search %r: %d normalized, %d relevant",
            query,
            len(songs),
            len(relevant),
        )
        return relevant[:limit]

    async def search_playlists(self, query: str, limit: int = 50) -> list[Playlist]:
        """Search playlists. Returns shells (no songs) carrying external_playlist_id."""
        if not query or not query.strip():
            raise ValidationException("Search query cannot be empty")

        data = await self._get(
            "search", {"q": query.strip(), "type": "playlist", "limit": _clamp_limit(limit)}
        )
        # Spotify returns null entries for playlists that vanished since indexing.
        items = ((data or {}).get("playlists") or {}).get("items") or []
        playlists = [p for p in (playlist_to_shell(item) for item in items) if p]
        logger.debug("Spotify playlist search %r: %d playlists", query, len(playlists))
        return playlists

    async def get_playlist_tracks(
        self, external_playlist_id: str, limit: int = 50
    ) -> list[Song]:
        """Fetch the songs of one Spotify playlist (episodes and null tracks skipped)."""
        data = await self._get(
            f"playlists/{quote(external_playlist_id, safe='')}/tracks",
            {"limit": _clamp_limit(limit), "fields": PLAYLIST_TRACK_FIELDS},
        )
        songs: list[Song] = []
        for item in (data or {}).get("items") or []:
            if not isinstance(item, dict):
                continue
            song = track_to_song(item.get("track"), added_at=item.get("added_at"))
            if song is not None:
                songs.append(song)
        logger.debug(
            "Fetched %d tracks from Spotify playlist %s", len(songs), external_playlist_id
        )
        return songs

    async def get_user_avatar(self, user_id: str) -> str | None:
        """First profile image of a public Spotify user, or None."""
        data = await self._get(f"users/{quote(user_id, safe='')}")
        return _first_image_url((data or {}).get("images"))

    async def __aenter__(self) -> "SpotifyClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
