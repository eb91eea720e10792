"""Tests for the Spotify client: token lifecycle, failure policies and normalization.

Hey future me - no network here. Every test runs the real client against httpx.MockTransport,
with a fake clock (to walk through token lifetimes instantly) and a fake sleep that records
delays. Short sleeps (Retry-After) return at once, long ones (token refresh) park until the
test releases them, so the background refresh task never spins on its own.
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime
from typing import Any

import httpx
import pytest

from audion.config import SpotifySettings
from audion.domain.exceptions import (
    ConfigurationError,
    UpstreamAuthError,
    UpstreamError,
    UpstreamRateLimited,
    ValidationException,
)
from audion.infrastructure.integrations.spotify_client import (
    SpotifyClient,
    SpotifyTokenManager,
    SpotifyTokenState,
    ms_to_seconds,
    playlist_to_shell,
    track_to_song,
)

Responder = Callable[[httpx.Request], httpx.Response]


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class FakeSleep:
    """Records delays; sleeps longer than `park_above` wait until released."""

    def __init__(self, park_above: float = 30.0) -> None:
        self.delays: list[float] = []
        self.park_above = park_above
        self._parked: list[asyncio.Event] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if seconds <= self.park_above:
            return
        event = asyncio.Event()
        self._parked.append(event)
        await event.wait()

    def release_next(self) -> None:
        self._parked.pop(0).set()


class FakeSpotify:
    """MockTransport handler: token endpoint plus a queue of API responses."""

    def __init__(self) -> None:
        self.token_status = 200
        self.token_calls = 0
        self.api_requests: list[httpx.Request] = []
        self.api_queue: list[httpx.Response | Responder | Exception] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "accounts.spotify.com":
            self.token_calls += 1
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_client"})
            return httpx.Response(
                200,
                json={
                    "access_token": f"tok-{self.token_calls}",
                    "token_type": "Bearer",
                    "expires_in": 3600,
                },
            )

        self.api_requests.append(request)
        if not self.api_queue:
            return httpx.Response(200, json={})
        nxt = self.api_queue.pop(0) if len(self.api_queue) > 1 else self.api_queue[0]
        if isinstance(nxt, Exception):
            raise nxt
        if callable(nxt):
            return nxt(request)
        # The last queued response repeats, so hand out a fresh copy each time.
        return httpx.Response(nxt.status_code, headers=nxt.headers, content=nxt.content)


async def _settle() -> None:
    """Let scheduled tasks run their next steps."""
    for _ in range(20):
        await asyncio.sleep(0)


def _track(
    track_id: str,
    name: str,
    album: str = "Help!",
    duration_ms: int = 125_000,
    **extra: Any,
) -> dict[str, Any]:
    return {
        "id": track_id,
        "name": name,
        "type": "track",
        "duration_ms": duration_ms,
        "artists": [{"id": "beatles", "name": "The Beatles"}],
        "album": {
            "id": "alb",
            "name": album,
            "release_date": "1965-08-06",
            "images": [{"url": f"https://img/{track_id}.jpg"}],
        },
        **extra,
    }


def _tracks_page(*tracks: dict[str, Any]) -> httpx.Response:
    return httpx.Response(200, json={"tracks": {"items": list(tracks)}})


@pytest.fixture
def fake() -> FakeSpotify:
    return FakeSpotify()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeper() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
async def spotify(
    fake: FakeSpotify, clock: FakeClock, sleeper: FakeSleep
) -> AsyncIterator[SpotifyClient]:
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake.handler))
    client = SpotifyClient(
        SpotifySettings(client_id="id", client_secret="secret"),
        client=http,
        clock=clock,
        sleep=sleeper,
    )
    try:
        yield client
    finally:
        await client.close()
        await http.aclose()


class TestTokenLifecycle:
    """Test the client-credentials token state machine."""

    def test_refresh_delay(self) -> None:
        """Refresh fires 5 minutes early, but never sooner than 60s."""
        assert SpotifyTokenManager.refresh_delay(3600) == 3300
        assert SpotifyTokenManager.refresh_delay(200) == 60

    async def test_token_refresh_boundary(
        self, spotify: SpotifyClient, clock: FakeClock, sleeper: FakeSleep
    ) -> None:
        """Refresh is scheduled at T-300; a call at T-1 still uses the first token."""
        manager = spotify.token_manager
        assert manager.state is SpotifyTokenState.ABSENT

        assert await manager.get_token() == "tok-1"
        await _settle()
        assert sleeper.delays == [3300]

        clock.now = 3599
        assert manager.state is SpotifyTokenState.VALID
        assert await manager.get_token() == "tok-1"
        assert manager.exchange_count == 1

        clock.now = 3600
        assert manager.state is SpotifyTokenState.EXPIRED
        assert await manager.get_token() == "tok-2"
        assert manager.exchange_count == 2

    async def test_proactive_refresh_replaces_token(
        self, spotify: SpotifyClient, sleeper: FakeSleep
    ) -> None:
        """When the refresh task wakes up it exchanges again and schedules the next one."""
        manager = spotify.token_manager
        await manager.get_token()
        await _settle()

        sleeper.release_next()
        await _settle()

        assert manager.exchange_count == 2
        assert manager.state is SpotifyTokenState.VALID
        assert await manager.get_token() == "tok-2"
        assert sleeper.delays == [3300, 3300]

    async def test_concurrent_callers_share_one_exchange(self, spotify: SpotifyClient) -> None:
        tokens = await asyncio.gather(*(spotify.token_manager.get_token() for _ in range(10)))
        assert set(tokens) == {"tok-1"}
        assert spotify.token_manager.exchange_count == 1

    async def test_failed_exchange_clears_token_and_schedules_retry(
        self, spotify: SpotifyClient, fake: FakeSpotify, sleeper: FakeSleep
    ) -> None:
        fake.token_status = 400

        with pytest.raises(UpstreamAuthError):
            await spotify.token_manager.get_token()
        await _settle()

        assert spotify.token_manager.state is SpotifyTokenState.ABSENT
        assert sleeper.delays == [60]

    async def test_missing_credentials_is_a_configuration_error(
        self, fake: FakeSpotify
    ) -> None:
        http = httpx.AsyncClient(transport=httpx.MockTransport(fake.handler))
        client = SpotifyClient(SpotifySettings(client_id="", client_secret=""), client=http)
        try:
            with pytest.raises(ConfigurationError):
                await client.search_tracks("yesterday")
            assert fake.token_calls == 0
        finally:
            await client.close()
            await http.aclose()


class TestFailurePolicies:
    """Test 401 / 429 / transport handling on API calls."""

    async def test_401_forces_one_reexchange_and_retries(
        self, spotify: SpotifyClient, fake: FakeSpotify
    ) -> None:
        fake.api_queue = [httpx.Response(401), _tracks_page(_track("t1", "Yesterday"))]

        songs = await spotify.search_tracks("yesterday")

        assert [song.id for song in songs] == ["t1"]
        assert spotify.token_manager.exchange_count == 2
        assert fake.api_requests[0].headers["Authorization"] == "Bearer tok-1"
        assert fake.api_requests[1].headers["Authorization"] == "Bearer tok-2"

    async def test_concurrent_401s_share_one_reexchange(
        self, fake: FakeSpotify, clock: FakeClock, sleeper: FakeSleep
    ) -> None:
        """Five calls rejected with the same stale token trigger a single re-exchange."""

        async def slow_handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(0.01)
            return fake.handler(request)

        def reject_first_token(request: httpx.Request) -> httpx.Response:
            if request.headers["Authorization"] == "Bearer tok-1":
                return httpx.Response(401)
            return _tracks_page(_track("t1", "Yesterday"))

        fake.api_queue = [reject_first_token]
        http = httpx.AsyncClient(transport=httpx.MockTransport(slow_handler))
        client = SpotifyClient(
            SpotifySettings(client_id="id", client_secret="secret"),
            client=http,
            clock=clock,
            sleep=sleeper,
        )
        try:
            results = await asyncio.gather(
                *(client.search_tracks("yesterday") for _ in range(5))
            )
        finally:
            await client.close()
            await http.aclose()

        assert all([song.id for song in songs] == ["t1"] for songs in results)
        assert client.token_manager.exchange_count == 2
        assert fake.token_calls == 2

    async def test_force_refresh_keeps_a_token_newer_than_the_rejected_one(
        self, spotify: SpotifyClient
    ) -> None:
        manager = spotify.token_manager
        assert await manager.get_token() == "tok-1"

        assert await manager.force_refresh("tok-0") == "tok-1"
        assert manager.exchange_count == 1

        assert await manager.force_refresh("tok-1") == "tok-2"
        assert manager.exchange_count == 2

    async def test_second_401_raises_auth_error(
        self, spotify: SpotifyClient, fake: FakeSpotify
    ) -> None:
        fake.api_queue = [httpx.Response(401)]

        with pytest.raises(UpstreamAuthError):
            await spotify.search_tracks("yesterday")
        assert len(fake.api_requests) == 2
        assert spotify.token_manager.exchange_count == 2

    async def test_429_waits_retry_after_then_succeeds(
        self, spotify: SpotifyClient, fake: FakeSpotify, sleeper: FakeSleep
    ) -> None:
        fake.api_queue = [
            httpx.Response(429, headers={"Retry-After": "2"}),
            _tracks_page(_track("t1", "Yesterday")),
        ]

        songs = await spotify.search_tracks("yesterday")

        assert len(songs) == 1
        assert 2.0 in sleeper.delays
        assert len(fake.api_requests) == 2

    async def test_429_without_retry_after_is_rate_limited(
        self, spotify: SpotifyClient, fake: FakeSpotify
    ) -> None:
        fake.api_queue = [httpx.Response(429)]

        with pytest.raises(UpstreamRateLimited) as exc_info:
            await spotify.search_tracks("yesterday")
        assert len(fake.api_requests) == 1
        assert exc_info.value.retry_after is None
        assert exc_info.value.endpoint == "search"

    async def test_repeated_429_gives_up_with_retry_after(
        self, spotify: SpotifyClient, fake: FakeSpotify
    ) -> None:
        fake.api_queue = [httpx.Response(429, headers={"Retry-After": "3"})]

        with pytest.raises(UpstreamRateLimited) as exc_info:
            await spotify.search_tracks("yesterday")
        assert exc_info.value.retry_after == 3
        assert len(fake.api_requests) == 2

    async def test_transport_error_retried_once(
        self, spotify: SpotifyClient, fake: FakeSpotify
    ) -> None:
        fake.api_queue = [
            httpx.ConnectError("connection refused"),
            _tracks_page(_track("t1", "Yesterday")),
        ]

        songs = await spotify.search_tracks("yesterday")

        assert len(songs) == 1

    async def test_transport_error_twice_is_upstream_error(
        self, spotify: SpotifyClient, fake: FakeSpotify
    ) -> None:
        fake.api_queue = [httpx.ConnectError("connection refused")]

        with pytest.raises(UpstreamError) as exc_info:
            await spotify.search_tracks("yesterday")
        assert exc_info.value.endpoint == "search"

    async def test_server_error_is_upstream_error(
        self, spotify: SpotifyClient, fake: FakeSpotify
    ) -> None:
        fake.api_queue = [httpx.Response(500)]

        with pytest.raises(UpstreamError) as exc_info:
            await spotify.search_tracks("yesterday")
        assert exc_info.value.status_code == 500
        assert len(fake.api_requests) == 1


class TestCatalogCalls:
    """Test the catalog operations end to end against the mock transport."""

    async def test_yesterday_search_keeps_only_the_original(
        self, spotify: SpotifyClient, fake: FakeSpotify
    ) -> None:
        fake.api_queue = [
            _tracks_page(
                _track("orig", "Yesterday"),
                _track("live", "Yesterday (Live)"),
                _track("remix", "Yesterday - Remix"),
            )
        ]

        songs = await spotify.search_tracks("Yesterday", limit=5)

        assert [song.id for song in songs] == ["orig"]

    async def test_search_limit_is_clamped_and_results_sliced(
        self, spotify: SpotifyClient, fake: FakeSpotify
    ) -> None:
        fake.api_queue = [
            _tracks_page(*(_track(f"t{i}", f"Yesterday {i}") for i in range(5)))
        ]

        songs = await spotify.search_tracks("yesterday", limit=100)

        assert fake.api_requests[0].url.params["limit"] == "50"
        assert fake.api_requests[0].url.params["type"] == "track"
        assert len(songs) == 5

        fake.api_queue = [
            _tracks_page(*(_track(f"t{i}", f"Yesterday {i}") for i in range(5)))
        ]
        assert len(await spotify.search_tracks("yesterday", limit=2)) == 2

    async def test_blank_query_rejected_without_calling_spotify(
        self, spotify: SpotifyClient, fake: FakeSpotify
    ) -> None:
        with pytest.raises(ValidationException):
            await spotify.search_tracks("   ")
        assert fake.token_calls == 0

    @pytest.mark.parametrize("limit", [0, -3])
    async def test_non_positive_limit_rejected(
        self, spotify: SpotifyClient, fake: FakeSpotify, limit: int
    ) -> None:
        with pytest.raises(ValidationException):
            await spotify.search_tracks("yesterday", limit=limit)
        assert fake.api_requests == []

    async def test_search_playlists_returns_shells(
        self, spotify: SpotifyClient, fake: FakeSpotify
    ) -> None:
        fake.api_queue = [
            httpx.Response(
                200,
                json={
                    "playlists": {
                        "items": [
                            {
                                "id": "pl1",
                                "name": "Rainy Jazz",
                                "description": "for rainy days",
                                "images": [{"url": "https://img/pl1.jpg"}],
                                "owner": {"id": "u1", "display_name": "Ann"},
                            },
                            None,
                        ]
                    }
                },
            )
        ]

        playlists = await spotify.search_playlists("jazz")

        assert len(playlists) == 1
        shell = playlists[0]
        assert shell.external_playlist_id == "pl1"
        assert shell.songs == []
        assert shell.created_by is not None and shell.created_by.full_name == "Ann"

    async def test_get_playlist_tracks_skips_episodes_and_null_tracks(
        self, spotify: SpotifyClient, fake: FakeSpotify
    ) -> None:
        fake.api_queue = [
            httpx.Response(
                200,
                json={
                    "items": [
                        {"added_at": "2024-01-02T03:04:05Z", "track": _track("t1", "Song A")},
                        {"added_at": None, "track": None},
                        {"track": {**_track("ep1", "Podcast"), "type": "episode"}},
                    ]
                },
            )
        ]

        songs = await spotify.get_playlist_tracks("pl1")

        assert [song.id for song in songs] == ["t1"]
        assert songs[0].added_at == datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)
        assert fake.api_requests[0].url.path == "/v1/playlists/pl1/tracks"

    async def test_get_user_avatar(self, spotify: SpotifyClient, fake: FakeSpotify) -> None:
        fake.api_queue = [httpx.Response(200, json={"images": [{"url": "https://img/u1"}]})]
        assert await spotify.get_user_avatar("u1") == "https://img/u1"

        fake.api_queue = [httpx.Response(200, json={"images": []})]
        assert await spotify.get_user_avatar("u2") is None


class TestNormalization:
    """Test Spotify JSON → entity conversion."""

    def test_duration_is_rounded_up_to_whole_seconds(self) -> None:
        assert ms_to_seconds(123_001) == 124
        assert ms_to_seconds(123_000) == 123
        assert ms_to_seconds(None) is None

    def test_track_to_song(self) -> None:
        song = track_to_song(_track("t1", "Yesterday", duration_ms=125_500))
        assert song is not None
        assert song.id == "t1"
        assert song.artist == "The Beatles"
        assert song.album_name == "Help!"
        assert song.duration == 126
        assert song.thumbnail == "https://img/t1.jpg"
        assert song.released_at == datetime(1965, 8, 6, tzinfo=UTC)
        assert song.url is None

    def test_year_precision_release_date(self) -> None:
        track = _track("t1", "Yesterday")
        track["album"]["release_date"] = "1965"
        song = track_to_song(track)
        assert song is not None and song.released_at == datetime(1965, 1, 1, tzinfo=UTC)

    @pytest.mark.parametrize(
        "track",
        [None, {"name": "No id"}, {"id": "x", "name": ""}, {"id": "x", "name": "E", "type": "episode"}],
    )
    def test_malformed_tracks_are_dropped(self, track: Any) -> None:
        assert track_to_song(track) is None

    def test_playlist_shell_defaults(self) -> None:
        shell = playlist_to_shell({"id": "pl9", "name": "  "})
        assert shell is not None
        assert shell.title == "Untitled Playlist"
        assert shell.created_by is not None
        assert shell.created_by.id == "unknown"
        assert shell.created_by.full_name == "Unknown User"
