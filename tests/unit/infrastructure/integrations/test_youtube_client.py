"""Tests for the YouTube client: key rotation, batch enrichment and duration parsing."""

from collections.abc import AsyncIterator

import httpx
import pytest

from audion.config import YouTubeSettings
from audion.domain.entities import YOUTUBE_WATCH_URL, Song
from audion.domain.exceptions import (
    ConfigurationError,
    PartialEnrichmentFailure,
    QuotaExhausted,
    UpstreamError,
)
from audion.infrastructure.integrations.youtube_client import (
    ApiKeyPool,
    YouTubeClient,
    build_search_query,
    parse_iso8601_duration,
)


class FakeYouTube:
    """MockTransport handler serving `search` and `videos` from in-memory tables."""

    def __init__(self) -> None:
        self.dead_keys: set[str] = set()
        # search query → video id (missing query → empty result)
        self.videos_by_query: dict[str, str] = {}
        # video id → ISO-8601 duration
        self.durations: dict[str, str] = {}
        self.failing_queries: set[str] = set()
        # search query → raw JSON body served verbatim
        self.raw_search: dict[str, object] = {}
        self.extra_video_items: list[object] = []
        self.videos_status = 200
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        params = request.url.params
        if params["key"] in self.dead_keys:
            return httpx.Response(403, json={"error": {"reason": "quotaExceeded"}})

        if request.url.path.endswith("/search"):
            query = params["q"]
            if query in self.failing_queries:
                return httpx.Response(500)
            if query in self.raw_search:
                return httpx.Response(200, json=self.raw_search[query])
            video_id = self.videos_by_query.get(query)
            items = [{"id": {"kind": "youtube#video", "videoId": video_id}}] if video_id else []
            return httpx.Response(200, json={"items": items})

        if request.url.path.endswith("/videos"):
            if self.videos_status != 200:
                return httpx.Response(self.videos_status)
            ids = params["id"].split(",")
            items = [
                {"id": vid, "contentDetails": {"duration": self.durations[vid]}}
                for vid in ids
                if vid in self.durations
            ]
            items.extend(self.extra_video_items)
            return httpx.Response(200, json={"items": items})

        return httpx.Response(404)

    def keys_used(self, endpoint: str) -> list[str]:
        return [
            r.url.params["key"] for r in self.requests if r.url.path.endswith(f"/{endpoint}")
        ]

    def count(self, endpoint: str) -> int:
        return len(self.keys_used(endpoint))


def _song(song_id: str, title: str, artist: str = "The Beatles") -> Song:
    return Song(id=song_id, title=title, artist=artist)


@pytest.fixture
def fake() -> FakeYouTube:
    return FakeYouTube()


@pytest.fixture
async def http(fake: FakeYouTube) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake.handler)) as client:
        yield client


def _client(http: httpx.AsyncClient, keys: list[str]) -> YouTubeClient:
    return YouTubeClient(YouTubeSettings(api_keys=keys), client=http)


class TestDurationParsing:
    @pytest.mark.parametrize(
        ("raw", "seconds"),
        [
            ("PT4M13S", 253),
            ("PT1H2M3S", 3723),
            ("PT45S", 45),
            ("PT2H", 7200),
            ("P1DT1S", 86401),
            ("P0D", 0),
        ],
    )
    def test_valid_durations(self, raw: str, seconds: int) -> None:
        assert parse_iso8601_duration(raw) == seconds

    @pytest.mark.parametrize("raw", [None, "", "4:13", "PT", "P", "garbage"])
    def test_invalid_durations(self, raw: str | None) -> None:
        assert parse_iso8601_duration(raw) is None


class TestApiKeyPool:
    """Test the wrapping, compare-and-advance key cursor."""

    def test_rotate_wraps_around(self) -> None:
        pool = ApiKeyPool(["a", "b"])
        assert pool.rotate(0) == 1
        assert pool.rotate(1) == 0

    def test_stale_rotation_is_ignored(self) -> None:
        """Concurrent failures on the same key advance the cursor only once."""
        pool = ApiKeyPool(["a", "b", "c"])
        pool.rotate(0)
        pool.rotate(0)
        pool.rotate(0)
        assert pool.current() == (1, "b")

    def test_blank_keys_are_dropped(self) -> None:
        assert len(ApiKeyPool(["a", "", "b"])) == 2

    def test_empty_pool_is_a_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError):
            ApiKeyPool([]).current()


class TestKeyRotation:
    """Test 403 handling across the key pool."""

    async def test_rotates_to_next_key_on_403_and_keeps_cursor(
        self, http: httpx.AsyncClient, fake: FakeYouTube
    ) -> None:
        fake.dead_keys = {"key-0"}
        fake.videos_by_query = {
            "Yesterday The Beatles lyrics": "vid-1",
            "Help! The Beatles lyrics": "vid-2",
        }
        client = _client(http, ["key-0", "key-1"])

        assert await client.search_video(_song("s1", "Yesterday")) == "vid-1"
        assert fake.keys_used("search") == ["key-0", "key-1"]
        assert client.keys.cursor == 1

        # The next call starts from the key that worked.
        assert await client.search_video(_song("s2", "Help!")) == "vid-2"
        assert fake.keys_used("search") == ["key-0", "key-1", "key-1"]

    async def test_every_key_403_raises_quota_exhausted(
        self, http: httpx.AsyncClient, fake: FakeYouTube
    ) -> None:
        keys = ["key-0", "key-1", "key-2"]
        fake.dead_keys = set(keys)
        client = _client(http, keys)

        with pytest.raises(QuotaExhausted) as exc_info:
            await client.search_video(_song("s1", "Yesterday"))

        assert exc_info.value.attempts == 3
        assert fake.count("search") == 3
        assert sorted(fake.keys_used("search")) == keys

    async def test_empty_pool_fails_without_http(
        self, http: httpx.AsyncClient, fake: FakeYouTube
    ) -> None:
        client = _client(http, [])

        with pytest.raises(ConfigurationError):
            await client.search_video(_song("s1", "Yesterday"))
        with pytest.raises(ConfigurationError):
            await client.enrich_songs_with_youtube_data([_song("s1", "Yesterday")])
        assert fake.requests == []

    async def test_other_errors_are_upstream_errors(
        self, http: httpx.AsyncClient, fake: FakeYouTube
    ) -> None:
        fake.failing_queries = {"Yesterday The Beatles lyrics"}
        client = _client(http, ["key-0", "key-1"])

        with pytest.raises(UpstreamError) as exc_info:
            await client.search_video(_song("s1", "Yesterday"))
        assert not isinstance(exc_info.value, QuotaExhausted)
        assert exc_info.value.status_code == 500
        assert client.keys.cursor == 0


class TestSearch:
    def test_search_query_is_title_artist_lyrics(self) -> None:
        assert build_search_query(_song("s1", "Yesterday")) == "Yesterday The Beatles lyrics"
        assert build_search_query(_song("s2", "Intro", artist="")) == "Intro lyrics"

    async def test_search_parameters(self, http: httpx.AsyncClient, fake: FakeYouTube) -> None:
        client = _client(http, ["key-0"])
        await client.search_video(_song("s1", "Yesterday"))

        params = fake.requests[0].url.params
        assert params["part"] == "snippet"
        assert params["type"] == "video"
        assert params["maxResults"] == "1"
        assert params["order"] == "relevance"

    async def test_no_results_is_none(self, http: httpx.AsyncClient) -> None:
        client = _client(http, ["key-0"])
        assert await client.search_video(_song("s1", "Nothing Matches")) is None

    @pytest.mark.parametrize(
        "body", [{"items": [None]}, {"items": ["vid-1"]}, {"items": [{"id": "vid-1"}]}, []]
    )
    async def test_malformed_search_result_is_upstream_error(
        self, http: httpx.AsyncClient, fake: FakeYouTube, body: object
    ) -> None:
        fake.raw_search = {"Yesterday The Beatles lyrics": body}
        client = _client(http, ["key-0"])
        with pytest.raises(UpstreamError):
            await client.search_video(_song("s1", "Yesterday"))


class TestEnrichSong:
    """Test single-song enrichment, which raises instead of degrading."""

    async def test_enriches_all_three_fields(
        self, http: httpx.AsyncClient, fake: FakeYouTube
    ) -> None:
        fake.videos_by_query = {"Yesterday The Beatles lyrics": "vid-1"}
        fake.durations = {"vid-1": "PT2M5S"}
        client = _client(http, ["key-0"])

        song = await client.enrich_song(_song("s1", "Yesterday"))

        assert song.youtube_video_id == "vid-1"
        assert song.url == YOUTUBE_WATCH_URL.format(video_id="vid-1")
        assert song.duration == 125

    async def test_no_video_is_a_partial_failure(self, http: httpx.AsyncClient) -> None:
        client = _client(http, ["key-0"])
        with pytest.raises(PartialEnrichmentFailure) as exc_info:
            await client.enrich_song(_song("s1", "Yesterday"))
        assert exc_info.value.song_id == "s1"

    async def test_missing_duration_is_a_partial_failure(
        self, http: httpx.AsyncClient, fake: FakeYouTube
    ) -> None:
        fake.videos_by_query = {"Yesterday The Beatles lyrics": "vid-1"}
        client = _client(http, ["key-0"])
        with pytest.raises(PartialEnrichmentFailure):
            await client.enrich_song(_song("s1", "Yesterday"))


class TestBatchEnrichment:
    """Test enrich_songs_with_youtube_data."""

    async def test_preserves_order_and_isolates_failures(
        self, http: httpx.AsyncClient, fake: FakeYouTube
    ) -> None:
        fake.videos_by_query = {
            "A The Beatles lyrics": "vid-a",
            "C The Beatles lyrics": "vid-c",
            "D The Beatles lyrics": "vid-d",
        }
        fake.failing_queries = {"B The Beatles lyrics"}
        fake.durations = {"vid-a": "PT1M", "vid-c": "PT3M"}  # vid-d has no duration
        client = _client(http, ["key-0"])
        songs = [
            _song("a", "A"),
            _song("b", "B"),
            _song("c", "C").with_enrichment("stale", 999),
            _song("d", "D"),
        ]

        result = await client.enrich_songs_with_youtube_data(songs)

        assert [song.id for song in result] == ["a", "b", "c", "d"]
        assert (result[0].youtube_video_id, result[0].duration) == ("vid-a", 60)
        assert (result[2].youtube_video_id, result[2].duration) == ("vid-c", 180)
        for failed in (result[1], result[3]):
            assert (failed.url, failed.youtube_video_id, failed.duration) == (None, None, None)

    async def test_duration_lookups_are_batched_by_fifty(
        self, http: httpx.AsyncClient, fake: FakeYouTube
    ) -> None:
        songs = [_song(f"s{i}", f"Track {i}") for i in range(51)]
        fake.videos_by_query = {f"Track {i} The Beatles lyrics": f"vid-{i}" for i in range(51)}
        fake.durations = {f"vid-{i}": "PT3M30S" for i in range(51)}
        client = _client(http, ["key-0"])

        result = await client.enrich_songs_with_youtube_data(songs)

        assert fake.count("search") == 51
        assert fake.count("videos") == 2
        assert all(song.is_enriched and song.duration == 210 for song in result)

    async def test_failed_duration_chunk_degrades_songs(
        self, http: httpx.AsyncClient, fake: FakeYouTube
    ) -> None:
        fake.videos_by_query = {"A The Beatles lyrics": "vid-a"}
        fake.videos_status = 500
        client = _client(http, ["key-0"])

        result = await client.enrich_songs_with_youtube_data([_song("a", "A")])

        assert result[0].is_enriched is False
        assert result[0].youtube_video_id is None

    async def test_quota_exhaustion_degrades_instead_of_failing(
        self, http: httpx.AsyncClient, fake: FakeYouTube
    ) -> None:
        fake.dead_keys = {"key-0", "key-1"}
        client = _client(http, ["key-0", "key-1"])

        result = await client.enrich_songs_with_youtube_data([_song("a", "A"), _song("b", "B")])

        assert [song.is_enriched for song in result] == [False, False]

    async def test_empty_batch_makes_no_calls(
        self, http: httpx.AsyncClient, fake: FakeYouTube
    ) -> None:
        client = _client(http, ["key-0"])
        assert await client.enrich_songs_with_youtube_data([]) == []
        assert fake.requests == []

    async def test_malformed_search_result_fails_only_its_song(
        self, http: httpx.AsyncClient, fake: FakeYouTube
    ) -> None:
        fake.videos_by_query = {"Good The Beatles lyrics": "vid-good"}
        fake.raw_search = {"Bad The Beatles lyrics": {"items": [None]}}
        fake.durations = {"vid-good": "PT2M"}
        client = _client(http, ["key-0"])

        result = await client.enrich_songs_with_youtube_data(
            [_song("good", "Good"), _song("bad", "Bad")]
        )

        assert [song.id for song in result] == ["good", "bad"]
        assert (result[0].youtube_video_id, result[0].duration) == ("vid-good", 120)
        assert result[1].is_enriched is False

    async def test_malformed_video_items_are_skipped(
        self, http: httpx.AsyncClient, fake: FakeYouTube
    ) -> None:
        fake.videos_by_query = {"A The Beatles lyrics": "vid-a"}
        fake.durations = {"vid-a": "PT1M"}
        fake.extra_video_items = [None, "vid-x", {"id": "vid-y", "contentDetails": "PT1M"}]
        client = _client(http, ["key-0"])

        result = await client.enrich_songs_with_youtube_data([_song("a", "A")])

        assert (result[0].youtube_video_id, result[0].duration) == ("vid-a", 60)
