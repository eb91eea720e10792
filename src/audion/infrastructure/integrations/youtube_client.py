"""YouTube Data API v3 client used to attach playable videos to songs.

Hey future me - every YouTube key has a small daily quota (a search costs 100 units!), so we
run a POOL of keys. A 403 means "this key is out of quota": rotate to the next key and retry
the same request, at most once per key. When every key has answered 403 → QuotaExhausted.

Enrichment is two-phase:
1. one `search` per song, all in flight at once (asyncio.gather keeps input order)
2. one `videos` call per ≤50 resolved ids for contentDetails.duration (ISO-8601)
Phase 2 needs every id from phase 1, so it only starts after the gather joins.
"""

import asyncio
import logging
import re
from typing import Any

import httpx

from audion.config import HttpSettings, YouTubeSettings
from audion.domain.entities import Song
from audion.domain.exceptions import (
    ConfigurationError,
    DomainException,
    PartialEnrichmentFailure,
    QuotaExhausted,
    UpstreamError,
)
from audion.domain.ports import IVideoClient
from audion.infrastructure.integrations.http_pool import HttpClientPool
from audion.infrastructure.retry import RetryPolicy, on_status

logger = logging.getLogger(__name__)

BASE_URL = "https://www.googleapis.com/youtube/v3"
VIDEO_ID_BATCH_SIZE = 50

_ISO8601_DURATION = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)


def parse_iso8601_duration(value: str | None) -> int | None:
    """Parse a YouTube duration like PT1H23M45S into whole seconds.

    Returns None for missing or unparseable values. "P0D" (live streams) is 0.
    """
    if not value:
        return None
    match = _ISO8601_DURATION.match(value.strip())
    if not match or not any(match.groupdict().values()):
        return None
    parts = {name: int(amount or 0) for name, amount in match.groupdict().items()}
    return (
        parts["days"] * 86400
        + parts["hours"] * 3600
        + parts["minutes"] * 60
        + parts["seconds"]
    )


def build_search_query(song: Song) -> str:
    return " ".join(part for part in (song.title, song.artist, "lyrics") if part)


def _response_items(data: Any, endpoint: str) -> list[Any]:
    """The `items` list of a YouTube response; a payload of any other shape is an upstream fault."""
    items = data.get("items") if isinstance(data, dict) else None
    if items is None and isinstance(data, dict):
        return []
    if not isinstance(items, list):
        raise UpstreamError(
            "YouTube returned a malformed response", service="youtube", endpoint=endpoint
        )
    return items


# Hey future me - rotation is COMPARE-AND-ADVANCE. Ten concurrent searches can all hit 403 on
# key 0 at the same moment; if each of them blindly did cursor += 1 we'd skip keys 1..9 and
# burn the whole pool on one bad key. rotate(from_index) only moves the cursor if it still
# points at the key that failed, so the first caller advances and the rest just retry on the
# new key. No await between the check and the update, so it's atomic under asyncio.
class ApiKeyPool:
    """Ordered API keys with a wrapping cursor that persists across calls."""

    def __init__(self, keys: list[str]) -> None:
        self._keys = [key for key in keys if key]
        self._cursor = 0

    def __len__(self) -> int:
        return len(self._keys)

    @property
    def cursor(self) -> int:
        return self._cursor

    def current(self) -> tuple[int, str]:
        if not self._keys:
            raise ConfigurationError(
                "No YouTube API keys configured. "
                'Set YOUTUBE_API_KEYS=["API_KEY_1","API_KEY_2",...]'
            )
        return self._cursor, self._keys[self._cursor]

    def rotate(self, from_index: int) -> int:
        """Advance past `from_index` if the cursor still points at it."""
        if self._keys and self._cursor == from_index:
            self._cursor = (from_index + 1) % len(self._keys)
            logger.info(
                "Rotated to YouTube API key %d/%d", self._cursor + 1, len(self._keys)
            )
        return self._cursor


class YouTubeClient(IVideoClient):
    """HTTP client for YouTube search and video details."""

    def __init__(
        self,
        settings: YouTubeSettings,
        http_settings: HttpSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self._http_settings = http_settings
        self._client = client
        self.keys = ApiKeyPool(settings.api_keys)
        if not len(self.keys):
            logger.error(
                "No YouTube API keys found. Set YOUTUBE_API_KEYS to a JSON array of keys"
            )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = await HttpClientPool.get_client(self._http_settings)
        return self._client

    async def close(self) -> None:
        """Nothing to release. The HTTP client belongs to the pool (or the caller)."""

    async def _get(self, endpoint: str, params: dict[str, Any]) -> Any:
        # Raises ConfigurationError up front when the pool is empty.
        self.keys.current()
        client = await self._get_client()
        url = f"{BASE_URL}/{endpoint}"
        used_index = self.keys.cursor

        async def send() -> httpx.Response:
            nonlocal used_index
            used_index, key = self.keys.current()
            return await client.get(url, params={**params, "key": key})

        async def rotate_key(_response: httpx.Response | None, _attempt: int) -> None:
            logger.warning(
                "YouTube API quota exceeded for key %d/%d, rotating to next key",
                used_index + 1,
                len(self.keys),
            )
            self.keys.rotate(used_index)

        quota_policy = RetryPolicy(
            name="youtube.quota",
            max_attempts=len(self.keys),
            retryable_status=on_status(403),
            before_retry=rotate_key,
            give_up=lambda _resp, _err, attempts: QuotaExhausted(
                f"All {attempts} YouTube API keys are out of quota",
                attempts=attempts,
                endpoint=endpoint,
            ),
        )

        log_params = {k: v for k, v in params.items() if k != "key"}
        try:
            response = await quota_policy.execute(send)
        except QuotaExhausted:
            logger.error(
                "YouTube quota exhausted on every key",
                extra={"endpoint": endpoint, "params": log_params, "status": 403},
            )
            raise
        except httpx.TransportError as e:
            logger.error(
                "YouTube request failed: %s",
                e,
                extra={"endpoint": endpoint, "params": log_params},
            )
            raise UpstreamError(
                f"YouTube unreachable: {e}", service="youtube", endpoint=endpoint
            ) from e

        if not response.is_success:
            logger.error(
                "YouTube request failed with HTTP %d",
                response.status_code,
                extra={
                    "endpoint": endpoint,
                    "params": log_params,
                    "status": response.status_code,
                },
            )
            raise UpstreamError(
                f"YouTube API error: HTTP {response.status_code}",
                service="youtube",
                endpoint=endpoint,
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(
                "YouTube returned invalid JSON",
                service="youtube",
                endpoint=endpoint,
                status_code=response.status_code,
            ) from e

    async def search_video(self, song: Song) -> str | None:
        """Top relevance-ranked video id for a song, or None if nothing was found."""
        query = build_search_query(song)
        data = await self._get(
            "search",
            {
                "part": "snippet",
                "q": query,
                "type": "video",
                "maxResults": 1,
                "order": "relevance",
            },
        )
        items = _response_items(data, "search")
        if not items:
            logger.warning("No YouTube results found for %r", query)
            return None
        top = items[0]
        ref = top.get("id") if isinstance(top, dict) else None
        if not isinstance(ref, dict):
            raise UpstreamError(
                f"YouTube returned a malformed search result for {query!r}",
                service="youtube",
                endpoint="search",
            )
        video_id = ref.get("videoId")
        return str(video_id) if video_id else None

    async def get_video_durations(self, video_ids: list[str]) -> dict[str, int]:
        """Durations in seconds keyed by video id. One `videos` call per ≤50 ids.

        Videos whose duration can't be parsed are left out of the result.
        """
        unique_ids = list(dict.fromkeys(video_ids))
        durations: dict[str, int] = {}
        for start in range(0, len(unique_ids), VIDEO_ID_BATCH_SIZE):
            chunk = unique_ids[start : start + VIDEO_ID_BATCH_SIZE]
            durations.update(await self._fetch_duration_chunk(chunk))
        return durations

    async def _fetch_duration_chunk(self, chunk: list[str]) -> dict[str, int]:
        data = await self._get("videos", {"part": "contentDetails", "id": ",".join(chunk)})
        durations: dict[str, int] = {}
        for item in _response_items(data, "videos"):
            if not isinstance(item, dict):
                logger.warning("Skipping malformed YouTube video item %r", item)
                continue
            details = item.get("contentDetails")
            raw = details.get("duration") if isinstance(details, dict) else None
            seconds = parse_iso8601_duration(raw)
            if item.get("id") and seconds is not None:
                durations[str(item["id"])] = seconds
            else:
                logger.warning("Unparseable YouTube duration %r for video %s", raw, item.get("id"))
        return durations

    async def enrich_song(self, song: Song) -> Song:
        """Enrich a single song, raising instead of degrading.

        Raises:
            ConfigurationError: If the key pool is empty
            QuotaExhausted: If every key answered 403
            UpstreamError: If YouTube failed otherwise
            PartialEnrichmentFailure: If no video or no duration was found
        """
        video_id = await self.search_video(song)
        if video_id is None:
            raise PartialEnrichmentFailure(song.id, "no matching video found")

        durations = await self.get_video_durations([video_id])
        duration = durations.get(video_id)
        if duration is None:
            raise PartialEnrichmentFailure(song.id, f"no duration for video {video_id}")

        return song.with_enrichment(video_id, duration)

    async def enrich_songs_with_youtube_data(self, songs: list[Song]) -> list[Song]:
        """Enrich a batch of songs. Same length and order as the input.

        Each song comes back with url, youtube_video_id and duration all set, or all
        None when its own lookup failed. One song's failure never fails the batch.
        """
        if not songs:
            return []
        # An empty pool is a configuration problem, not a per-song failure.
        self.keys.current()

        video_ids = await asyncio.gather(*(self._search_isolated(song) for song in songs))

        durations: dict[str, int] = {}
        resolved = [video_id for video_id in video_ids if video_id]
        unique_ids = list(dict.fromkeys(resolved))
        for start in range(0, len(unique_ids), VIDEO_ID_BATCH_SIZE):
            chunk = unique_ids[start : start + VIDEO_ID_BATCH_SIZE]
            try:
                durations.update(await self._fetch_duration_chunk(chunk))
            except DomainException as e:
                logger.error(
                    "Failed to fetch YouTube durations for %d videos: %s", len(chunk), e
                )

        enriched: list[Song] = []
        for song, video_id in zip(songs, video_ids, strict=True):
            duration = durations.get(video_id) if video_id else None
            if video_id and duration is not None:
                enriched.append(song.with_enrichment(video_id, duration))
                continue
            if video_id:
                _log_partial_failure(
                    PartialEnrichmentFailure(song.id, f"no duration for video {video_id}")
                )
            enriched.append(song.without_enrichment())

        logger.info(
            "YouTube enrichment: %d/%d songs enriched",
            sum(1 for song in enriched if song.is_enriched),
            len(songs),
        )
        return enriched

    async def _search_isolated(self, song: Song) -> str | None:
        try:
            video_id = await self.search_video(song)
        except DomainException as e:
            _log_partial_failure(PartialEnrichmentFailure(song.id, str(e)))
            return None
        if video_id is None:
            _log_partial_failure(PartialEnrichmentFailure(song.id, "no matching video found"))
        return video_id

    async def __aenter__(self) -> "YouTubeClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


def _log_partial_failure(failure: PartialEnrichmentFailure) -> None:
    logger.warning(
        "%s",
        failure.message,
        extra={"song_id": failure.song_id, "reason": failure.reason},
    )
