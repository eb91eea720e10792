"""Song enrichment orchestrator.

Hey future me - this decides, on EVERY song-detail access, whether YouTube needs to be called:
- song already has url AND duration → return it, zero external calls (memoized in storage)
- otherwise → enrich that one song, write url/video id/duration back in ONE update, return it
- enrichment failed → raise, and nothing was written (the song stays fully unenriched)

Clean Architecture: Service → Ports. No model or HTTP access here.
"""

import logging

from audion.domain.entities import Song
from audion.domain.exceptions import EntityNotFoundException
from audion.domain.ports import IPlaylistRepository, IVideoClient
from audion.domain.value_objects import PlaylistId
from audion.infrastructure.observability.logger_template import log_operation

logger = logging.getLogger(__name__)


class SongEnrichmentService:
    """Lazy, memoized per-song enrichment of playlist songs."""

    def __init__(
        self,
        playlist_repository: IPlaylistRepository,
        video_client: IVideoClient,
    ) -> None:
        self._playlists = playlist_repository
        self._videos = video_client

    async def get_full_song_details(self, playlist_id: PlaylistId, song_id: str) -> Song:
        """Return the song with video data, enriching and persisting it on first access.

        Raises:
            EntityNotFoundException: Unknown playlist, or song not in the playlist
            QuotaExhausted / UpstreamError / PartialEnrichmentFailure: Enrichment failed
        """
        playlist = await self._playlists.get_by_id(playlist_id)
        if playlist is None:
            raise EntityNotFoundException("Playlist", playlist_id.value)

        song = playlist.find_song(song_id)
        if song is None:
            raise EntityNotFoundException("Song", song_id)

        if song.is_enriched:
            logger.debug("Song %s already enriched, skipping video lookup", song_id)
            return song

        async with log_operation(
            logger, "enrichment.song_details", playlist_id=playlist_id.value, song_id=song_id
        ):
            enriched = await self._videos.enrich_song(song)
            return await self._playlists.set_song_enrichment(playlist_id, enriched)
