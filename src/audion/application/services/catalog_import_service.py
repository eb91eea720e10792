"""Catalog import: turn Spotify search results into stored playlists and songs.

Hey future me - the playlist import fans out a LOT:
  1 search → N playlist shells → N concurrent track fetches → M concurrent owner avatar fetches
A failing track fetch gives that playlist zero songs (and empty playlists are dropped); a failing
avatar fetch just leaves the avatar empty. Only the initial search failing fails the import.
Storage goes through add_many, so importing the same query twice stores nothing new.
"""

import asyncio
import logging
from dataclasses import replace

from audion.domain.entities import MiniUser, Playlist, Song
from audion.domain.exceptions import DomainException
from audion.domain.ports import ICatalogClient, IPlaylistRepository, ISongRepository
from audion.infrastructure.observability.logger_template import log_operation

logger = logging.getLogger(__name__)


class CatalogImportService:
    """Search the catalog and upsert what it finds."""

    def __init__(
        self,
        catalog: ICatalogClient,
        playlist_repository: IPlaylistRepository,
        song_repository: ISongRepository,
        tracks_per_playlist: int = 50,
    ) -> None:
        self._catalog = catalog
        self._playlists = playlist_repository
        self._songs = song_repository
        self._tracks_per_playlist = tracks_per_playlist

    async def search_tracks(self, query: str, limit: int = 5) -> list[Song]:
        """Search tracks (relevance-filtered by the catalog client) and upsert them."""
        async with log_operation(logger, "catalog.import_tracks", query=query, limit=limit):
            songs = await self._catalog.search_tracks(query, limit)
            return await self._songs.add_many(songs)

    async def search_playlists(self, query: str, limit: int = 50) -> list[Playlist]:
        """Search playlists, attach their tracks and owner avatars, and upsert them."""
        async with log_operation(logger, "catalog.import_playlists", query=query, limit=limit):
            shells = await self._catalog.search_playlists(query, limit)
            if not shells:
                return []

            track_lists = await asyncio.gather(
                *(self._tracks_or_empty(shell) for shell in shells)
            )
            playlists = [
                replace(shell, songs=songs)
                for shell, songs in zip(shells, track_lists, strict=True)
                if songs
            ]
            logger.debug(
                "Query %r: %d playlists found, %d with tracks", query, len(shells), len(playlists)
            )

            playlists = await self._with_owner_avatars(playlists)
            return await self._playlists.add_many(playlists)

    async def _tracks_or_empty(self, shell: Playlist) -> list[Song]:
        external_id = shell.external_playlist_id or ""
        try:
            return await self._catalog.get_playlist_tracks(
                external_id, self._tracks_per_playlist
            )
        except DomainException as e:
            logger.error(
                "Failed to fetch tracks for playlist %s (%s): %s", external_id, shell.title, e
            )
            return []

    async def _with_owner_avatars(self, playlists: list[Playlist]) -> list[Playlist]:
        owner_ids = list(
            dict.fromkeys(
                p.created_by.id
                for p in playlists
                if p.created_by is not None and p.created_by.id != "unknown"
            )
        )
        avatars = await asyncio.gather(*(self._avatar_or_none(uid) for uid in owner_ids))
        by_owner = dict(zip(owner_ids, avatars, strict=True))

        stamped: list[Playlist] = []
        for playlist in playlists:
            owner = playlist.created_by
            if owner is not None and by_owner.get(owner.id):
                owner = MiniUser(id=owner.id, full_name=owner.full_name, avatar=by_owner[owner.id])
            stamped.append(replace(playlist, created_by=owner))
        return stamped

    async def _avatar_or_none(self, user_id: str) -> str | None:
        try:
            return await self._catalog.get_user_avatar(user_id)
        except DomainException as e:
            logger.warning("Failed to fetch avatar for catalog user %s: %s", user_id, e)
            return None
