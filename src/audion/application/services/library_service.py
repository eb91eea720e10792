"""User library: the ordered list of playlists a user keeps."""

import logging

from audion.domain.dtos import PlaylistFilter
from audion.domain.entities import Playlist, User
from audion.domain.exceptions import EntityNotFoundException
from audion.domain.ports import IPlaylistRepository, IUserRepository
from audion.domain.value_objects import PlaylistId, UserId

logger = logging.getLogger(__name__)


class LibraryService:
    """Add, remove and list the playlists in a user's library."""

    def __init__(
        self,
        user_repository: IUserRepository,
        playlist_repository: IPlaylistRepository,
    ) -> None:
        self._users = user_repository
        self._playlists = playlist_repository

    async def add_playlist(self, user_id: UserId, playlist_id: PlaylistId) -> User:
        # Only real playlists go into a library - dangling ids would 404 later on every read.
        if await self._playlists.get_by_id(playlist_id) is None:
            raise EntityNotFoundException("Playlist", playlist_id.value)
        user = await self._users.add_to_library(user_id, playlist_id)
        logger.info("Added playlist %s to library of user %s", playlist_id, user_id)
        return user

    async def remove_playlist(self, user_id: UserId, playlist_id: PlaylistId) -> User:
        user = await self._users.remove_from_library(user_id, playlist_id)
        logger.info("Removed playlist %s from library of user %s", playlist_id, user_id)
        return user

    async def get_library_playlists(self, user_id: UserId) -> list[Playlist]:
        """Library playlists in library order. Deleted playlists are skipped."""
        user = await self._users.get_by_id(user_id)
        if user is None:
            raise EntityNotFoundException("User", user_id.value)
        if not user.library_playlist_ids:
            return []
        found = await self._playlists.query(
            PlaylistFilter(playlist_ids=list(user.library_playlist_ids))
        )
        by_id = {str(p.id): p for p in found}
        return [by_id[pid] for pid in user.library_playlist_ids if pid in by_id]
