"""Domain ports (interfaces) for dependency inversion."""

from abc import ABC, abstractmethod

from audion.domain.dtos import PlaylistFilter, SongFilter, UserFilter
from audion.domain.entities import Playlist, Song, User
from audion.domain.value_objects import PlaylistId, UserId


class ISongRepository(ABC):
    """Repository interface for the song collection."""

    @abstractmethod
    async def query(self, filter_by: SongFilter) -> list[Song]:
        """List songs matching a filter."""

    @abstractmethod
    async def get_by_id(self, song_id: str) -> Song | None:
        """Get a song by ID."""

    @abstractmethod
    async def add(self, song: Song) -> Song:
        """Add a new song."""

    @abstractmethod
    async def add_many(self, songs: list[Song]) -> list[Song]:
        """Insert songs whose ID is not stored yet; return stored records in input order."""

    @abstractmethod
    async def update(self, song: Song) -> Song:
        """Update an existing song."""

    @abstractmethod
    async def delete(self, song_id: str) -> None:
        """Delete a song."""


class IPlaylistRepository(ABC):
    """Repository interface for Playlist documents (songs embedded)."""

    @abstractmethod
    async def query(self, filter_by: PlaylistFilter) -> list[Playlist]:
        """List playlists matching a filter."""

    @abstractmethod
    async def get_by_id(self, playlist_id: PlaylistId) -> Playlist | None:
        """Get a playlist by ID."""

    @abstractmethod
    async def get_by_external_id(self, external_playlist_id: str) -> Playlist | None:
        """Get a playlist by its catalog (Spotify) ID."""

    @abstractmethod
    async def add(self, playlist: Playlist) -> Playlist:
        """Add a new playlist. Returns it with its generated ID."""

    @abstractmethod
    async def add_many(self, playlists: list[Playlist]) -> list[Playlist]:
        """Upsert by external playlist ID. Idempotent."""

    @abstractmethod
    async def update(self, playlist: Playlist) -> Playlist:
        """Replace an existing playlist document."""

    @abstractmethod
    async def delete(self, playlist_id: PlaylistId) -> None:
        """Delete a playlist."""

    @abstractmethod
    async def add_song(self, playlist_id: PlaylistId, song: Song) -> Playlist:
        """Append a song to the embedded song list."""

    @abstractmethod
    async def remove_song(self, playlist_id: PlaylistId, song_id: str) -> Playlist:
        """Remove a song from the embedded song list."""

    @abstractmethod
    async def set_song_enrichment(self, playlist_id: PlaylistId, enriched: Song) -> Song:
        """Copy url, video id and duration of `enriched` onto the embedded song, in one update."""


class IUserRepository(ABC):
    """Repository interface for users."""

    @abstractmethod
    async def query(self, filter_by: UserFilter) -> list[User]:
        """List users matching a filter."""

    @abstractmethod
    async def get_by_id(self, user_id: UserId) -> User | None:
        """Get a user by ID."""

    @abstractmethod
    async def get_by_username(self, username: str) -> User | None:
        """Get a user by (case-insensitive) username."""

    @abstractmethod
    async def add(self, user: User) -> User:
        """Add a new user (unique username and email)."""

    @abstractmethod
    async def update(self, user: User) -> User:
        """Update an existing user."""

    @abstractmethod
    async def delete(self, user_id: UserId) -> None:
        """Delete a user."""

    @abstractmethod
    async def add_to_library(self, user_id: UserId, playlist_id: PlaylistId) -> User:
        """Add a playlist to the user's library (no duplicates)."""

    @abstractmethod
    async def remove_from_library(self, user_id: UserId, playlist_id: PlaylistId) -> User:
        """Remove a playlist from the user's library."""


class ICatalogClient(ABC):
    """Port for the external music catalog (Spotify)."""

    @abstractmethod
    async def search_tracks(self, query: str, limit: int = 5) -> list[Song]:
        """Search tracks; results have passed the relevance filter."""

    @abstractmethod
    async def search_playlists(self, query: str, limit: int = 50) -> list[Playlist]:
        """Search playlists; returns shells without songs."""

    @abstractmethod
    async def get_playlist_tracks(
        self, external_playlist_id: str, limit: int = 50
    ) -> list[Song]:
        """Fetch the songs of one catalog playlist."""

    @abstractmethod
    async def get_user_avatar(self, user_id: str) -> str | None:
        """First profile image URL of a catalog user."""


class IVideoClient(ABC):
    """Port for the video service (YouTube)."""

    @abstractmethod
    async def enrich_song(self, song: Song) -> Song:
        """Enrich one song or raise."""

    @abstractmethod
    async def enrich_songs_with_youtube_data(self, songs: list[Song]) -> list[Song]:
        """Enrich a batch; per-song failures leave that song's video fields null."""


__all__ = [
    "ICatalogClient",
    "IPlaylistRepository",
    "ISongRepository",
    "IUserRepository",
    "IVideoClient",
]
