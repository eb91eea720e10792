"""API schemas for playlists."""

from datetime import datetime

from pydantic import Field

from audion.api.schemas.base import CamelModel
from audion.api.schemas.songs import SongCreate, SongResponse
from audion.domain.entities import MiniUser, Playlist


class MiniUserSchema(CamelModel):
    """Creator stamp embedded in a playlist."""

    id: str = Field(..., alias="_id")
    full_name: str
    avatar: str | None = None

    @classmethod
    def from_entity(cls, mini_user: MiniUser) -> "MiniUserSchema":
        return cls(id=mini_user.id, full_name=mini_user.full_name, avatar=mini_user.avatar)

    def to_entity(self) -> MiniUser:
        return MiniUser(id=self.id, full_name=self.full_name, avatar=self.avatar)


class PlaylistResponse(CamelModel):
    """Playlist as returned by the API, songs embedded in play order."""

    id: str = Field(..., alias="_id")
    title: str
    description: str = ""
    thumbnail: str | None = None
    created_by: MiniUserSchema | None = None
    created_at: datetime | None = Field(default=None, description="Read from the id")
    songs: list[SongResponse] = Field(default_factory=list)
    is_liked_songs: bool = False
    external_playlist_id: str | None = None

    @classmethod
    def from_entity(cls, playlist: Playlist) -> "PlaylistResponse":
        """Build response from a Playlist entity."""
        return cls(
            id=str(playlist.id) if playlist.id else "",
            title=playlist.title,
            description=playlist.description,
            thumbnail=playlist.thumbnail,
            created_by=(
                MiniUserSchema.from_entity(playlist.created_by) if playlist.created_by else None
            ),
            created_at=playlist.created_at,
            songs=[SongResponse.from_entity(song) for song in playlist.songs],
            is_liked_songs=playlist.is_liked_songs,
            external_playlist_id=playlist.external_playlist_id,
        )


# Hey future me - there's no login in this service, so the creator is named explicitly:
# createdById is looked up and stamped as a mini user. Without it the playlist has no creator.
class PlaylistCreate(CamelModel):
    """Request schema for creating a playlist."""

    title: str = Field(..., min_length=1)
    description: str = ""
    thumbnail: str | None = None
    created_by_id: str | None = Field(default=None, description="Id of the creating user")
    songs: list[SongCreate] = Field(default_factory=list)
    is_liked_songs: bool = False
    external_playlist_id: str | None = None

    def to_entity(self, created_by: MiniUser | None = None) -> Playlist:
        """Convert to an unsaved Playlist entity."""
        return Playlist(
            title=self.title,
            description=self.description,
            thumbnail=self.thumbnail,
            created_by=created_by,
            songs=[song.to_entity() for song in self.songs],
            is_liked_songs=self.is_liked_songs,
            external_playlist_id=self.external_playlist_id,
        )


class PlaylistUpdate(CamelModel):
    """Partial playlist update. Songs are edited through the song sub-resource."""

    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    thumbnail: str | None = None
    is_liked_songs: bool | None = None
