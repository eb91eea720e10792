"""API schemas for songs."""

from dataclasses import replace
from datetime import datetime

from pydantic import Field

from audion.api.schemas.base import CamelModel
from audion.domain.entities import Song
from audion.domain.exceptions import ValidationException
from audion.domain.value_objects import DocumentId


class SongResponse(CamelModel):
    """Song as returned by the API."""

    id: str = Field(..., alias="_id", description="Catalog id or generated id")
    title: str
    artist: str = ""
    album_name: str = ""
    duration: int | None = Field(default=None, description="Duration in seconds")
    thumbnail: str | None = None
    released_at: datetime | None = None
    genres: list[str] = Field(default_factory=list)
    url: str | None = Field(default=None, description="Playable video URL once enriched")
    youtube_video_id: str | None = None
    added_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_entity(cls, song: Song) -> "SongResponse":
        """Build response from a Song entity."""
        return cls(
            id=song.id,
            title=song.title,
            artist=song.artist,
            album_name=song.album_name,
            duration=song.duration,
            thumbnail=song.thumbnail,
            released_at=song.released_at,
            genres=list(song.genres),
            url=song.url,
            youtube_video_id=song.youtube_video_id,
            added_at=song.added_at,
            created_at=song.created_at,
        )


class SongCreate(CamelModel):
    """Request schema for creating a song (standalone or inside a playlist)."""

    id: str | None = Field(
        default=None, alias="_id", description="Catalog id; generated when omitted"
    )
    title: str = Field(..., min_length=1)
    artist: str = ""
    album_name: str = ""
    duration: int | None = Field(default=None, ge=0)
    thumbnail: str | None = None
    released_at: datetime | None = None
    genres: list[str] = Field(default_factory=list)
    youtube_video_id: str | None = Field(
        default=None, description="Known video id; requires duration"
    )
    added_at: datetime | None = None

    def to_entity(self) -> Song:
        """Convert to a Song entity. Video fields are only set together."""
        song = Song(
            id=self.id or DocumentId.generate().value,
            title=self.title,
            artist=self.artist,
            album_name=self.album_name,
            duration=self.duration,
            thumbnail=self.thumbnail,
            released_at=self.released_at,
            genres=list(self.genres),
            added_at=self.added_at,
        )
        if self.youtube_video_id:
            if self.duration is None:
                raise ValidationException("youtubeVideoId requires duration")
            song = song.with_enrichment(self.youtube_video_id, self.duration)
        return song


class SongUpdate(CamelModel):
    """Partial song update. Video fields are owned by enrichment and not editable."""

    title: str | None = Field(default=None, min_length=1)
    artist: str | None = None
    album_name: str | None = None
    duration: int | None = Field(default=None, ge=0)
    thumbnail: str | None = None
    released_at: datetime | None = None
    genres: list[str] | None = None

    def apply_to(self, song: Song) -> Song:
        """Return a copy of the song with the fields that were sent."""
        changes = self.model_dump(exclude_unset=True, exclude_none=True)
        return replace(song, **changes)
