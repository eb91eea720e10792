"""SQLAlchemy ORM models for Audion.

Hey future me - the data is DOCUMENT-shaped (it started life in a document store): a playlist
owns its songs and a creator stamp, embedded, not linked. So songs and created_by live in JSON
columns on the playlist row, and the user library is a JSON list of playlist ids. The only
relational bits are the indexed scalar columns we filter and sort on.

search_text / genre_tags are denormalized from the embedded songs on every write so the
list filters stay plain SQL LIKEs instead of JSON gymnastics per database.
"""

from datetime import UTC, datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import JSON, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from audion.domain.entities import MiniUser, Playlist, Song, User
from audion.domain.value_objects import DocumentId


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# SQLite doesn't keep tzinfo - attach UTC on the way out so comparisons never mix naive/aware.
def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def _dt_to_json(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def _dt_from_json(value: Any) -> datetime | None:
    if not value:
        return None
    return ensure_utc_aware(datetime.fromisoformat(str(value)))


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# =============================================================================
# Embedded documents (JSON ↔ entity)
# =============================================================================


def song_to_document(song: Song) -> dict[str, Any]:
    """Serialize a song for embedding in a playlist's JSON column."""
    return {
        "id": song.id,
        "title": song.title,
        "artist": song.artist,
        "album_name": song.album_name,
        "duration": song.duration,
        "thumbnail": song.thumbnail,
        "released_at": _dt_to_json(song.released_at),
        "genres": list(song.genres),
        "url": song.url,
        "youtube_video_id": song.youtube_video_id,
        "added_at": _dt_to_json(song.added_at),
        "created_at": _dt_to_json(song.created_at),
    }


def song_from_document(doc: dict[str, Any]) -> Song:
    """Deserialize an embedded song."""
    return Song(
        id=str(doc["id"]),
        title=doc["title"],
        artist=doc.get("artist") or "",
        album_name=doc.get("album_name") or "",
        duration=doc.get("duration"),
        thumbnail=doc.get("thumbnail"),
        released_at=_dt_from_json(doc.get("released_at")),
        genres=list(doc.get("genres") or []),
        url=doc.get("url"),
        youtube_video_id=doc.get("youtube_video_id"),
        added_at=_dt_from_json(doc.get("added_at")),
        created_at=_dt_from_json(doc.get("created_at")),
    )


def mini_user_to_document(mini_user: MiniUser | None) -> dict[str, Any] | None:
    if mini_user is None:
        return None
    return {"id": mini_user.id, "full_name": mini_user.full_name, "avatar": mini_user.avatar}


def mini_user_from_document(doc: dict[str, Any] | None) -> MiniUser | None:
    if not doc:
        return None
    return MiniUser(
        id=str(doc.get("id") or "unknown"),
        full_name=doc.get("full_name") or "Unknown User",
        avatar=doc.get("avatar"),
    )


def build_search_text(*parts: str | None) -> str:
    """Lower-cased haystack for case-insensitive substring search."""
    return "\n".join(part.lower() for part in parts if part)


def build_genre_tags(songs: list[Song]) -> str:
    """Pipe-delimited genre set, e.g. "|jazz|rock|" (so "|rock|" can't match "|rockabilly|")."""
    genres = sorted({genre.strip().lower() for song in songs for genre in song.genres if genre})
    return "|" + "|".join(genres) + "|" if genres else ""


# =============================================================================
# Tables
# =============================================================================


class SongModel(Base):
    """Standalone song collection (catalog imports and locally created songs)."""

    __tablename__ = "songs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(512), nullable=False, index=True)
    artist: Mapped[str] = mapped_column(String(512), nullable=False, default="", index=True)
    album_name: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    thumbnail: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    released_at: Mapped[datetime | None] = mapped_column(nullable=True)
    genres: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    youtube_video_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    added_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    @classmethod
    def from_entity(cls, song: Song) -> "SongModel":
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
            created_at=song.created_at or utc_now(),
        )

    def apply(self, song: Song) -> None:
        """Copy mutable fields from the entity (id and created_at never change)."""
        self.title = song.title
        self.artist = song.artist
        self.album_name = song.album_name
        self.duration = song.duration
        self.thumbnail = song.thumbnail
        self.released_at = song.released_at
        self.genres = list(song.genres)
        self.url = song.url
        self.youtube_video_id = song.youtube_video_id
        self.added_at = song.added_at

    def to_entity(self) -> Song:
        return Song(
            id=self.id,
            title=self.title,
            artist=self.artist,
            album_name=self.album_name,
            duration=self.duration,
            thumbnail=self.thumbnail,
            released_at=ensure_utc_aware(self.released_at),
            genres=list(self.genres or []),
            url=self.url,
            youtube_video_id=self.youtube_video_id,
            added_at=ensure_utc_aware(self.added_at),
            created_at=ensure_utc_aware(self.created_at),
        )


# Listen up, external_playlist_id is UNIQUE - that index is what makes add_many safe against
# two imports racing each other. NULLs don't collide, so local playlists are unaffected.
class PlaylistModel(Base):
    """Playlist document: scalar columns plus embedded songs and creator."""

    __tablename__ = "playlists"

    id: Mapped[str] = mapped_column(String(24), primary_key=True)
    title: Mapped[str] = mapped_column(String(512), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    thumbnail: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    created_by: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_by_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    songs: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    is_liked_songs: Mapped[bool] = mapped_column(
        sa.Boolean(), nullable=False, server_default="0", default=False
    )
    external_playlist_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True, index=True
    )
    search_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    genre_tags: Mapped[str] = mapped_column(Text, nullable=False, default="")

    @classmethod
    def from_entity(cls, playlist: Playlist, playlist_id: DocumentId) -> "PlaylistModel":
        model = cls(id=playlist_id.value)
        model.apply(playlist)
        return model

    def apply(self, playlist: Playlist) -> None:
        """Replace the document body from the entity and refresh the derived columns."""
        self.title = playlist.title
        self.description = playlist.description or ""
        self.thumbnail = playlist.thumbnail
        self.created_by = mini_user_to_document(playlist.created_by)
        self.created_by_id = playlist.created_by.id if playlist.created_by else None
        self.is_liked_songs = playlist.is_liked_songs
        self.external_playlist_id = playlist.external_playlist_id
        self.set_songs(playlist.songs)

    def set_songs(self, songs: list[Song]) -> None:
        # Always assign a NEW list - in-place mutation of a JSON column isn't tracked.
        self.songs = [song_to_document(song) for song in songs]
        self.search_text = build_search_text(
            self.title,
            self.description,
            *(part for song in songs for part in (song.title, song.artist, song.album_name)),
        )
        self.genre_tags = build_genre_tags(songs)

    def to_entity(self) -> Playlist:
        return Playlist(
            id=DocumentId(self.id),
            title=self.title,
            description=self.description or "",
            thumbnail=self.thumbnail,
            created_by=mini_user_from_document(self.created_by),
            songs=[song_from_document(doc) for doc in self.songs or []],
            is_liked_songs=bool(self.is_liked_songs),
            external_playlist_id=self.external_playlist_id,
        )


class UserModel(Base):
    """User account document."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(24), primary_key=True)
    username: Mapped[str] = mapped_column(String(128), nullable=False, unique=True, index=True)
    full_name: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True, index=True)
    avatar: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    is_admin: Mapped[bool] = mapped_column(
        sa.Boolean(), nullable=False, server_default="0", default=False
    )
    library_playlist_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    @classmethod
    def from_entity(cls, user: User, user_id: DocumentId) -> "UserModel":
        model = cls(id=user_id.value)
        model.apply(user)
        return model

    def apply(self, user: User) -> None:
        self.username = user.username
        self.full_name = user.full_name
        self.email = user.email
        self.avatar = user.avatar
        self.is_admin = user.is_admin
        self.library_playlist_ids = list(user.library_playlist_ids)

    def to_entity(self) -> User:
        return User(
            id=DocumentId(self.id),
            username=self.username,
            full_name=self.full_name,
            email=self.email,
            avatar=self.avatar,
            is_admin=bool(self.is_admin),
            library_playlist_ids=list(self.library_playlist_ids or []),
        )
