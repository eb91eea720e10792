"""Domain entities."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from audion.domain.value_objects import DocumentId

YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"


# Hey future me, "enriched" used to be an implicit `url and duration` check scattered around,
# which broke for zero-length durations (0 is falsy!). Now it's an explicit state derived with
# `is not None` checks. ENRICHED means url AND duration are both present - nothing else counts.
class EnrichmentState(str, Enum):
    """Whether a song carries playable video data."""

    UNENRICHED = "unenriched"
    ENRICHED = "enriched"


@dataclass
class Song:
    """Song entity.

    The id is the Spotify catalog id for imported songs, or a generated id for
    songs created locally. duration is integer seconds.
    """

    id: str
    title: str
    artist: str = ""
    album_name: str = ""
    duration: int | None = None
    thumbnail: str | None = None
    released_at: datetime | None = None
    genres: list[str] = field(default_factory=list)
    url: str | None = None
    youtube_video_id: str | None = None
    added_at: datetime | None = None
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        """Validate song data."""
        if not self.id or not str(self.id).strip():
            raise ValueError("Song id cannot be empty")
        if not self.title or not self.title.strip():
            raise ValueError("Song title cannot be empty")
        if self.duration is not None and self.duration < 0:
            raise ValueError("Duration cannot be negative")

    @property
    def enrichment_state(self) -> EnrichmentState:
        """Derived enrichment state."""
        if self.url is not None and self.duration is not None:
            return EnrichmentState.ENRICHED
        return EnrichmentState.UNENRICHED

    @property
    def is_enriched(self) -> bool:
        """Check if the song is fully enriched."""
        return self.enrichment_state is EnrichmentState.ENRICHED

    # Listen, the three video fields only ever move TOGETHER. These two transitions return a
    # copy so a failure halfway through enrichment can never leave a half-set record behind.
    def with_enrichment(self, youtube_video_id: str, duration: int) -> "Song":
        """Return a copy carrying video url, video id and duration."""
        if not youtube_video_id:
            raise ValueError("Video id cannot be empty")
        if duration < 0:
            raise ValueError("Duration cannot be negative")
        return replace(
            self,
            url=YOUTUBE_WATCH_URL.format(video_id=youtube_video_id),
            youtube_video_id=youtube_video_id,
            duration=duration,
        )

    def without_enrichment(self) -> "Song":
        """Return a copy with all video fields cleared."""
        return replace(self, url=None, youtube_video_id=None, duration=None)


@dataclass(frozen=True)
class MiniUser:
    """Denormalized creator stamp embedded in playlists."""

    id: str
    full_name: str
    avatar: str | None = None


@dataclass
class Playlist:
    """Playlist entity - an ordered collection of embedded songs.

    id is None until the playlist is stored. created_at is read from the id.
    """

    title: str
    id: DocumentId | None = None
    description: str = ""
    thumbnail: str | None = None
    created_by: MiniUser | None = None
    songs: list[Song] = field(default_factory=list)
    is_liked_songs: bool = False
    external_playlist_id: str | None = None

    def __post_init__(self) -> None:
        """Validate playlist data."""
        if not self.title or not self.title.strip():
            raise ValueError("Playlist title cannot be empty")

    @property
    def created_at(self) -> datetime | None:
        """Creation time embedded in the id."""
        return self.id.generated_at if self.id else None

    def find_song(self, song_id: str) -> Song | None:
        """Find an embedded song by id."""
        return next((song for song in self.songs if song.id == song_id), None)

    def add_song(self, song: Song) -> None:
        """Append a song at the end of the play order."""
        self.songs.append(song)

    def remove_song(self, song_id: str) -> bool:
        """Remove every embedded song with the given id."""
        remaining = [song for song in self.songs if song.id != song_id]
        removed = len(remaining) != len(self.songs)
        self.songs = remaining
        return removed

    def song_count(self) -> int:
        """Get the number of songs in the playlist."""
        return len(self.songs)


@dataclass
class User:
    """User account (no credentials - auth lives outside this service)."""

    username: str
    full_name: str
    email: str
    id: DocumentId | None = None
    avatar: str | None = None
    is_admin: bool = False
    library_playlist_ids: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Normalize and validate user data."""
        if not self.username or not self.username.strip():
            raise ValueError("Username cannot be empty")
        if not self.email or "@" not in self.email:
            raise ValueError("Email is invalid")
        self.username = self.username.strip().lower()
        self.email = self.email.strip().lower()

    @property
    def created_at(self) -> datetime | None:
        """Creation time embedded in the id."""
        return self.id.generated_at if self.id else None

    def to_mini_user(self) -> MiniUser:
        """Project the user onto the embedded creator stamp."""
        return MiniUser(
            id=str(self.id) if self.id else "",
            full_name=self.full_name,
            avatar=self.avatar,
        )


__all__ = [
    "YOUTUBE_WATCH_URL",
    "EnrichmentState",
    "MiniUser",
    "Playlist",
    "Song",
    "User",
]
