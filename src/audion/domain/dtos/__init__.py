"""Query objects passed from the API layer down to repositories."""

from dataclasses import dataclass, field
from enum import Enum

PAGE_SIZE = 50


class SortDirection(int, Enum):
    """Sort order, 1 ascending and -1 descending (Mongo-style)."""

    ASC = 1
    DESC = -1

    @classmethod
    def parse(cls, value: "str | int | None") -> "SortDirection":
        """Accept 1/-1 as well as asc/desc. Anything else is ascending."""
        if value is None:
            return cls.ASC
        normalized = str(value).strip().lower()
        if normalized in {"-1", "desc", "descending"}:
            return cls.DESC
        return cls.ASC


@dataclass(frozen=True)
class Page:
    """Zero-based page index. None means "no paging, return everything"."""

    index: int | None = None
    size: int = PAGE_SIZE

    @property
    def offset(self) -> int:
        return (self.index or 0) * self.size


@dataclass(frozen=True)
class SongFilter:
    """Filter for the song collection.

    search matches title, artist or album name. artist narrows further and is
    ANDed with search. Both are case-insensitive substring matches.
    """

    search: str | None = None
    artist: str | None = None
    sort_by: str | None = None
    sort_dir: SortDirection = SortDirection.ASC
    page: Page = field(default_factory=Page)


@dataclass(frozen=True)
class PlaylistFilter:
    """Filter for the playlist collection.

    search matches the playlist title/description and the title, artist or
    album of any embedded song. genre matches any embedded song's genres.
    """

    search: str | None = None
    user_id: str | None = None
    is_liked_songs: bool | None = None
    genre: str | None = None
    playlist_ids: list[str] | None = None
    sort_by: str | None = None
    sort_dir: SortDirection = SortDirection.ASC
    page: Page = field(default_factory=Page)


@dataclass(frozen=True)
class UserFilter:
    """Filter for users. search matches username or full name."""

    search: str | None = None
    page: Page = field(default_factory=Page)


__all__ = [
    "PAGE_SIZE",
    "Page",
    "PlaylistFilter",
    "SongFilter",
    "SortDirection",
    "UserFilter",
]
