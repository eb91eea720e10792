"""Relevance filtering for catalog search results.

Hey future me - catalog search for "Yesterday" returns the original plus a pile of noise:
"Yesterday (Live)", "Yesterday - Remix", karaoke versions, "Greatest Hits" reissues...
This module decides which of those are worth turning into songs.

A song is KEPT when all three hold:
1. the query (literal text, case-insensitive) appears in its title, artist or album name
2. its title doesn't look like a low-value variant (remix, edit, cover, live ...)
3. its album name doesn't look like a compilation or reissue (best of, deluxe ...)

The patterns are data, not code: pass a different RelevancePatterns to tune them.
filter_relevant_songs is pure - same input, same output, and filtering twice is a no-op.

Usage:
    from audion.domain.value_objects.relevance import filter_relevant_songs

    songs = filter_relevant_songs(songs, "yesterday")
"""

import re
from dataclasses import dataclass

from audion.domain.entities import Song

# "Song - Live", "Song - Live at Wembley", plus the variant keywords as whole words.
DEFAULT_TITLE_EXCLUSION = (
    r"\b(remix|edit|version|karaoke|instrumental|cover)\b"
    r"|\s-\s*live\b"
    r"|[(\[]\s*live\b[^)\]]*[)\]]\s*$"
)

DEFAULT_ALBUM_EXCLUSION = (
    r"\b(greatest hits|best of|mix|remix|collection|playlist|live|remastered|remaster"
    r"|soundtrack|highlights from|anniversary|deluxe)\b"
)


@dataclass(frozen=True)
class RelevancePatterns:
    """Exclusion patterns applied to titles and album names (case-insensitive)."""

    title_exclusion: str = DEFAULT_TITLE_EXCLUSION
    album_exclusion: str = DEFAULT_ALBUM_EXCLUSION

    def __post_init__(self) -> None:
        # Fail on a broken pattern at construction, not in the middle of a search.
        re.compile(self.title_exclusion)
        re.compile(self.album_exclusion)

    def title_regex(self) -> re.Pattern[str]:
        return re.compile(self.title_exclusion, re.IGNORECASE)

    def album_regex(self) -> re.Pattern[str]:
        return re.compile(self.album_exclusion, re.IGNORECASE)


DEFAULT_PATTERNS = RelevancePatterns()


def is_relevant(
    song: Song, query: str, patterns: RelevancePatterns = DEFAULT_PATTERNS
) -> bool:
    """Check a single song against the query and the exclusion patterns."""
    query_regex = re.compile(re.escape(query.strip()), re.IGNORECASE)

    matches_query = any(
        query_regex.search(text or "")
        for text in (song.title, song.artist, song.album_name)
    )
    if not matches_query:
        return False

    if patterns.title_regex().search(song.title):
        return False

    return not patterns.album_regex().search(song.album_name or "")


def filter_relevant_songs(
    songs: list[Song], query: str, patterns: RelevancePatterns = DEFAULT_PATTERNS
) -> list[Song]:
    """Keep the songs relevant to `query`, preserving order.

    Args:
        songs: Normalized catalog search results
        query: The raw user query
        patterns: Exclusion patterns (defaults to DEFAULT_PATTERNS)

    Returns:
        New list with the relevant songs, in input order
    """
    return [song for song in songs if is_relevant(song, query, patterns)]


__all__ = [
    "DEFAULT_ALBUM_EXCLUSION",
    "DEFAULT_PATTERNS",
    "DEFAULT_TITLE_EXCLUSION",
    "RelevancePatterns",
    "filter_relevant_songs",
    "is_relevant",
]
