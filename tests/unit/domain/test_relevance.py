"""Tests for catalog search relevance filtering.

Hey future me - the "Yesterday" case is the canonical one: the catalog hands back the
original, a live take and a remix for the same query, and only the original should survive.
"""

import pytest

from audion.domain.entities import Song
from audion.domain.value_objects.relevance import (
    DEFAULT_PATTERNS,
    RelevancePatterns,
    filter_relevant_songs,
    is_relevant,
)


def _song(title: str, artist: str = "The Beatles", album: str = "Help!") -> Song:
    return Song(id=title.lower().replace(" ", "-"), title=title, artist=artist, album_name=album)


class TestYesterdayScenario:
    def test_only_the_original_survives(self) -> None:
        songs = [
            _song("Yesterday"),
            _song("Yesterday (Live)", album="Live at the BBC"),
            _song("Yesterday - Remix"),
        ]
        result = filter_relevant_songs(songs, "Yesterday")
        assert [song.title for song in result] == ["Yesterday"]

    def test_live_in_title_is_excluded_even_on_a_studio_album(self) -> None:
        assert not is_relevant(_song("Yesterday (Live)"), "yesterday")
        assert not is_relevant(_song("Yesterday - Live At Wembley"), "yesterday")


class TestTitleExclusions:
    @pytest.mark.parametrize(
        "title",
        [
            "Yesterday - Remix",
            "Yesterday (Radio Edit)",
            "Yesterday (Acoustic Version)",
            "Yesterday (Karaoke)",
            "Yesterday - Instrumental",
            "Yesterday (Cover)",
        ],
    )
    def test_variants_are_excluded(self, title: str) -> None:
        assert not is_relevant(_song(title), "yesterday")

    def test_keywords_only_match_whole_words(self) -> None:
        """'Editor' is not 'edit' and 'Alive' is not 'live'."""
        assert is_relevant(_song("Yesterday Editor"), "yesterday")
        assert is_relevant(_song("Yesterday Alive"), "yesterday")


class TestAlbumExclusions:
    @pytest.mark.parametrize(
        "album",
        ["1 (Remastered)", "Greatest Hits", "The Best Of", "Help! (Deluxe)", "Movie Soundtrack"],
    )
    def test_compilations_and_reissues_are_excluded(self, album: str) -> None:
        assert not is_relevant(_song("Yesterday", album=album), "yesterday")


class TestQueryMatching:
    def test_query_must_appear_somewhere(self) -> None:
        assert not is_relevant(_song("Let It Be"), "yesterday")

    def test_match_on_artist_or_album(self) -> None:
        assert is_relevant(_song("Help!"), "beatles")
        assert is_relevant(_song("Ticket to Ride"), "help")

    def test_query_is_literal_text_not_a_pattern(self) -> None:
        """Regex metacharacters in the query don't blow up or match everything."""
        assert not is_relevant(_song("Yesterday"), "(.*")
        assert is_relevant(_song("What's Up? (Song)", album="Single"), "what's up?")


class TestFilterProperties:
    def test_filter_is_idempotent_and_order_preserving(self) -> None:
        songs = [
            _song("Yesterday"),
            _song("Yesterday - Remix"),
            _song("Yesterday Once More", artist="Carpenters", album="Now & Then"),
            _song("Yesterday (Live)"),
        ]
        once = filter_relevant_songs(songs, "yesterday")
        twice = filter_relevant_songs(once, "yesterday")
        assert once == twice
        assert [song.title for song in once] == ["Yesterday", "Yesterday Once More"]

    def test_patterns_are_swappable(self) -> None:
        """A custom pattern set changes what's excluded without touching code."""
        permissive = RelevancePatterns(title_exclusion=r"$^", album_exclusion=r"$^")
        song = _song("Yesterday - Remix", album="Greatest Hits")
        assert not is_relevant(song, "yesterday", DEFAULT_PATTERNS)
        assert is_relevant(song, "yesterday", permissive)

    def test_broken_pattern_fails_at_construction(self) -> None:
        import re

        with pytest.raises(re.error):
            RelevancePatterns(title_exclusion="(unclosed")
