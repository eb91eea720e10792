"""Tests for the YouTube key pool settings."""

import pytest

from audion.config import YouTubeSettings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("YOUTUBE_API_KEYS", raising=False)
    monkeypatch.delenv("YOUTUBE_API_KEY", raising=False)


def _load() -> YouTubeSettings:
    return YouTubeSettings(_env_file=None)  # type: ignore[call-arg]


def test_json_array_is_the_key_pool(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("YOUTUBE_API_KEYS", '["key-0", " key-1 ", ""]')
    monkeypatch.setenv("YOUTUBE_API_KEY", "single")

    assert _load().api_keys == ["key-0", "key-1"]


@pytest.mark.parametrize("raw", ["[key-0, key-1", '{"key": "key-0"}', "[1, 2]"])
def test_malformed_pool_falls_back_to_single_key(
    monkeypatch: pytest.MonkeyPatch, raw: str
) -> None:
    monkeypatch.setenv("YOUTUBE_API_KEYS", raw)
    monkeypatch.setenv("YOUTUBE_API_KEY", "single")

    assert _load().api_keys == ["single"]


def test_malformed_pool_without_fallback_is_empty(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("YOUTUBE_API_KEYS", "not json")

    assert _load().api_keys == []


def test_direct_construction_still_takes_a_list() -> None:
    assert YouTubeSettings(api_keys=["a", "b"], _env_file=None).api_keys == ["a", "b"]  # type: ignore[call-arg]
