"""Song collection endpoints."""

import logging

from fastapi import APIRouter, Depends, Query, Response

from audion.api.dependencies import get_song_repository
from audion.api.schemas import SongCreate, SongResponse, SongUpdate
from audion.domain.dtos import Page, SongFilter, SortDirection
from audion.domain.exceptions import EntityNotFoundException
from audion.infrastructure.persistence.repositories import SongRepository

logger = logging.getLogger(__name__)

router = APIRouter()


# Yo, pageIdx is optional on purpose - leaving it out returns EVERYTHING (the web client's
# "load all" view). With pageIdx you get pages of 50.
@router.get("", response_model=list[SongResponse])
async def list_songs(
    q: str | None = Query(None, description="Matches title, artist or album name"),
    artist: str | None = Query(None, description="Narrow to an artist (substring)"),
    page_idx: int | None = Query(None, alias="pageIdx", ge=0),
    sort_by: str | None = Query(None, alias="sortBy"),
    sort_dir: str | None = Query(None, alias="sortDir", description="1/-1 or asc/desc"),
    repository: SongRepository = Depends(get_song_repository),
) -> list[SongResponse]:
    """List songs with optional search, sorting and paging."""
    songs = await repository.query(
        SongFilter(
            search=q,
            artist=artist,
            sort_by=sort_by,
            sort_dir=SortDirection.parse(sort_dir),
            page=Page(index=page_idx),
        )
    )
    return [SongResponse.from_entity(song) for song in songs]


@router.get("/{song_id}", response_model=SongResponse)
async def get_song(
    song_id: str,
    repository: SongRepository = Depends(get_song_repository),
) -> SongResponse:
    """Get one song."""
    song = await repository.get_by_id(song_id)
    if song is None:
        raise EntityNotFoundException("Song", song_id)
    return SongResponse.from_entity(song)


@router.post("", response_model=SongResponse, status_code=201)
async def create_song(
    body: SongCreate,
    repository: SongRepository = Depends(get_song_repository),
) -> SongResponse:
    """Create a song. Reusing an existing id is a conflict."""
    song = await repository.add(body.to_entity())
    logger.info("Created song %s (%s)", song.id, song.title)
    return SongResponse.from_entity(song)


@router.patch("/{song_id}", response_model=SongResponse)
async def update_song(
    song_id: str,
    body: SongUpdate,
    repository: SongRepository = Depends(get_song_repository),
) -> SongResponse:
    """Update the fields that were sent."""
    song = await repository.get_by_id(song_id)
    if song is None:
        raise EntityNotFoundException("Song", song_id)
    updated = await repository.update(body.apply_to(song))
    return SongResponse.from_entity(updated)


@router.delete("/{song_id}", status_code=204)
async def delete_song(
    song_id: str,
    repository: SongRepository = Depends(get_song_repository),
) -> Response:
    """Delete a song."""
    await repository.delete(song_id)
    logger.info("Deleted song %s", song_id)
    return Response(status_code=204)
