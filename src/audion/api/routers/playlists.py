"""Playlist endpoints, including the embedded song sub-resource."""

import logging
from dataclasses import replace

from fastapi import APIRouter, Depends, Query, Response

from audion.api.dependencies import (
    get_enrichment_service,
    get_playlist_repository,
    get_user_repository,
    parse_playlist_id,
)
from audion.api.schemas import (
    PlaylistCreate,
    PlaylistResponse,
    PlaylistUpdate,
    SongCreate,
    SongResponse,
)
from audion.application.services import SongEnrichmentService
from audion.domain.dtos import Page, PlaylistFilter, SortDirection
from audion.domain.entities import MiniUser
from audion.domain.exceptions import EntityNotFoundException
from audion.domain.value_objects import DocumentId, PlaylistId
from audion.infrastructure.persistence.repositories import (
    PlaylistRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=list[PlaylistResponse])
async def list_playlists(
    q: str | None = Query(
        None, description="Matches playlist title/description or any song's title, artist, album"
    ),
    user_id: str | None = Query(None, alias="userId", description="Creator id"),
    is_liked_songs: bool | None = Query(None, alias="isLikedSongs"),
    genre: str | None = Query(None, description="Any embedded song has this genre"),
    page_idx: int | None = Query(None, alias="pageIdx", ge=0),
    sort_by: str | None = Query(None, alias="sortBy"),
    sort_dir: str | None = Query(None, alias="sortDir", description="1/-1 or asc/desc"),
    repository: PlaylistRepository = Depends(get_playlist_repository),
) -> list[PlaylistResponse]:
    """List playlists with optional filters, sorting and paging."""
    playlists = await repository.query(
        PlaylistFilter(
            search=q,
            user_id=user_id,
            is_liked_songs=is_liked_songs,
            genre=genre,
            sort_by=sort_by,
            sort_dir=SortDirection.parse(sort_dir),
            page=Page(index=page_idx),
        )
    )
    return [PlaylistResponse.from_entity(p) for p in playlists]


@router.get("/{playlist_id}", response_model=PlaylistResponse)
async def get_playlist(
    playlist_id: PlaylistId = Depends(parse_playlist_id),
    repository: PlaylistRepository = Depends(get_playlist_repository),
) -> PlaylistResponse:
    """Get one playlist with its songs."""
    playlist = await repository.get_by_id(playlist_id)
    if playlist is None:
        raise EntityNotFoundException("Playlist", playlist_id.value)
    return PlaylistResponse.from_entity(playlist)


@router.post("", response_model=PlaylistResponse, status_code=201)
async def create_playlist(
    body: PlaylistCreate,
    repository: PlaylistRepository = Depends(get_playlist_repository),
    user_repository: UserRepository = Depends(get_user_repository),
) -> PlaylistResponse:
    """Create a playlist, stamped with its creator when createdById is given."""
    created_by: MiniUser | None = None
    if body.created_by_id:
        if not DocumentId.is_valid(body.created_by_id):
            raise EntityNotFoundException("User", body.created_by_id)
        user = await user_repository.get_by_id(DocumentId.from_string(body.created_by_id))
        if user is None:
            raise EntityNotFoundException("User", body.created_by_id)
        created_by = user.to_mini_user()

    playlist = await repository.add(body.to_entity(created_by))
    logger.info("Created playlist %s (%s)", playlist.id, playlist.title)
    return PlaylistResponse.from_entity(playlist)


@router.patch("/{playlist_id}", response_model=PlaylistResponse)
async def update_playlist(
    body: PlaylistUpdate,
    playlist_id: PlaylistId = Depends(parse_playlist_id),
    repository: PlaylistRepository = Depends(get_playlist_repository),
) -> PlaylistResponse:
    """Update the fields that were sent."""
    playlist = await repository.get_by_id(playlist_id)
    if playlist is None:
        raise EntityNotFoundException("Playlist", playlist_id.value)
    updated = await repository.update(
        replace(playlist, **body.model_dump(exclude_unset=True, exclude_none=True))
    )
    return PlaylistResponse.from_entity(updated)


@router.delete("/{playlist_id}", status_code=204)
async def delete_playlist(
    playlist_id: PlaylistId = Depends(parse_playlist_id),
    repository: PlaylistRepository = Depends(get_playlist_repository),
) -> Response:
    """Delete a playlist."""
    await repository.delete(playlist_id)
    logger.info("Deleted playlist %s", playlist_id)
    return Response(status_code=204)


# Hey future me - THIS is the endpoint that triggers YouTube. First call for an unenriched song
# searches + looks up duration and stores the result; every later call is served from storage.
# A quota-exhausted key pool comes back as 503 and the song stays unenriched.
@router.get("/{playlist_id}/song/{song_id}", response_model=SongResponse)
async def get_playlist_song_full_details(
    song_id: str,
    playlist_id: PlaylistId = Depends(parse_playlist_id),
    service: SongEnrichmentService = Depends(get_enrichment_service),
) -> SongResponse:
    """Get a playlist song with its video url and duration, enriching it on first access."""
    song = await service.get_full_song_details(playlist_id, song_id)
    return SongResponse.from_entity(song)


@router.post("/{playlist_id}/song", response_model=PlaylistResponse, status_code=201)
async def add_song_to_playlist(
    body: SongCreate,
    playlist_id: PlaylistId = Depends(parse_playlist_id),
    repository: PlaylistRepository = Depends(get_playlist_repository),
) -> PlaylistResponse:
    """Append a song to the end of the playlist."""
    playlist = await repository.add_song(playlist_id, body.to_entity())
    return PlaylistResponse.from_entity(playlist)


@router.delete("/{playlist_id}/song/{song_id}", response_model=PlaylistResponse)
async def remove_song_from_playlist(
    song_id: str,
    playlist_id: PlaylistId = Depends(parse_playlist_id),
    repository: PlaylistRepository = Depends(get_playlist_repository),
) -> PlaylistResponse:
    """Remove a song from the playlist."""
    playlist = await repository.remove_song(playlist_id, song_id)
    return PlaylistResponse.from_entity(playlist)
