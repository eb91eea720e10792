"""User endpoints and the user library sub-resource."""

import logging
from dataclasses import replace

from fastapi import APIRouter, Depends, Query, Response

from audion.api.dependencies import (
    get_library_service,
    get_user_repository,
    parse_playlist_id,
    parse_user_id,
)
from audion.api.schemas import PlaylistResponse, UserCreate, UserResponse, UserUpdate
from audion.application.services import LibraryService
from audion.domain.dtos import Page, UserFilter
from audion.domain.exceptions import EntityNotFoundException
from audion.domain.value_objects import PlaylistId, UserId
from audion.infrastructure.persistence.repositories import UserRepository

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=list[UserResponse])
async def list_users(
    q: str | None = Query(None, description="Matches username or full name"),
    page_idx: int | None = Query(None, alias="pageIdx", ge=0),
    repository: UserRepository = Depends(get_user_repository),
) -> list[UserResponse]:
    """List users."""
    users = await repository.query(UserFilter(search=q, page=Page(index=page_idx)))
    return [UserResponse.from_entity(user) for user in users]


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: UserId = Depends(parse_user_id),
    repository: UserRepository = Depends(get_user_repository),
) -> UserResponse:
    """Get one user."""
    user = await repository.get_by_id(user_id)
    if user is None:
        raise EntityNotFoundException("User", user_id.value)
    return UserResponse.from_entity(user)


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    body: UserCreate,
    repository: UserRepository = Depends(get_user_repository),
) -> UserResponse:
    """Create a user. Username and email must be unique (case-insensitive)."""
    user = await repository.add(body.to_entity())
    logger.info("Created user %s (%s)", user.id, user.username)
    return UserResponse.from_entity(user)


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    body: UserUpdate,
    user_id: UserId = Depends(parse_user_id),
    repository: UserRepository = Depends(get_user_repository),
) -> UserResponse:
    """Update the fields that were sent."""
    user = await repository.get_by_id(user_id)
    if user is None:
        raise EntityNotFoundException("User", user_id.value)
    updated = await repository.update(
        replace(user, **body.model_dump(exclude_unset=True, exclude_none=True))
    )
    return UserResponse.from_entity(updated)


@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: UserId = Depends(parse_user_id),
    repository: UserRepository = Depends(get_user_repository),
) -> Response:
    """Delete a user. Their playlists stay."""
    await repository.delete(user_id)
    logger.info("Deleted user %s", user_id)
    return Response(status_code=204)


@router.get("/{user_id}/library", response_model=list[PlaylistResponse])
async def get_user_library(
    user_id: UserId = Depends(parse_user_id),
    service: LibraryService = Depends(get_library_service),
) -> list[PlaylistResponse]:
    """Playlists in the user's library, in library order."""
    playlists = await service.get_library_playlists(user_id)
    return [PlaylistResponse.from_entity(p) for p in playlists]


@router.post("/{user_id}/library/{playlist_id}", response_model=UserResponse)
async def add_playlist_to_library(
    user_id: UserId = Depends(parse_user_id),
    playlist_id: PlaylistId = Depends(parse_playlist_id),
    service: LibraryService = Depends(get_library_service),
) -> UserResponse:
    """Add a playlist to the user's library. Adding it twice keeps one entry."""
    user = await service.add_playlist(user_id, playlist_id)
    return UserResponse.from_entity(user)


@router.delete("/{user_id}/library/{playlist_id}", response_model=UserResponse)
async def remove_playlist_from_library(
    user_id: UserId = Depends(parse_user_id),
    playlist_id: PlaylistId = Depends(parse_playlist_id),
    service: LibraryService = Depends(get_library_service),
) -> UserResponse:
    """Remove a playlist from the user's library."""
    user = await service.remove_playlist(user_id, playlist_id)
    return UserResponse.from_entity(user)
