"""Dependency injection for API endpoints."""

import logging
from collections.abc import AsyncGenerator
from typing import cast

from fastapi import Depends, HTTPException, Path, Request
from sqlalchemy.ext.asyncio import AsyncSession

from audion.application.services import (
    CatalogImportService,
    LibraryService,
    SongEnrichmentService,
)
from audion.domain.exceptions import EntityNotFoundException
from audion.domain.ports import ICatalogClient, IVideoClient
from audion.domain.value_objects import DocumentId, PlaylistId, UserId
from audion.infrastructure.persistence.database import Database
from audion.infrastructure.persistence.repositories import (
    PlaylistRepository,
    SongRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)


# Hey future me - this is a FastAPI dependency that yields a DB session to endpoints.
# session_scope() commits when the endpoint returns and rolls back when it raises, so one
# request = one transaction. Use it like: "session: AsyncSession = Depends(get_db_session)"
async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session from app state."""
    db: Database = request.app.state.db
    async with db.session_scope() as session:
        yield session


def get_song_repository(
    session: AsyncSession = Depends(get_db_session),
) -> SongRepository:
    """Get song repository instance."""
    return SongRepository(session)


def get_playlist_repository(
    session: AsyncSession = Depends(get_db_session),
) -> PlaylistRepository:
    """Get playlist repository instance."""
    return PlaylistRepository(session)


def get_user_repository(
    session: AsyncSession = Depends(get_db_session),
) -> UserRepository:
    """Get user repository instance."""
    return UserRepository(session)


# Listen, both clients are built ONCE in the lifespan (they own token/key-pool state that must
# survive across requests). If they're missing, startup went wrong - 503, not a crash.
def get_catalog_client(request: Request) -> ICatalogClient:
    """Get the shared Spotify client from app state."""
    if not hasattr(request.app.state, "spotify_client"):
        raise HTTPException(status_code=503, detail="Catalog client not initialized")
    return cast(ICatalogClient, request.app.state.spotify_client)


def get_video_client(request: Request) -> IVideoClient:
    """Get the shared YouTube client from app state."""
    if not hasattr(request.app.state, "youtube_client"):
        raise HTTPException(status_code=503, detail="Video client not initialized")
    return cast(IVideoClient, request.app.state.youtube_client)


def get_enrichment_service(
    playlist_repository: PlaylistRepository = Depends(get_playlist_repository),
    video_client: IVideoClient = Depends(get_video_client),
) -> SongEnrichmentService:
    """Get song enrichment service."""
    return SongEnrichmentService(playlist_repository, video_client)


def get_catalog_import_service(
    catalog: ICatalogClient = Depends(get_catalog_client),
    playlist_repository: PlaylistRepository = Depends(get_playlist_repository),
    song_repository: SongRepository = Depends(get_song_repository),
) -> CatalogImportService:
    """Get catalog import service."""
    return CatalogImportService(catalog, playlist_repository, song_repository)


def get_library_service(
    user_repository: UserRepository = Depends(get_user_repository),
    playlist_repository: PlaylistRepository = Depends(get_playlist_repository),
) -> LibraryService:
    """Get user library service."""
    return LibraryService(user_repository, playlist_repository)


# Yo, a malformed id can never match a stored document, so it's a 404 and not a 422.
def _parse_document_id(entity_type: str, value: str) -> DocumentId:
    if not DocumentId.is_valid(value):
        raise EntityNotFoundException(entity_type, value)
    return DocumentId.from_string(value)


def parse_playlist_id(
    playlist_id: str = Path(..., description="Playlist id"),
) -> PlaylistId:
    """Parse the playlist id path parameter."""
    return _parse_document_id("Playlist", playlist_id)


def parse_user_id(
    user_id: str = Path(..., description="User id"),
) -> UserId:
    """Parse the user id path parameter."""
    return _parse_document_id("User", user_id)
