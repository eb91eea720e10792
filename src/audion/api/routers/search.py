"""Catalog search endpoints.

Hey future me - these aren't read-only searches! Every hit is imported (upserted) into the
local store, so a search result's ids can be used right away with /api/playlist and /api/song.
Searching the same thing twice returns the same ids and writes nothing new.
"""

import logging

from fastapi import APIRouter, Depends, Query

from audion.api.dependencies import get_catalog_import_service
from audion.api.schemas import PlaylistResponse, SongResponse
from audion.application.services import CatalogImportService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/tracks", response_model=list[SongResponse])
async def search_tracks(
    q: str = Query(..., min_length=1, description="Search query"),
    limit: int = Query(5, ge=1, le=50, description="Max results after relevance filtering"),
    service: CatalogImportService = Depends(get_catalog_import_service),
) -> list[SongResponse]:
    """Search catalog tracks (remixes, live versions, karaoke... filtered out) and store them."""
    songs = await service.search_tracks(q, limit)
    return [SongResponse.from_entity(song) for song in songs]


@router.get("/playlists", response_model=list[PlaylistResponse])
async def search_playlists(
    q: str = Query(..., min_length=1, description="Search query"),
    limit: int = Query(50, ge=1, le=50, description="Max playlists to look at"),
    service: CatalogImportService = Depends(get_catalog_import_service),
) -> list[PlaylistResponse]:
    """Search catalog playlists, fetch their tracks and store them."""
    playlists = await service.search_playlists(q, limit)
    return [PlaylistResponse.from_entity(p) for p in playlists]
