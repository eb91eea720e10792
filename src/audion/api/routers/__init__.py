"""API router initialization."""

# Yo, this is the main API router that aggregates everything! main.py mounts it at /api, so the
# prefixes below become /api/song, /api/playlist, /api/user and /api/search.

from fastapi import APIRouter

from audion.api.routers import playlists, search, songs, users

api_router = APIRouter()

api_router.include_router(songs.router, prefix="/song", tags=["Songs"])
api_router.include_router(playlists.router, prefix="/playlist", tags=["Playlists"])
api_router.include_router(users.router, prefix="/user", tags=["Users"])
api_router.include_router(search.router, prefix="/search", tags=["Search"])

__all__ = [
    "api_router",
    "playlists",
    "search",
    "songs",
    "users",
]
