"""API request/response schemas."""

from audion.api.schemas.playlists import (
    MiniUserSchema,
    PlaylistCreate,
    PlaylistResponse,
    PlaylistUpdate,
)
from audion.api.schemas.songs import SongCreate, SongResponse, SongUpdate
from audion.api.schemas.users import UserCreate, UserResponse, UserUpdate

__all__ = [
    "MiniUserSchema",
    "PlaylistCreate",
    "PlaylistResponse",
    "PlaylistUpdate",
    "SongCreate",
    "SongResponse",
    "SongUpdate",
    "UserCreate",
    "UserResponse",
    "UserUpdate",
]
