"""Persistence layer: async SQLAlchemy models, repositories and session management."""

from audion.infrastructure.persistence.database import Database
from audion.infrastructure.persistence.models import (
    Base,
    PlaylistModel,
    SongModel,
    UserModel,
)
from audion.infrastructure.persistence.repositories import (
    PlaylistRepository,
    SongRepository,
    UserRepository,
)

__all__ = [
    "Base",
    "Database",
    "PlaylistModel",
    "PlaylistRepository",
    "SongModel",
    "SongRepository",
    "UserModel",
    "UserRepository",
]
