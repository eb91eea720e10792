"""API schemas for users."""

from datetime import datetime

from pydantic import Field

from audion.api.schemas.base import CamelModel
from audion.domain.entities import User


class UserResponse(CamelModel):
    """User as returned by the API."""

    id: str = Field(..., alias="_id")
    username: str
    full_name: str
    email: str
    avatar: str | None = None
    is_admin: bool = False
    library: list[str] = Field(
        default_factory=list, description="Playlist ids in library order"
    )
    created_at: datetime | None = None

    @classmethod
    def from_entity(cls, user: User) -> "UserResponse":
        """Build response from a User entity."""
        return cls(
            id=str(user.id) if user.id else "",
            username=user.username,
            full_name=user.full_name,
            email=user.email,
            avatar=user.avatar,
            is_admin=user.is_admin,
            library=list(user.library_playlist_ids),
            created_at=user.created_at,
        )


class UserCreate(CamelModel):
    """Request schema for creating a user."""

    username: str = Field(..., min_length=1)
    full_name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    avatar: str | None = None
    is_admin: bool = False

    def to_entity(self) -> User:
        return User(
            username=self.username,
            full_name=self.full_name,
            email=self.email,
            avatar=self.avatar,
            is_admin=self.is_admin,
        )


class UserUpdate(CamelModel):
    """Partial user update. The library is edited through the library sub-resource."""

    username: str | None = Field(default=None, min_length=1)
    full_name: str | None = Field(default=None, min_length=1)
    email: str | None = Field(default=None, min_length=3)
    avatar: str | None = None
    is_admin: bool | None = None
