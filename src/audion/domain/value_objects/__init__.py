"""Domain value objects."""

import re
import secrets
import time
from dataclasses import dataclass
from datetime import UTC, datetime

from audion.domain.exceptions import ValidationException

_DOCUMENT_ID_PATTERN = re.compile(r"^[0-9a-f]{24}$")


# Hey future me, DocumentId is shaped like a Mongo ObjectId: 4 bytes of big-endian unix
# seconds followed by 8 random bytes, hex encoded (24 chars). The creation time of every
# playlist/user is read back from the id - we never store a created_at column for them.
# Hex sorts the same way as the timestamp, so "order by id" is "order by creation".
@dataclass(frozen=True)
class DocumentId:
    """Identifier with an embedded creation timestamp."""

    value: str

    def __post_init__(self) -> None:
        """Validate id format."""
        if not _DOCUMENT_ID_PATTERN.match(self.value):
            raise ValidationException(f"Invalid document id: {self.value!r}")

    @classmethod
    def generate(cls, now: float | None = None) -> "DocumentId":
        """Generate a new id stamped with the current (or given) unix time."""
        seconds = int(time.time() if now is None else now)
        return cls(seconds.to_bytes(4, "big").hex() + secrets.token_hex(8))

    @classmethod
    def from_string(cls, value: str) -> "DocumentId":
        """Parse an id from its hex string (case-insensitive)."""
        return cls(value.strip().lower())

    @classmethod
    def is_valid(cls, value: str) -> bool:
        """Check whether a string is a well-formed id."""
        return bool(_DOCUMENT_ID_PATTERN.match(value.strip().lower()))

    @property
    def generated_at(self) -> datetime:
        """Creation timestamp embedded in the id."""
        seconds = int.from_bytes(bytes.fromhex(self.value[:8]), "big")
        return datetime.fromtimestamp(seconds, tz=UTC)

    def __str__(self) -> str:
        return self.value


PlaylistId = DocumentId
UserId = DocumentId

__all__ = ["DocumentId", "PlaylistId", "UserId"]
