"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, message is stored as an attribute so handlers can read it without
    # parsing str(exception). Don't raise this directly - pick a specific subclass.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationException(DomainException):
    """Raised when entity validation fails.

    HTTP Status: 422
    """

    pass


class DuplicateEntityException(DomainException):
    """Raised when a uniqueness rule is violated (username, email).

    HTTP Status: 409
    """

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} already exists")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ConfigurationError(DomainException):
    """Application misconfiguration (missing credentials, empty key pool).

    HTTP Status: 503
    """

    pass


class ExternalServiceError(DomainException):
    """External service (Spotify, YouTube) returned an error.

    HTTP Status: 502
    """

    pass


class RateLimitExceededError(DomainException):
    """External service rate limit was exceeded.

    HTTP Status: 429
    """

    def __init__(self, message: str, retry_after: int | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


# =============================================================================
# Upstream (catalog / video service) failures
# =============================================================================


class UpstreamError(ExternalServiceError):
    """Upstream unreachable or answered with an unexpected status.

    Carries enough context (service, endpoint, status) to diagnose from the log line.
    """

    def __init__(
        self,
        message: str,
        service: str | None = None,
        endpoint: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.service = service
        self.endpoint = endpoint
        self.status_code = status_code


class UpstreamAuthError(UpstreamError):
    """Credential exchange failed, or a call was rejected with 401 after re-exchange."""

    pass


class UpstreamRateLimited(RateLimitExceededError):
    """429 without a usable Retry-After, or still 429 after the single retry."""

    def __init__(
        self,
        message: str,
        retry_after: int | None = None,
        endpoint: str | None = None,
    ) -> None:
        super().__init__(message, retry_after=retry_after)
        self.endpoint = endpoint


class QuotaExhausted(UpstreamError):
    """Every key in the rotation pool answered 403.

    HTTP Status: 503 - more keys are needed, or the caller degrades to a song without video.
    """

    def __init__(self, message: str, attempts: int, endpoint: str | None = None) -> None:
        super().__init__(message, service="youtube", endpoint=endpoint, status_code=403)
        self.attempts = attempts


class PartialEnrichmentFailure(UpstreamError):
    """Enrichment of a single song failed.

    Inside a batch this is logged and isolated (fields fall back to null); for a
    single-song request it is surfaced to the caller.
    """

    def __init__(self, song_id: str, reason: str) -> None:
        super().__init__(f"Enrichment failed for song {song_id}: {reason}", service="youtube")
        self.song_id = song_id
        self.reason = reason


NotFound = EntityNotFoundException

__all__ = [
    "ConfigurationError",
    "DomainException",
    "DuplicateEntityException",
    "EntityNotFoundException",
    "ExternalServiceError",
    "NotFound",
    "PartialEnrichmentFailure",
    "QuotaExhausted",
    "RateLimitExceededError",
    "UpstreamAuthError",
    "UpstreamError",
    "UpstreamRateLimited",
    "ValidationException",
]
