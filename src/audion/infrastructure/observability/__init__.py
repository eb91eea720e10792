"""Observability infrastructure for structured logging."""

from audion.infrastructure.observability.logger_template import log_operation
from audion.infrastructure.observability.logging import (
    configure_logging,
    get_correlation_id,
    set_correlation_id,
)
from audion.infrastructure.observability.middleware import RequestLoggingMiddleware

__all__ = [
    "RequestLoggingMiddleware",
    "configure_logging",
    "get_correlation_id",
    "log_operation",
    "set_correlation_id",
]
