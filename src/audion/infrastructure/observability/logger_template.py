"""Shared logger helpers.

USAGE:
    logger = logging.getLogger(__name__)

    async with log_operation(logger, "catalog.import_playlists", query="jazz"):
        await import_playlists()
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any


# Yo, this context manager logs {operation}.started / .completed / .failed with duration_ms.
# On failure it logs with the traceback and re-raises - the caller still decides what happens.
@asynccontextmanager
async def log_operation(
    logger: logging.Logger,
    operation: str,
    **context: Any,
) -> AsyncIterator[None]:
    """Log operation start/end with automatic timing.

    Args:
        logger: Logger instance
        operation: Operation name (e.g., "enrichment.song_details")
        **context: Additional fields to include in logs
    """
    start = time.perf_counter()
    logger.info(f"{operation}.started", extra=context)

    try:
        yield
    except Exception as e:
        logger.error(
            f"{operation}.failed",
            extra={
                **context,
                "duration_ms": int((time.perf_counter() - start) * 1000),
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        raise

    logger.info(
        f"{operation}.completed",
        extra={**context, "duration_ms": int((time.perf_counter() - start) * 1000)},
    )
