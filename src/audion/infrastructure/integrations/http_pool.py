"""Shared HTTP client pool for connection reuse across the external clients.

Hey future me - Spotify and YouTube both pull their httpx.AsyncClient from here instead of
creating their own. The pool owns the timeout and connection limits (HttpSettings), so every
outbound call is bounded, and there's a single cleanup point at shutdown (see lifecycle.py).

Usage:
    client = await HttpClientPool.get_client()
    response = await client.get("https://www.googleapis.com/youtube/v3/search", params=...)
"""

import asyncio
import logging
from typing import ClassVar

import httpx

from audion.config import HttpSettings

logger = logging.getLogger(__name__)


class HttpClientPool:
    """Singleton HTTP client pool.

    Lazily creates one shared httpx.AsyncClient, guarded by an asyncio.Lock.
    """

    _client: ClassVar[httpx.AsyncClient | None] = None
    _lock: ClassVar[asyncio.Lock | None] = None

    @classmethod
    def _ensure_lock(cls) -> asyncio.Lock:
        # asyncio.Lock must be created inside a running loop, so not at class definition time.
        if cls._lock is None:
            cls._lock = asyncio.Lock()
        return cls._lock

    @classmethod
    async def get_client(cls, settings: HttpSettings | None = None) -> httpx.AsyncClient:
        """Get the shared HTTP client instance.

        Settings only apply on the FIRST call; later calls return the same instance.

        Args:
            settings: Timeout and connection limits (defaults to HttpSettings())

        Returns:
            Shared httpx.AsyncClient instance
        """
        async with cls._ensure_lock():
            if cls._client is None:
                http = settings or HttpSettings()
                cls._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(http.timeout),
                    limits=httpx.Limits(
                        max_keepalive_connections=http.max_keepalive,
                        max_connections=http.max_connections,
                    ),
                    follow_redirects=True,
                )
                logger.info(
                    "HTTP client pool initialized (timeout=%.1fs, keepalive=%d, max_conn=%d)",
                    http.timeout,
                    http.max_keepalive,
                    http.max_connections,
                )
            return cls._client

    @classmethod
    async def close(cls) -> None:
        """Close the shared client. A later get_client() creates a fresh one."""
        async with cls._ensure_lock():
            if cls._client is not None:
                await cls._client.aclose()
                cls._client = None
                logger.info("HTTP client pool closed")

    @classmethod
    def is_initialized(cls) -> bool:
        """Check if the pool currently holds an open client."""
        return cls._client is not None
