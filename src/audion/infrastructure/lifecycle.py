"""Application lifecycle management for startup and shutdown tasks.

This module handles the FastAPI lifespan context manager that builds the
long-lived objects (database, Spotify client, YouTube client) and releases them
again on shutdown.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from audion.config import Settings, get_settings
from audion.infrastructure.integrations import HttpClientPool, SpotifyClient, YouTubeClient
from audion.infrastructure.observability import configure_logging
from audion.infrastructure.persistence import Database

logger = logging.getLogger(__name__)


def _resolve_settings(app: FastAPI) -> Settings:
    # create_app(settings=...) pins settings on app.state (tests do this); otherwise use env.
    settings = getattr(app.state, "settings", None)
    return settings if isinstance(settings, Settings) else get_settings()


# Listen future me, @asynccontextmanager makes this a CONTEXT MANAGER for FastAPI lifespan!
# Everything before `yield` runs at STARTUP, everything after runs at SHUTDOWN. The try/finally
# ensures cleanup ALWAYS runs even if startup fails halfway. The clients live on app.state
# because they OWN state that must outlive a request: the Spotify token (plus its refresh task)
# and the YouTube key-pool cursor. Building them per request would re-exchange tokens and
# restart key rotation at key 0 on every call.
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown tasks including:
    - Logging configuration
    - Database initialization (tables are created if missing)
    - Spotify and YouTube client construction
    - Resource cleanup (refresh task, HTTP pool, database engine)
    """
    settings = _resolve_settings(app)

    configure_logging(
        log_level=settings.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )
    logger.info("Starting application: %s", settings.app_name)

    try:
        db = Database(settings)
        app.state.db = db
        await db.create_tables()
        logger.info("Database initialized: %s", settings.database.url.split("://", 1)[0])

        if not settings.spotify.is_configured:
            logger.warning(
                "Spotify credentials missing - catalog search will fail until "
                "SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET are set"
            )
        app.state.spotify_client = SpotifyClient(settings.spotify, settings.http)
        app.state.youtube_client = YouTubeClient(settings.youtube, settings.http)
        logger.info(
            "Integrations ready (youtube keys: %d)", len(app.state.youtube_client.keys)
        )

        yield

    except Exception as e:
        logger.exception("Error during application startup: %s", e)
        raise
    finally:
        logger.info("Shutting down application")

        # 1. Stop the token refresh task (the client does not own the HTTP connection)
        spotify_client = getattr(app.state, "spotify_client", None)
        if spotify_client is not None:
            try:
                await spotify_client.close()
                logger.info("Spotify client closed")
            except Exception as e:
                logger.exception("Error closing Spotify client: %s", e)

        # 2. Close database connection
        try:
            if hasattr(app.state, "db"):
                await app.state.db.close()
                logger.info("Database connection closed")
        except Exception as e:
            logger.exception("Error closing database: %s", e)

        # 3. Close HTTP client pool (release all TCP connections)
        try:
            await HttpClientPool.close()
        except Exception as e:
            logger.exception("Error closing HTTP client pool: %s", e)
