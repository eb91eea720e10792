"""FastAPI application entry point.

Run with: uvicorn audion.main:app
"""

from typing import Any

from fastapi import FastAPI

from audion import __version__
from audion.api.exception_handlers import register_exception_handlers
from audion.api.routers import api_router
from audion.config import Settings, get_settings
from audion.infrastructure.lifecycle import lifespan
from audion.infrastructure.observability import RequestLoggingMiddleware


def health_check() -> dict[str, Any]:
    """Liveness probe. Doesn't touch the database or any upstream."""
    return {"status": "ok", "version": __version__}


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Settings to use instead of the environment (pinned on app.state)

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    app = FastAPI(
        title="Audion API",
        version=__version__,
        description="Music playlists with Spotify search and YouTube enrichment",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api")
    app.add_api_route("/health", health_check, methods=["GET"], tags=["System"])

    return app


app = create_app()


def main() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "audion.main:app",
        host=settings.api.host,
        port=settings.api.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
