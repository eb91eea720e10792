"""Shared fixtures: settings and an in-memory database."""

from collections.abc import AsyncIterator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from audion.config import DatabaseSettings, Settings, SpotifySettings, YouTubeSettings
from audion.infrastructure.persistence import Database


@pytest.fixture
def settings() -> Settings:
    """Settings that never touch the environment's database or real credentials."""
    return Settings(
        database=DatabaseSettings(url="sqlite+aiosqlite:///:memory:"),
        spotify=SpotifySettings(client_id="test-id", client_secret="test-secret"),
        youtube=YouTubeSettings(api_keys=["key-0", "key-1"]),
    )


@pytest.fixture
async def database(settings: Settings) -> AsyncIterator[Database]:
    """Fresh in-memory database with all tables."""
    db = Database(settings)
    await db.create_tables()
    try:
        yield db
    finally:
        await db.close()


@pytest.fixture
async def session(database: Database) -> AsyncIterator[AsyncSession]:
    """One session; committed at the end like a request scope."""
    async with database.session_scope() as session:
        yield session
