"""Repository implementations for domain entities."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import Select, delete, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from audion.domain.dtos import Page, PlaylistFilter, SongFilter, SortDirection, UserFilter
from audion.domain.entities import Playlist, Song, User
from audion.domain.exceptions import (
    DuplicateEntityException,
    EntityNotFoundException,
    ValidationException,
)
from audion.domain.ports import IPlaylistRepository, ISongRepository, IUserRepository
from audion.domain.value_objects import DocumentId, PlaylistId, UserId

from .models import PlaylistModel, SongModel, UserModel, song_to_document

logger = logging.getLogger(__name__)

# API sort keys (camelCase, as the client sends them) → columns. Unknown keys are rejected.
# createdAt sorts by id for playlists/users: the id starts with the creation timestamp.
SONG_SORT_COLUMNS: dict[str, Any] = {
    "title": SongModel.title,
    "artist": SongModel.artist,
    "albumName": SongModel.album_name,
    "duration": SongModel.duration,
    "releasedAt": SongModel.released_at,
    "addedAt": SongModel.added_at,
    "createdAt": SongModel.created_at,
}

PLAYLIST_SORT_COLUMNS: dict[str, Any] = {
    "title": PlaylistModel.title,
    "description": PlaylistModel.description,
    "createdAt": PlaylistModel.id,
}


def _apply_sort(
    stmt: Select[Any],
    columns: dict[str, Any],
    sort_by: str | None,
    sort_dir: SortDirection,
    default: Any,
) -> Select[Any]:
    if not sort_by:
        return stmt.order_by(default)
    column = columns.get(sort_by)
    if column is None:
        raise ValidationException(
            f"Cannot sort by '{sort_by}'. Allowed: {', '.join(sorted(columns))}"
        )
    ordered = column.desc() if sort_dir is SortDirection.DESC else column.asc()
    # Tie-break on the primary key so pages are stable.
    return stmt.order_by(ordered, default)


def _apply_page(stmt: Select[Any], page: Page) -> Select[Any]:
    if page.index is None:
        return stmt
    if page.index < 0:
        raise ValidationException("pageIdx cannot be negative")
    return stmt.offset(page.offset).limit(page.size)


class SongRepository(ISongRepository):
    """SQLAlchemy implementation of the song collection."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def query(self, filter_by: SongFilter) -> list[Song]:
        stmt = select(SongModel)
        if filter_by.artist:
            stmt = stmt.where(SongModel.artist.icontains(filter_by.artist, autoescape=True))
        if filter_by.search:
            term = filter_by.search
            stmt = stmt.where(
                or_(
                    SongModel.title.icontains(term, autoescape=True),
                    SongModel.artist.icontains(term, autoescape=True),
                    SongModel.album_name.icontains(term, autoescape=True),
                )
            )
        stmt = _apply_sort(
            stmt, SONG_SORT_COLUMNS, filter_by.sort_by, filter_by.sort_dir, SongModel.id
        )
        stmt = _apply_page(stmt, filter_by.page)
        result = await self.session.execute(stmt)
        return [model.to_entity() for model in result.scalars().all()]

    async def get_by_id(self, song_id: str) -> Song | None:
        model = await self.session.get(SongModel, song_id)
        return model.to_entity() if model else None

    async def add(self, song: Song) -> Song:
        if await self.session.get(SongModel, song.id) is not None:
            raise DuplicateEntityException("Song", song.id)
        model = SongModel.from_entity(song)
        self.session.add(model)
        await self.session.flush()
        return model.to_entity()

    # Hey future me - same shape as PlaylistRepository.add_many but keyed by the catalog id
    # (which IS the song id for imported songs). Existing rows are returned untouched, so an
    # enrichment written earlier is never overwritten by a fresh, unenriched import.
    async def add_many(self, songs: list[Song]) -> list[Song]:
        if not songs:
            return []
        ids = list(dict.fromkeys(song.id for song in songs))
        result = await self.session.execute(select(SongModel).where(SongModel.id.in_(ids)))
        stored: dict[str, Song] = {m.id: m.to_entity() for m in result.scalars().all()}

        inserted = 0
        output: list[Song] = []
        for song in songs:
            if song.id not in stored:
                try:
                    async with self.session.begin_nested():
                        model = SongModel.from_entity(song)
                        self.session.add(model)
                        await self.session.flush()
                    stored[song.id] = model.to_entity()
                    inserted += 1
                except IntegrityError:
                    existing = await self.session.get(SongModel, song.id, populate_existing=True)
                    if existing is None:
                        logger.warning("Skipping song %s: insert rejected", song.id)
                        continue
                    stored[song.id] = existing.to_entity()
                except SQLAlchemyError as e:
                    logger.warning("Skipping song %s: %s", song.id, e)
                    continue
            output.append(stored[song.id])

        logger.info("Song upsert: %d received, %d inserted", len(songs), inserted)
        return output

    async def update(self, song: Song) -> Song:
        model = await self.session.get(SongModel, song.id)
        if model is None:
            raise EntityNotFoundException("Song", song.id)
        model.apply(song)
        await self.session.flush()
        return model.to_entity()

    async def delete(self, song_id: str) -> None:
        result = await self.session.execute(delete(SongModel).where(SongModel.id == song_id))
        if result.rowcount == 0:  # type: ignore[attr-defined]
            raise EntityNotFoundException("Song", song_id)


class PlaylistRepository(IPlaylistRepository):
    """SQLAlchemy implementation of Playlist repository (embedded songs)."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def query(self, filter_by: PlaylistFilter) -> list[Playlist]:
        stmt = select(PlaylistModel)
        if filter_by.user_id:
            stmt = stmt.where(PlaylistModel.created_by_id == filter_by.user_id)
        if filter_by.is_liked_songs is not None:
            stmt = stmt.where(PlaylistModel.is_liked_songs == filter_by.is_liked_songs)
        if filter_by.playlist_ids:
            stmt = stmt.where(PlaylistModel.id.in_(filter_by.playlist_ids))
        if filter_by.search:
            stmt = stmt.where(
                PlaylistModel.search_text.contains(filter_by.search.lower(), autoescape=True)
            )
        if filter_by.genre:
            tag = f"|{filter_by.genre.strip().lower()}|"
            stmt = stmt.where(PlaylistModel.genre_tags.contains(tag, autoescape=True))
        stmt = _apply_sort(
            stmt,
            PLAYLIST_SORT_COLUMNS,
            filter_by.sort_by,
            filter_by.sort_dir,
            PlaylistModel.id,
        )
        stmt = _apply_page(stmt, filter_by.page)
        result = await self.session.execute(stmt)
        return [model.to_entity() for model in result.scalars().all()]

    async def _get_model(self, playlist_id: PlaylistId) -> PlaylistModel:
        model = await self.session.get(PlaylistModel, playlist_id.value)
        if model is None:
            raise EntityNotFoundException("Playlist", playlist_id.value)
        return model

    async def get_by_id(self, playlist_id: PlaylistId) -> Playlist | None:
        model = await self.session.get(PlaylistModel, playlist_id.value)
        return model.to_entity() if model else None

    async def get_by_external_id(self, external_playlist_id: str) -> Playlist | None:
        result = await self.session.execute(
            select(PlaylistModel)
            .where(PlaylistModel.external_playlist_id == external_playlist_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return model.to_entity() if model else None

    async def add(self, playlist: Playlist) -> Playlist:
        model = PlaylistModel.from_entity(playlist, playlist.id or DocumentId.generate())
        self.session.add(model)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise DuplicateEntityException(
                "Playlist", playlist.external_playlist_id or model.id
            ) from e
        return model.to_entity()

    # Hey future me - this is THE upsert for catalog imports. Rules:
    # 1. Playlists whose external_playlist_id is already stored come back AS STORED (no write).
    # 2. Duplicates inside one batch are inserted once; every occurrence gets the same record.
    # 3. Each insert has its own SAVEPOINT - a bad record is logged and skipped, the rest land.
    # 4. A unique-index hit means someone else inserted it meanwhile: return THEIR record.
    # Calling it twice with the same input inserts nothing the second time.
    async def add_many(self, playlists: list[Playlist]) -> list[Playlist]:
        if not playlists:
            return []

        external_ids = list(
            dict.fromkeys(p.external_playlist_id for p in playlists if p.external_playlist_id)
        )
        stored: dict[str, Playlist] = {}
        if external_ids:
            result = await self.session.execute(
                select(PlaylistModel).where(PlaylistModel.external_playlist_id.in_(external_ids))
            )
            stored = {
                model.external_playlist_id: model.to_entity()
                for model in result.scalars().all()
                if model.external_playlist_id
            }
        already_present = len(stored)

        inserted = 0
        output: list[Playlist] = []
        for playlist in playlists:
            external_id = playlist.external_playlist_id
            if external_id and external_id in stored:
                output.append(stored[external_id])
                continue

            try:
                async with self.session.begin_nested():
                    model = PlaylistModel.from_entity(playlist, DocumentId.generate())
                    self.session.add(model)
                    await self.session.flush()
                record = model.to_entity()
                inserted += 1
            except IntegrityError:
                existing = await self.get_by_external_id(external_id) if external_id else None
                if existing is None:
                    logger.warning("Skipping playlist %r: insert rejected", playlist.title)
                    continue
                record = existing
            except SQLAlchemyError as e:
                logger.warning("Skipping playlist %r: %s", playlist.title, e)
                continue

            if external_id:
                stored[external_id] = record
            output.append(record)

        logger.info(
            "Playlist upsert: %d received, %d already present, %d inserted",
            len(playlists),
            already_present,
            inserted,
        )
        return output

    async def update(self, playlist: Playlist) -> Playlist:
        if playlist.id is None:
            raise ValidationException("Playlist id missing")
        model = await self._get_model(playlist.id)
        model.apply(playlist)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise DuplicateEntityException(
                "Playlist", playlist.external_playlist_id or playlist.id.value
            ) from e
        return model.to_entity()

    async def delete(self, playlist_id: PlaylistId) -> None:
        result = await self.session.execute(
            delete(PlaylistModel).where(PlaylistModel.id == playlist_id.value)
        )
        if result.rowcount == 0:  # type: ignore[attr-defined]
            raise EntityNotFoundException("Playlist", playlist_id.value)

    async def add_song(self, playlist_id: PlaylistId, song: Song) -> Playlist:
        model = await self._get_model(playlist_id)
        playlist = model.to_entity()
        playlist.add_song(song)
        model.set_songs(playlist.songs)
        await self.session.flush()
        return model.to_entity()

    async def remove_song(self, playlist_id: PlaylistId, song_id: str) -> Playlist:
        model = await self._get_model(playlist_id)
        playlist = model.to_entity()
        if not playlist.remove_song(song_id):
            raise EntityNotFoundException("Song", song_id)
        model.set_songs(playlist.songs)
        await self.session.flush()
        return model.to_entity()

    # Listen, the three video fields are written in ONE statement (the songs JSON is replaced
    # as a whole), so there is no moment where a reader sees url without duration.
    async def set_song_enrichment(self, playlist_id: PlaylistId, enriched: Song) -> Song:
        if not enriched.is_enriched or enriched.youtube_video_id is None:
            raise ValidationException(f"Song {enriched.id} carries no video data")
        model = await self._get_model(playlist_id)

        playlist = model.to_entity()
        updated: Song | None = None
        songs: list[Song] = []
        for song in playlist.songs:
            if song.id == enriched.id:
                song = song.with_enrichment(enriched.youtube_video_id, enriched.duration or 0)
                updated = song
            songs.append(song)
        if updated is None:
            raise EntityNotFoundException("Song", enriched.id)

        model.songs = [song_to_document(song) for song in songs]
        await self.session.flush()
        return updated


class UserRepository(IUserRepository):
    """SQLAlchemy implementation of the user collection."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def query(self, filter_by: UserFilter) -> list[User]:
        stmt = select(UserModel)
        if filter_by.search:
            stmt = stmt.where(
                or_(
                    UserModel.username.icontains(filter_by.search, autoescape=True),
                    UserModel.full_name.icontains(filter_by.search, autoescape=True),
                )
            )
        stmt = _apply_page(stmt.order_by(UserModel.id), filter_by.page)
        result = await self.session.execute(stmt)
        return [model.to_entity() for model in result.scalars().all()]

    async def _get_model(self, user_id: UserId) -> UserModel:
        model = await self.session.get(UserModel, user_id.value)
        if model is None:
            raise EntityNotFoundException("User", user_id.value)
        return model

    async def get_by_id(self, user_id: UserId) -> User | None:
        model = await self.session.get(UserModel, user_id.value)
        return model.to_entity() if model else None

    async def get_by_username(self, username: str) -> User | None:
        result = await self.session.execute(
            select(UserModel).where(UserModel.username == username.strip().lower())
        )
        model = result.scalar_one_or_none()
        return model.to_entity() if model else None

    async def _ensure_unique(self, user: User) -> None:
        stmt = select(UserModel).where(
            or_(UserModel.username == user.username, UserModel.email == user.email)
        )
        if user.id is not None:
            stmt = stmt.where(UserModel.id != user.id.value)
        clash = (await self.session.execute(stmt)).scalars().first()
        if clash is not None:
            field = "username" if clash.username == user.username else "email"
            raise DuplicateEntityException(
                "User", user.username if field == "username" else user.email
            )

    async def add(self, user: User) -> User:
        await self._ensure_unique(user)
        model = UserModel.from_entity(user, user.id or DocumentId.generate())
        self.session.add(model)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise DuplicateEntityException("User", user.username) from e
        return model.to_entity()

    async def update(self, user: User) -> User:
        if user.id is None:
            raise ValidationException("User id missing")
        model = await self._get_model(user.id)
        await self._ensure_unique(user)
        model.apply(user)
        await self.session.flush()
        return model.to_entity()

    async def delete(self, user_id: UserId) -> None:
        result = await self.session.execute(delete(UserModel).where(UserModel.id == user_id.value))
        if result.rowcount == 0:  # type: ignore[attr-defined]
            raise EntityNotFoundException("User", user_id.value)

    async def add_to_library(self, user_id: UserId, playlist_id: PlaylistId) -> User:
        model = await self._get_model(user_id)
        library = list(model.library_playlist_ids or [])
        if playlist_id.value not in library:
            model.library_playlist_ids = [*library, playlist_id.value]
            await self.session.flush()
        return model.to_entity()

    async def remove_from_library(self, user_id: UserId, playlist_id: PlaylistId) -> User:
        model = await self._get_model(user_id)
        library = list(model.library_playlist_ids or [])
        if playlist_id.value not in library:
            raise EntityNotFoundException("Library playlist", playlist_id.value)
        model.library_playlist_ids = [pid for pid in library if pid != playlist_id.value]
        await self.session.flush()
        return model.to_entity()


__all__ = [
    "PLAYLIST_SORT_COLUMNS",
    "SONG_SORT_COLUMNS",
    "PlaylistRepository",
    "SongRepository",
    "UserRepository",
]
