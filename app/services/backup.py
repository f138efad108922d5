"""JSON backup export and restore of the whole database."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Sequence

from pydantic import Field, ValidationError
from sqlalchemy import Row, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import (
    Anime,
    AnimeEpisode,
    AnimeGenre,
    Bookmark,
    Comment,
    Episode,
    Report,
    User,
)
from ..models import ApiModel
from ..utils import utcnow

logger = logging.getLogger(__name__)

EXPORT_BATCH_SIZE = 200


class EpisodeRefDocument(ApiModel):
    title: str = ""
    url: str
    date: str | None = None
    episode_id: int | None = None


class AnimeDocument(ApiModel):
    id: int
    page_slug: str
    title: str = ""
    alternative_title: str | None = None
    image_url: str | None = None
    synopsis: str = ""
    info: dict[str, Any] = Field(default_factory=dict)
    genres: list[str] = Field(default_factory=list)
    episodes: list[EpisodeRefDocument] = Field(default_factory=list)
    view_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_record(cls, anime: Anime) -> "AnimeDocument":
        return cls(
            id=anime.id,
            page_slug=anime.page_slug,
            title=anime.title,
            alternative_title=anime.alternative_title,
            image_url=anime.image_url,
            synopsis=anime.synopsis or "",
            info=dict(anime.info or {}),
            genres=anime.genres,
            episodes=[
                EpisodeRefDocument(
                    title=ref.title, url=ref.url, date=ref.date, episode_id=ref.episode_id
                )
                for ref in anime.episode_refs
            ],
            view_count=anime.view_count or 0,
            created_at=anime.created_at,
            updated_at=anime.updated_at,
        )

    def to_record(self) -> Anime:
        now = utcnow()
        anime = Anime(
            id=self.id,
            page_slug=self.page_slug,
            title=self.title,
            alternative_title=self.alternative_title,
            image_url=self.image_url,
            synopsis=self.synopsis,
            info=self.info,
            view_count=self.view_count,
            created_at=self.created_at or now,
            updated_at=self.updated_at or now,
        )
        anime.set_genres(self.genres)
        anime.episode_refs = [
            AnimeEpisode(
                title=ref.title,
                url=ref.url,
                date=ref.date,
                episode_id=ref.episode_id,
                position=position,
            )
            for position, ref in enumerate(self.episodes)
        ]
        return anime


class EpisodeDocument(ApiModel):
    id: int
    episode_slug: str
    title: str = ""
    streaming: list[dict[str, Any]] = Field(default_factory=list)
    downloads: list[dict[str, Any]] = Field(default_factory=list)
    anime_title: str | None = None
    anime_slug: str | None = None
    anime_image_url: str | None = None
    thumbnail_url: str | None = None
    episode_date: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_record(cls, episode: Episode) -> "EpisodeDocument":
        return cls(
            id=episode.id,
            episode_slug=episode.episode_slug,
            title=episode.title,
            streaming=list(episode.streaming or []),
            downloads=list(episode.downloads or []),
            anime_title=episode.anime_title,
            anime_slug=episode.anime_slug,
            anime_image_url=episode.anime_image_url,
            thumbnail_url=episode.thumbnail_url,
            episode_date=episode.episode_date,
            created_at=episode.created_at,
            updated_at=episode.updated_at,
        )

    def to_record(self) -> Episode:
        now = utcnow()
        return Episode(
            **self.model_dump(exclude={"created_at", "updated_at"}),
            created_at=self.created_at or now,
            updated_at=self.updated_at or now,
        )


class UserDocument(ApiModel):
    id: int
    username: str
    password_hash: str
    created_at: datetime | None = None

    @classmethod
    def from_record(cls, user: User) -> "UserDocument":
        return cls(
            id=user.id,
            username=user.username,
            password_hash=user.password_hash,
            created_at=user.created_at,
        )

    def to_record(self) -> User:
        return User(
            id=self.id,
            username=self.username,
            password_hash=self.password_hash,
            created_at=self.created_at or utcnow(),
        )


class BookmarkDocument(ApiModel):
    id: int
    user_id: int
    anime_id: int
    created_at: datetime | None = None

    @classmethod
    def from_record(cls, bookmark: Bookmark) -> "BookmarkDocument":
        return cls(
            id=bookmark.id,
            user_id=bookmark.user_id,
            anime_id=bookmark.anime_id,
            created_at=bookmark.created_at,
        )

    def to_record(self) -> Bookmark:
        return Bookmark(
            id=self.id,
            user_id=self.user_id,
            anime_id=self.anime_id,
            created_at=self.created_at or utcnow(),
        )


class CommentDocument(ApiModel):
    id: int
    episode_id: int
    user_id: int | None = None
    content: str = ""
    created_at: datetime | None = None

    @classmethod
    def from_record(cls, comment: Comment) -> "CommentDocument":
        return cls(
            id=comment.id,
            episode_id=comment.episode_id,
            user_id=comment.user_id,
            content=comment.content,
            created_at=comment.created_at,
        )

    def to_record(self) -> Comment:
        return Comment(
            id=self.id,
            episode_id=self.episode_id,
            user_id=self.user_id,
            content=self.content,
            created_at=self.created_at or utcnow(),
        )


class BackupCollections(ApiModel):
    animes: list[AnimeDocument]
    episodes: list[EpisodeDocument]
    bookmarks: list[BookmarkDocument] = Field(default_factory=list)
    users: list[UserDocument] = Field(default_factory=list)
    comments: list[CommentDocument] = Field(default_factory=list)


class BackupFile(ApiModel):
    exported_at: datetime | None = None
    collections: BackupCollections


@dataclass(slots=True)
class ImportSummary:
    animes: int
    episodes: int
    bookmarks: int
    users: int
    comments: int


# Collection name, mapped class and document factory, in export order.
_COLLECTIONS: tuple[tuple[str, type, Callable[[Any], ApiModel]], ...] = (
    ("animes", Anime, AnimeDocument.from_record),
    ("episodes", Episode, EpisodeDocument.from_record),
    ("bookmarks", Bookmark, BookmarkDocument.from_record),
    ("users", User, UserDocument.from_record),
    ("comments", Comment, CommentDocument.from_record),
)


def backup_filename(site_name: str, now: datetime | None = None) -> str:
    stamp = (now or utcnow()).strftime("%Y-%m-%d")
    return f"backup_{site_name.lower()}_{stamp}.json"


class BackupService:
    """Streams the database out as JSON and restores it from such a file."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def stream_export(self) -> AsyncIterator[str]:
        """Yield the backup document in chunks, one row at a time.

        Failures after the first chunk are logged and end the stream, leaving
        a truncated document.
        """

        exported_at = utcnow().isoformat()
        yield f'{{"exportedAt": {json.dumps(exported_at)}, "collections": {{'
        try:
            for index, (name, model, to_document) in enumerate(_COLLECTIONS):
                if index:
                    yield ","
                yield f"{json.dumps(name)}: ["
                async with self._session_factory() as session:
                    result = await session.stream_scalars(
                        select(model)
                        .order_by(model.id)
                        .execution_options(yield_per=EXPORT_BATCH_SIZE)
                    )
                    first = True
                    async for record in result:
                        document = to_document(record).model_dump_json(by_alias=True)
                        yield document if first else f",{document}"
                        first = False
                yield "]"
        except Exception:
            logger.exception("Backup export failed mid-stream")
            return
        yield "} }"
        logger.info("Backup export finished")

    async def import_backup(self, raw: bytes | str) -> ImportSummary:
        """Replace every collection with the contents of a backup file.

        Runs in one transaction, so a failure leaves the previous data in
        place. Raises ``ValueError`` when the file is not a valid backup.
        """

        try:
            backup = BackupFile.model_validate_json(raw)
        except ValidationError as exc:
            raise ValueError(f"Invalid backup file: {exc.errors()[0]['msg']}") from exc

        collections = backup.collections
        async with self._session_factory() as session:
            async with session.begin():
                logger.warning("Replacing all catalog, user and comment data from backup")
                # Deleting users nulls reports.user_id, so remember authors first.
                authors = (
                    await session.execute(
                        select(Report.id, Report.user_id).where(Report.user_id.is_not(None))
                    )
                ).all()
                for model in (Comment, Bookmark, AnimeEpisode, AnimeGenre, Episode, Anime, User):
                    await session.execute(delete(model))
                session.add_all(document.to_record() for document in collections.users)
                session.add_all(document.to_record() for document in collections.animes)
                session.add_all(document.to_record() for document in collections.episodes)
                await session.flush()
                session.add_all(document.to_record() for document in collections.bookmarks)
                session.add_all(document.to_record() for document in collections.comments)
                await self._relink_report_authors(
                    session, authors, {document.id for document in collections.users}
                )

        summary = ImportSummary(
            animes=len(collections.animes),
            episodes=len(collections.episodes),
            bookmarks=len(collections.bookmarks),
            users=len(collections.users),
            comments=len(collections.comments),
        )
        logger.info("Backup import finished: %s", summary)
        return summary

    @staticmethod
    async def _relink_report_authors(
        session: AsyncSession, authors: Sequence[Row[tuple[int, int]]], restored_ids: set[int]
    ) -> None:
        """Point reports back at their authors when the backup restores them."""

        by_user: dict[int, list[int]] = {}
        for report_id, user_id in authors:
            if user_id in restored_ids:
                by_user.setdefault(user_id, []).append(report_id)
        for user_id, report_ids in by_user.items():
            await session.execute(
                update(Report)
                .where(Report.id.in_(report_ids))
                .values(user_id=user_id)
                .execution_options(synchronize_session=False)
            )
        dropped = len(authors) - sum(len(ids) for ids in by_user.values())
        if dropped:
            logger.info("Cleared the author of %d reports whose users were not restored", dropped)
