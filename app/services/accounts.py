"""Site members, bookmarks and error reports."""

from __future__ import annotations

import logging
import re

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import Anime, Bookmark, Report, User
from ..models import AnimeCard, encode_catalog_image_urls
from ..utils import hash_password, normalize_page_path

logger = logging.getLogger(__name__)

USERNAME_RE = re.compile(r"^[a-z0-9_.-]{3,32}$")
MIN_PASSWORD_LENGTH = 6
INVALID_CREDENTIALS = "Invalid username or password"


def normalize_username(username: str | None) -> str:
    return (username or "").strip().lower()


class AccountService:
    """Registration, login checks and the per-user bookmark list."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def register(self, username: str, password: str) -> User:
        """Create a member. Raises ``ValueError`` for invalid or taken names."""

        name = normalize_username(username)
        if not USERNAME_RE.match(name):
            raise ValueError(
                "Username must be 3-32 characters of letters, digits, '.', '_' or '-'"
            )
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValueError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )

        async with self._session_factory() as session:
            existing = await session.scalar(select(User.id).where(User.username == name))
            if existing is not None:
                raise ValueError("Username is already registered")
            user = User(username=name, password_hash=hash_password(password))
            session.add(user)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ValueError("Username is already registered") from exc
            logger.info("Registered user %s", name)
            return user

    async def authenticate(self, username: str, password: str) -> User:
        """Return the member for valid credentials, else raise ``ValueError``."""

        name = normalize_username(username)
        async with self._session_factory() as session:
            user = await session.scalar(select(User).where(User.username == name))
        if user is None or not user.check_password(password or ""):
            raise ValueError(INVALID_CREDENTIALS)
        return user

    async def is_bookmarked(self, user_id: int, anime_id: int) -> bool:
        async with self._session_factory() as session:
            return await self._bookmark_exists(session, user_id, anime_id)

    async def add_bookmark(self, user_id: int, anime_id: int) -> None:
        """Bookmark an entry. Adding the same bookmark twice is a no-op."""

        async with self._session_factory() as session:
            anime = await session.scalar(select(Anime.id).where(Anime.id == anime_id))
            if anime is None:
                raise KeyError(f"Anime not found: {anime_id}")
            if await self._bookmark_exists(session, user_id, anime_id):
                return
            session.add(Bookmark(user_id=user_id, anime_id=anime_id))
            try:
                await session.commit()
            except IntegrityError:
                # A concurrent request inserted the same pair first.
                await session.rollback()

    async def remove_bookmark(self, user_id: int, anime_id: int) -> None:
        async with self._session_factory() as session:
            await session.execute(
                delete(Bookmark).where(
                    Bookmark.user_id == user_id, Bookmark.anime_id == anime_id
                )
            )
            await session.commit()

    async def list_bookmarks(self, user_id: int) -> list[AnimeCard]:
        """Bookmarked entries, most recently bookmarked first."""

        async with self._session_factory() as session:
            stmt = (
                select(Anime)
                .join(Bookmark, Bookmark.anime_id == Anime.id)
                .where(Bookmark.user_id == user_id)
                .order_by(Bookmark.created_at.desc(), Bookmark.id.desc())
            )
            records = (await session.scalars(stmt)).all()
        return encode_catalog_image_urls(records)

    async def clear_bookmarks(self, user_id: int) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(Bookmark).where(Bookmark.user_id == user_id)
            )
            await session.commit()
        deleted = result.rowcount or 0
        logger.info("Cleared %d bookmarks for user %s", deleted, user_id)
        return deleted

    async def submit_report(
        self, page_url: str | None, message: str | None, user_id: int | None
    ) -> Report:
        """Store an error report. Raises ``ValueError`` when it is empty."""

        url = (page_url or "").strip()
        text = (message or "").strip()
        if not url or not text:
            raise ValueError("Report must not be empty")
        async with self._session_factory() as session:
            report = Report(
                page_url=url,
                page_path=normalize_page_path(url),
                message=text,
                user_id=user_id,
            )
            session.add(report)
            await session.commit()
            return report

    @staticmethod
    async def _bookmark_exists(session: AsyncSession, user_id: int, anime_id: int) -> bool:
        found = await session.scalar(
            select(Bookmark.id).where(
                Bookmark.user_id == user_id, Bookmark.anime_id == anime_id
            )
        )
        return found is not None
