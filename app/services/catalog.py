"""Catalog listing pipeline and detail lookups."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Literal, Sequence

from sqlalchemy import ColumnElement, func, literal, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import raiseload

from ..config import Settings
from ..db_models import Anime, AnimeGenre, Episode
from ..models import (
    AnimeCard,
    AnimeDetail,
    AnimePage,
    EpisodeCard,
    HomeFeed,
    encode_catalog_image_urls,
)
from ..utils import extract_years, page_offset, parse_page, total_pages, utcnow
from .taxonomy import GENRES, RELEASED, STATUS, STUDIO, TYPE, TaxonomyCache

logger = logging.getLogger(__name__)

TaxonomyKind = Literal["genre", "status", "type", "studio", "year"]
PopularRange = Literal["weekly", "monthly", "all"]

YEAR_SLUG_RE = re.compile(r"^\d{4}$")

_INFO_FIELDS: dict[str, tuple[str, str]] = {
    "status": (STATUS, "Status"),
    "type": (TYPE, "Type"),
    "studio": (STUDIO, "Studio"),
}
_KIND_LABELS: dict[str, str] = {
    "genre": "Genre",
    "status": "Status",
    "type": "Type",
    "studio": "Studio",
    "year": "Year",
}


@dataclass(slots=True)
class TaxonomyListing:
    """Result of a taxonomy filter page."""

    kind: str
    slug: str
    value: str
    page: AnimePage

    @property
    def title(self) -> str:
        return f"{_KIND_LABELS[self.kind]}: {self.value}"


def info_equals(key: str, value: str) -> ColumnElement[bool]:
    """Case-insensitive exact match on an ``info`` attribute."""

    return func.lower(Anime.info[key].as_string()) == func.lower(literal(value))


def has_genre(genre: str) -> ColumnElement[bool]:
    return Anime.id.in_(select(AnimeGenre.anime_id).where(AnimeGenre.name == genre))


def genre_contains(fragment: str) -> ColumnElement[bool]:
    return Anime.id.in_(
        select(AnimeGenre.anime_id).where(
            AnimeGenre.name.icontains(fragment, autoescape=True)
        )
    )


def released_in(year: str) -> ColumnElement[bool]:
    return Anime.info["Released"].as_string().contains(year, autoescape=True)


def title_contains(query: str) -> ColumnElement[bool]:
    return Anime.title.icontains(query, autoescape=True)


class CatalogService:
    """Read-side queries over the catalog."""

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        taxonomy: TaxonomyCache,
    ):
        self._settings = settings
        self._session_factory = session_factory
        self._taxonomy = taxonomy
        self._background_tasks: set[asyncio.Task[None]] = set()

    @property
    def taxonomy(self) -> TaxonomyCache:
        return self._taxonomy

    @property
    def page_size(self) -> int:
        return self._settings.items_per_page

    async def list_by_filter(
        self,
        criteria: Sequence[ColumnElement[bool]] = (),
        page: object = 1,
        page_size: int | None = None,
        *,
        ascending: bool = False,
    ) -> AnimePage:
        """Return one page of entries matching ``criteria``.

        The count and the page fetch run concurrently on separate sessions,
        so they can disagree under concurrent writes.
        """

        current_page = parse_page(page)
        limit = page_size or self.page_size
        offset = page_offset(current_page, limit)
        total_count, records = await asyncio.gather(
            self._count(criteria),
            self._fetch(criteria, offset=offset, limit=limit, ascending=ascending),
        )
        return AnimePage(
            items=encode_catalog_image_urls(records),
            total_count=total_count,
            total_pages=total_pages(total_count, limit),
            current_page=current_page,
        )

    async def _count(self, criteria: Sequence[ColumnElement[bool]]) -> int:
        async with self._session_factory() as session:
            stmt = select(func.count(Anime.id)).where(*criteria)
            result = await session.execute(stmt)
            return int(result.scalar_one())

    async def _fetch(
        self,
        criteria: Sequence[ColumnElement[bool]],
        *,
        offset: int,
        limit: int,
        ascending: bool = False,
    ) -> list[Anime]:
        order = Anime.id.asc() if ascending else Anime.id.desc()
        async with self._session_factory() as session:
            stmt = (
                select(Anime)
                .options(raiseload(Anime.episode_refs))
                .where(*criteria)
                .order_by(order)
                .offset(offset)
                .limit(limit)
            )
            result = await session.scalars(stmt)
            return list(result.all())

    async def search(self, query: str, page: object = 1) -> AnimePage:
        cleaned = (query or "").strip()
        if not cleaned:
            raise ValueError("Search query (q) is required.")
        return await self.list_by_filter([title_contains(cleaned)], page)

    async def full_list(self, page: object = 1) -> AnimePage:
        """Every entry in insertion order, oldest first."""

        return await self.list_by_filter((), page, ascending=True)

    async def list_by_taxonomy(
        self, kind: TaxonomyKind, slug: str, page: object = 1
    ) -> TaxonomyListing:
        """Resolve a taxonomy slug and list the matching entries.

        Raises ``KeyError`` when the slug does not match any stored value.
        """

        if kind == "year":
            if not YEAR_SLUG_RE.match(slug or ""):
                raise KeyError(f"Invalid year: {slug}")
            listing = await self.list_by_filter([released_in(slug)], page)
            return TaxonomyListing(kind=kind, slug=slug, value=slug, page=listing)

        if kind == "genre":
            original = await self._taxonomy.resolve_slug(GENRES, slug)
            criteria = [has_genre(original)] if original is not None else []
        elif kind in _INFO_FIELDS:
            field, key = _INFO_FIELDS[kind]
            original = await self._taxonomy.resolve_slug(field, slug)
            criteria = [info_equals(key, original)] if original is not None else []
        else:
            raise ValueError(f"Unknown taxonomy kind: {kind}")

        if original is None:
            logger.warning("%s slug not found: %s", _KIND_LABELS[kind], slug)
            raise KeyError(f"{_KIND_LABELS[kind]} not found: {slug}")

        listing = await self.list_by_filter(criteria, page)
        return TaxonomyListing(kind=kind, slug=slug, value=original, page=listing)

    async def genre_index(self) -> list[str]:
        return sorted(await self._taxonomy.get_distinct_values(GENRES))

    async def year_index(self) -> list[str]:
        return extract_years(await self._taxonomy.get_distinct_values(RELEASED))

    async def latest_series(self, limit: int = 8) -> list[AnimeCard]:
        async with self._session_factory() as session:
            stmt = (
                select(Anime)
                .options(raiseload(Anime.episode_refs))
                .order_by(Anime.created_at.desc(), Anime.id.desc())
                .limit(limit)
            )
            records = (await session.scalars(stmt)).all()
        return encode_catalog_image_urls(records)

    async def home_feed(self, page: object = 1, *, episode_limit: int = 20) -> HomeFeed:
        """Latest episodes (paginated) plus the newest catalog entries."""

        current_page = parse_page(page)
        offset = page_offset(current_page, episode_limit)

        async def _episodes() -> list[Episode]:
            async with self._session_factory() as session:
                stmt = (
                    select(Episode)
                    .order_by(Episode.created_at.desc(), Episode.id.desc())
                    .offset(offset)
                    .limit(episode_limit)
                )
                return list((await session.scalars(stmt)).all())

        async def _episode_count() -> int:
            async with self._session_factory() as session:
                result = await session.execute(select(func.count(Episode.id)))
                return int(result.scalar_one())

        episodes, total_count, latest = await asyncio.gather(
            _episodes(), _episode_count(), self.latest_series()
        )
        return HomeFeed(
            episodes=[EpisodeCard.from_record(episode) for episode in episodes],
            latest_series=latest,
            current_page=current_page,
            total_pages=total_pages(total_count, episode_limit),
            total_episodes=total_count,
        )

    async def get_anime(self, page_slug: str, *, count_view: bool = True) -> AnimeDetail:
        """Return a catalog entry by slug, raising ``KeyError`` when absent."""

        async with self._session_factory() as session:
            stmt = select(Anime).where(Anime.page_slug == page_slug)
            anime = (await session.scalars(stmt)).one_or_none()
            if anime is None:
                logger.warning("Anime %s not found", page_slug)
                raise KeyError(f"Anime not found: {page_slug}")
            detail = AnimeDetail.from_record(anime)
        if count_view:
            self.record_view(page_slug)
        return detail

    async def recommendations(
        self, *, exclude_id: int | None = None, size: int = 8
    ) -> list[AnimeCard]:
        """Random sample of catalog entries."""

        async with self._session_factory() as session:
            stmt = select(Anime).options(raiseload(Anime.episode_refs))
            if exclude_id is not None:
                stmt = stmt.where(Anime.id != exclude_id)
            stmt = stmt.order_by(func.random()).limit(size)
            records = (await session.scalars(stmt)).all()
        return encode_catalog_image_urls(records)

    async def random_slug(self) -> str | None:
        async with self._session_factory() as session:
            stmt = select(Anime.page_slug).order_by(func.random()).limit(1)
            return (await session.execute(stmt)).scalar_one_or_none()

    async def popular(self, window: str = "weekly", *, limit: int = 10) -> list[AnimeCard]:
        """Most viewed entries updated within the window (``weekly``/``monthly``/``all``)."""

        criteria: list[ColumnElement[bool]] = []
        now = utcnow()
        if window == "weekly":
            criteria.append(Anime.updated_at >= now - timedelta(days=7))
        elif window == "monthly":
            criteria.append(Anime.updated_at >= now - timedelta(days=30))
        async with self._session_factory() as session:
            stmt = (
                select(Anime)
                .options(raiseload(Anime.episode_refs))
                .where(*criteria)
                .order_by(Anime.view_count.desc(), Anime.id.desc())
                .limit(limit)
            )
            records = (await session.scalars(stmt)).all()
        return encode_catalog_image_urls(records)

    async def released_this_year(self, *, limit: int = 6) -> list[AnimeCard]:
        return await self._latest_matching([released_in(str(utcnow().year))], limit)

    async def genre_strip(self, fragment: str, *, limit: int = 6) -> list[AnimeCard]:
        return await self._latest_matching([genre_contains(fragment)], limit)

    async def _latest_matching(
        self, criteria: Sequence[ColumnElement[bool]], limit: int
    ) -> list[AnimeCard]:
        async with self._session_factory() as session:
            stmt = (
                select(Anime)
                .options(raiseload(Anime.episode_refs))
                .where(*criteria)
                .order_by(Anime.created_at.desc(), Anime.id.desc())
                .limit(limit)
            )
            records = (await session.scalars(stmt)).all()
        return encode_catalog_image_urls(records)

    def record_view(self, page_slug: str) -> None:
        """Increment the view counter in a detached task.

        Failures are logged and never reach the request that triggered them.
        """

        task = asyncio.create_task(self._increment_view_count(page_slug))
        self._background_tasks.add(task)
        task.add_done_callback(self._on_view_task_done)

    async def drain_background_tasks(self) -> None:
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)

    async def _increment_view_count(self, page_slug: str) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(Anime)
                .where(Anime.page_slug == page_slug)
                .values(view_count=Anime.view_count + 1)
            )
            await session.commit()

    def _on_view_task_done(self, task: asyncio.Task[None]) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Failed to increment view count: %s", exc, exc_info=exc)
