"""XML sitemap and robots.txt generation."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import AsyncIterator, Iterable
from urllib.parse import quote
from xml.sax.saxutils import escape

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings
from ..db_models import Anime, Episode
from ..utils import extract_years, slugify, utcnow
from .taxonomy import GENRES, RELEASED, STUDIO, TYPE, TaxonomyCache

logger = logging.getLogger(__name__)

URLSET_HEADER = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
)
URLSET_FOOTER = "</urlset>"
INDEX_HEADER = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    '<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
)
INDEX_FOOTER = "</sitemapindex>"

SUB_SITEMAPS = (
    "sitemap-static.xml",
    "sitemap-anime.xml",
    "sitemap-episode.xml",
    "sitemap-taxonomies.xml",
)

STATIC_PAGES: tuple[tuple[str, str, str], ...] = (
    ("/", "monthly", "0.8"),
    ("/home", "daily", "1.0"),
    ("/anime-list", "daily", "0.9"),
    ("/genre-list", "weekly", "0.7"),
    ("/year-list", "yearly", "0.7"),
    ("/schedule", "daily", "0.8"),
)

ROBOTS_DISALLOW = ("/admin/", "/search", "/safelink", "/player")

STREAM_BATCH_SIZE = 500


def format_lastmod(value: datetime | None = None) -> str:
    return (value or utcnow()).strftime("%Y-%m-%d")


def url_entry(
    loc: str,
    *,
    changefreq: str,
    priority: str,
    lastmod: str | None = None,
) -> str:
    parts = [f"<url><loc>{escape(loc)}</loc>"]
    if lastmod:
        parts.append(f"<lastmod>{lastmod}</lastmod>")
    parts.append(f"<changefreq>{changefreq}</changefreq><priority>{priority}</priority></url>")
    return "".join(parts)


class SitemapService:
    """Builds the sitemap documents served under ``/sitemap*.xml``."""

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        taxonomy: TaxonomyCache,
    ):
        self._settings = settings
        self._session_factory = session_factory
        self._taxonomy = taxonomy

    @property
    def site_url(self) -> str:
        return self._settings.site_url

    def robots_txt(self) -> str:
        lines = ["User-agent: *", "Allow: /", ""]
        lines.extend(f"Disallow: {path}" for path in ROBOTS_DISALLOW)
        lines.extend(["", "Disallow: /api/", "", f"Sitemap: {self.site_url}/sitemap_index.xml"])
        return "\n".join(lines)

    def sitemap_index(self) -> str:
        lastmod = format_lastmod()
        body = "".join(
            f"<sitemap><loc>{escape(f'{self.site_url}/{name}')}</loc>"
            f"<lastmod>{lastmod}</lastmod></sitemap>"
            for name in SUB_SITEMAPS
        )
        return f"{INDEX_HEADER}{body}{INDEX_FOOTER}"

    def static_sitemap(self) -> str:
        lastmod = format_lastmod()
        body = "".join(
            url_entry(
                f"{self.site_url}{path}",
                changefreq=changefreq,
                priority=priority,
                lastmod=lastmod,
            )
            for path, changefreq, priority in STATIC_PAGES
        )
        return f"{URLSET_HEADER}{body}{URLSET_FOOTER}"

    async def stream_anime_sitemap(self) -> AsyncIterator[str]:
        """Yield the anime sitemap one entry at a time."""

        yield URLSET_HEADER
        try:
            async with self._session_factory() as session:
                stmt = (
                    select(Anime.page_slug, Anime.created_at)
                    .order_by(Anime.id)
                    .execution_options(yield_per=STREAM_BATCH_SIZE)
                )
                result = await session.stream(stmt)
                async for page_slug, created_at in result:
                    yield url_entry(
                        f"{self.site_url}/anime/{quote(page_slug, safe='')}",
                        changefreq="weekly",
                        priority="0.9",
                        lastmod=format_lastmod(created_at),
                    )
        except Exception:  # pragma: no cover - depends on the database failing mid-stream
            logger.exception("Failed to stream sitemap-anime.xml")
            return
        yield URLSET_FOOTER

    async def stream_episode_sitemap(self) -> AsyncIterator[str]:
        """Yield the episode sitemap one entry at a time."""

        yield URLSET_HEADER
        try:
            async with self._session_factory() as session:
                stmt = (
                    select(Episode.episode_slug, Episode.created_at)
                    .order_by(Episode.id)
                    .execution_options(yield_per=STREAM_BATCH_SIZE)
                )
                result = await session.stream(stmt)
                async for episode_slug, created_at in result:
                    yield url_entry(
                        f"{self.site_url}/anime{quote(episode_slug, safe='/')}",
                        changefreq="weekly",
                        priority="0.8",
                        lastmod=format_lastmod(created_at),
                    )
        except Exception:  # pragma: no cover - depends on the database failing mid-stream
            logger.exception("Failed to stream sitemap-episode.xml")
            return
        yield URLSET_FOOTER

    async def taxonomy_sitemap(self) -> str:
        """Genre, type and studio listings plus every release year."""

        genres = await self._taxonomy.get_distinct_values(GENRES)
        types = await self._taxonomy.get_distinct_values(TYPE)
        studios = await self._taxonomy.get_distinct_values(STUDIO)
        released = await self._taxonomy.get_distinct_values(RELEASED)

        body: list[str] = []
        body.extend(self._slug_entries("genre", genres, changefreq="daily"))
        body.extend(self._slug_entries("type", types, changefreq="weekly"))
        body.extend(self._slug_entries("studio", studios, changefreq="weekly"))
        for year in extract_years(released):
            body.append(
                url_entry(
                    f"{self.site_url}/year/{year}", changefreq="yearly", priority="0.6"
                )
            )
        return f"{URLSET_HEADER}{''.join(body)}{URLSET_FOOTER}"

    def _slug_entries(
        self, prefix: str, values: Iterable[str], *, changefreq: str
    ) -> list[str]:
        entries = []
        for value in values:
            slug = slugify(value)
            if slug:
                entries.append(
                    url_entry(
                        f"{self.site_url}/{prefix}/{slug}",
                        changefreq=changefreq,
                        priority="0.7",
                    )
                )
        return entries
