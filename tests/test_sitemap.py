"""Sitemap and robots.txt generation tests."""

from __future__ import annotations

import asyncio

from app.database import Database
from app.services.sitemap import SitemapService, URLSET_FOOTER, URLSET_HEADER
from app.services.taxonomy import TaxonomyCache


async def _collect(stream) -> str:
    return "".join([chunk async for chunk in stream])


def _service(settings, database: Database) -> SitemapService:
    return SitemapService(
        settings, database.session_factory, TaxonomyCache(database.session_factory)
    )


def test_empty_database_still_yields_a_valid_document(settings) -> None:
    async def runner() -> None:
        database = Database(settings.database_url)
        await database.create_all()
        service = _service(settings, database)

        assert await _collect(service.stream_anime_sitemap()) == URLSET_HEADER + URLSET_FOOTER
        assert await _collect(service.stream_episode_sitemap()) == URLSET_HEADER + URLSET_FOOTER

        await database.dispose()

    asyncio.run(runner())


def test_anime_and_episode_sitemaps_list_every_row(settings, seed_catalog) -> None:
    async def runner() -> None:
        database = Database(settings.database_url)
        await database.create_all()
        await seed_catalog(database.session_factory)
        service = _service(settings, database)

        anime = await _collect(service.stream_anime_sitemap())
        assert anime.startswith(URLSET_HEADER) and anime.endswith(URLSET_FOOTER)
        assert anime.count("<url>") == 3
        assert "<loc>https://animehub.test/anime/one-piece</loc>" in anime
        assert "<lastmod>2024-01-01</lastmod>" in anime

        episodes = await _collect(service.stream_episode_sitemap())
        assert episodes.count("<url>") == 3
        assert "<loc>https://animehub.test/anime/one-piece/2</loc>" in episodes

        await database.dispose()

    asyncio.run(runner())


def test_taxonomy_sitemap_uses_slugs_and_years(settings, seed_catalog) -> None:
    async def runner() -> None:
        database = Database(settings.database_url)
        await database.create_all()
        await seed_catalog(database.session_factory)
        service = _service(settings, database)

        body = await service.taxonomy_sitemap()

        assert "https://animehub.test/genre/shonen" in body
        assert "https://animehub.test/type/movie" in body
        assert "https://animehub.test/studio/toei-animation" in body
        assert "https://animehub.test/year/1999" in body
        assert "/status/" not in body

        await database.dispose()

    asyncio.run(runner())


def test_index_and_robots(settings) -> None:
    service = SitemapService(settings, None, None)  # type: ignore[arg-type]

    index = service.sitemap_index()
    assert index.count("<sitemap>") == 4
    assert "https://animehub.test/sitemap-episode.xml" in index

    robots = service.robots_txt()
    assert "Disallow: /admin/" in robots
    assert "Disallow: /api/" in robots
    assert robots.endswith("Sitemap: https://animehub.test/sitemap_index.xml")

    static = service.static_sitemap()
    assert "<loc>https://animehub.test/home</loc>" in static
