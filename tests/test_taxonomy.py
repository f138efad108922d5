"""Distinct-value cache and slug resolution tests."""

from __future__ import annotations

import asyncio
import warnings

import pytest
from sqlalchemy.dialects import sqlite
from sqlalchemy.exc import SAWarning

from app.database import Database
from app.db_models import Anime
from app.services.taxonomy import (
    GENRES,
    RELEASED,
    STATUS,
    STUDIO,
    TaxonomyCache,
    distinct_values_query,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


def test_distinct_values_are_cached_until_expiry(settings, seed_catalog) -> None:
    async def runner() -> None:
        database = Database(settings.database_url)
        await database.create_all()
        await seed_catalog(database.session_factory)
        clock = FakeClock()
        cache = TaxonomyCache(database.session_factory, ttl_seconds=60, clock=clock)

        statuses = await cache.get_distinct_values(STATUS)
        assert sorted(statuses) == ["Completed", "Ongoing"]

        async with database.session_factory() as session:
            session.add(Anime(page_slug="new", title="New", info={"Status": "Hiatus"}))
            await session.commit()

        # Writes do not invalidate; the cached list is served until the TTL passes.
        assert "Hiatus" not in await cache.get_distinct_values(STATUS)
        clock.now += 61
        assert "Hiatus" in await cache.get_distinct_values(STATUS)

        await database.dispose()

    asyncio.run(runner())


def test_resolve_slug_maps_back_to_original_value(settings, seed_catalog) -> None:
    async def runner() -> None:
        database = Database(settings.database_url)
        await database.create_all()
        await seed_catalog(database.session_factory)
        cache = TaxonomyCache(database.session_factory)

        assert await cache.resolve_slug(GENRES, "shonen") == "Shōnen"
        assert await cache.resolve_slug(GENRES, "ADVENTURE") == "Adventure"
        assert await cache.resolve_slug(STUDIO, "toei-animation") == "Toei Animation"
        assert await cache.resolve_slug(STATUS, "missing") is None
        assert await cache.resolve_slug(STATUS, "") is None
        assert "Oct 20, 1999" in await cache.get_distinct_values(RELEASED)

        await database.dispose()

    asyncio.run(runner())


def test_unknown_field_is_rejected(settings) -> None:
    async def runner() -> None:
        database = Database(settings.database_url)
        cache = TaxonomyCache(database.session_factory)
        with pytest.raises(ValueError):
            await cache.get_distinct_values("info.Director")
        await database.dispose()

    asyncio.run(runner())


def test_distinct_queries_compile_without_sqlalchemy_warnings(settings, seed_catalog) -> None:
    async def runner() -> None:
        database = Database(settings.database_url)
        await database.create_all()
        await seed_catalog(database.session_factory)
        cache = TaxonomyCache(database.session_factory)

        with warnings.catch_warnings():
            warnings.simplefilter("error", SAWarning)
            genres = await cache.get_distinct_values(GENRES)
            studios = await cache.get_distinct_values(STUDIO)

        assert sorted(genres) == ["Action", "Adventure", "Fantasy", "Romance", "Shōnen", "Uncensored Drama"]
        assert sorted(studios) == ["CoMix Wave", "Madhouse", "Toei Animation"]

        await database.dispose()

    asyncio.run(runner())


def test_distinct_values_query_uses_select_distinct() -> None:
    for field in (GENRES, STUDIO):
        sql = str(distinct_values_query(field).compile(dialect=sqlite.dialect()))
        assert sql.startswith("SELECT DISTINCT ")
