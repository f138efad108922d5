"""Watch page lookup and previous/next navigation."""

from __future__ import annotations

import asyncio

import pytest

from app.database import Database
from app.db_models import AnimeEpisode, Episode
from app.services.catalog import CatalogService
from app.services.episodes import EpisodeService, build_episode_nav
from app.services.taxonomy import TaxonomyCache
from app.utils import decode_link_url


def _refs(*urls: str) -> list[AnimeEpisode]:
    return [
        AnimeEpisode(title=f"Ep {index}", url=url, position=index)
        for index, url in enumerate(urls)
    ]


def test_nav_middle_episode_links_both_ways() -> None:
    refs = _refs("/show/1", "/show/2", "/show/3")

    nav = build_episode_nav(refs, "/show/2", "show")

    assert nav.prev is not None and nav.prev.watch_url == "/anime/show/1"
    assert nav.next is not None and nav.next.watch_url == "/anime/show/3"
    assert nav.all == "/anime/show"


def test_nav_edges_and_missing_urls() -> None:
    refs = _refs("/show/1", "/show/2")

    first = build_episode_nav(refs, "/show/1", "show")
    assert first.prev is None and first.next is not None

    last = build_episode_nav(refs, "/show/2", "show")
    assert last.next is None and last.prev is not None

    unknown = build_episode_nav(refs, "/show/9", "show")
    assert unknown.prev is None and unknown.next is None
    assert unknown.all == "/anime/show"

    orphan = build_episode_nav(refs, "/show/1", None)
    assert orphan.all is None and orphan.prev is None


def test_nav_all_link_quotes_parent_slug() -> None:
    nav = build_episode_nav(_refs("/a b/1"), "/a b/1", "a b")
    assert nav.all == "/anime/a%20b"


async def _episode_service(settings, seed_catalog) -> tuple[Database, EpisodeService]:
    database = Database(settings.database_url)
    await database.create_all()
    await seed_catalog(database.session_factory)
    catalog = CatalogService(
        settings, database.session_factory, TaxonomyCache(database.session_factory)
    )
    return database, EpisodeService(database.session_factory, catalog)


def test_watch_page_encodes_links_and_hides_bonus(settings, seed_catalog) -> None:
    async def runner() -> None:
        database, service = await _episode_service(settings, seed_catalog)

        watch = await service.get_watch_page("one-piece", "2")

        assert watch.episode.title == "One Piece Episode 2"
        assert [stream.name for stream in watch.episode.streaming] == ["Main"]
        assert decode_link_url(watch.episode.streaming[0].url) == "https://video.test/2"
        link = watch.episode.downloads[0].links[0]
        assert decode_link_url(link.url) == "https://dl.test/2"
        assert watch.nav.prev.url == "/one-piece/1"
        assert watch.nav.next.url == "/one-piece/3"
        assert watch.parent is not None and watch.parent.page_slug == "one-piece"
        assert all(card.page_slug != "one-piece" for card in watch.recommendations)

        await database.dispose()

    asyncio.run(runner())


def test_watch_page_without_parent_renders_empty_nav(settings, seed_catalog) -> None:
    async def runner() -> None:
        database, service = await _episode_service(settings, seed_catalog)
        async with database.session_factory() as session:
            session.add(Episode(episode_slug="/orphan/1", title="Orphan 1"))
            await session.commit()

        watch = await service.get_watch_page("orphan", 1)

        assert watch.parent is None
        assert watch.nav.prev is None and watch.nav.next is None and watch.nav.all is None
        assert watch.episode.thumbnail_url == "/images/default_thumb.jpg"

        with pytest.raises(KeyError):
            await service.get_watch_page("one-piece", "99")

        await database.dispose()

    asyncio.run(runner())
