"""Registration, login, bookmarks and error reports."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import func, select

from app.database import Database
from app.db_models import Bookmark, Report
from app.services.accounts import AccountService


async def _accounts(settings, seed_catalog) -> tuple[Database, AccountService, dict[str, int]]:
    database = Database(settings.database_url)
    await database.create_all()
    ids = await seed_catalog(database.session_factory)
    return database, AccountService(database.session_factory), ids


def test_register_and_authenticate(settings, seed_catalog) -> None:
    async def runner() -> None:
        database, accounts, _ = await _accounts(settings, seed_catalog)

        user = await accounts.register("  Luffy ", "gomugomu")
        assert user.username == "luffy"
        assert user.password_hash != "gomugomu"

        logged_in = await accounts.authenticate("LUFFY", "gomugomu")
        assert logged_in.id == user.id

        with pytest.raises(ValueError, match="already registered"):
            await accounts.register("luffy", "another-pass")
        with pytest.raises(ValueError, match="Invalid username or password"):
            await accounts.authenticate("luffy", "wrong")
        with pytest.raises(ValueError, match="Invalid username or password"):
            await accounts.authenticate("zoro", "gomugomu")
        with pytest.raises(ValueError, match="Username"):
            await accounts.register("x", "gomugomu")
        with pytest.raises(ValueError, match="Password"):
            await accounts.register("nami", "123")

        await database.dispose()

    asyncio.run(runner())


def test_bookmark_upsert_is_idempotent(settings, seed_catalog) -> None:
    async def runner() -> None:
        database, accounts, ids = await _accounts(settings, seed_catalog)
        user = await accounts.register("usopp", "sogeking")

        await accounts.add_bookmark(user.id, ids["frieren"])
        await accounts.add_bookmark(user.id, ids["frieren"])
        await accounts.add_bookmark(user.id, ids["one-piece"])

        async with database.session_factory() as session:
            count = await session.scalar(select(func.count(Bookmark.id)))
        assert count == 2
        assert await accounts.is_bookmarked(user.id, ids["frieren"])
        assert not await accounts.is_bookmarked(user.id, ids["kimi-no-na-wa"])

        cards = await accounts.list_bookmarks(user.id)
        assert {card.page_slug for card in cards} == {"frieren", "one-piece"}
        assert cards[0].image_url.startswith("/images/")

        await accounts.remove_bookmark(user.id, ids["frieren"])
        assert not await accounts.is_bookmarked(user.id, ids["frieren"])

        with pytest.raises(KeyError):
            await accounts.add_bookmark(user.id, 9_999)

        assert await accounts.clear_bookmarks(user.id) == 1
        assert await accounts.list_bookmarks(user.id) == []

        await database.dispose()

    asyncio.run(runner())


def test_submit_report_stores_page_path(settings, seed_catalog) -> None:
    async def runner() -> None:
        database, accounts, _ = await _accounts(settings, seed_catalog)
        user = await accounts.register("sanji", "allblue")

        report = await accounts.submit_report(
            "https://animehub.test/anime/one-piece/2/", "  Video is broken  ", user.id
        )
        assert report.page_path == "/anime/one-piece/2"
        assert report.message == "Video is broken"

        with pytest.raises(ValueError):
            await accounts.submit_report("https://animehub.test/x", "   ", user.id)

        async with database.session_factory() as session:
            count = await session.scalar(select(func.count(Report.id)))
        assert count == 1

        await database.dispose()

    asyncio.run(runner())
