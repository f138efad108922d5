"""JSON backup export and restore."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime

import pytest
from sqlalchemy import func, select

from app.database import Database
from app.db_models import Anime, AnimeEpisode, Bookmark, Episode, Report, User
from app.services.accounts import AccountService
from app.services.backup import BackupService, backup_filename


async def _export(service: BackupService) -> str:
    return "".join([chunk async for chunk in service.stream_export()])


def test_backup_filename_uses_site_name_and_date() -> None:
    assert backup_filename("AnimeHub", datetime(2024, 5, 6)) == "backup_animehub_2024-05-06.json"


def test_export_then_import_restores_rows(settings, seed_catalog, tmp_path) -> None:
    async def runner() -> None:
        source = Database(settings.database_url)
        await source.create_all()
        ids = await seed_catalog(source.session_factory)
        accounts = AccountService(source.session_factory)
        user = await accounts.register("nico", "ohara123")
        await accounts.add_bookmark(user.id, ids["frieren"])

        raw = await _export(BackupService(source.session_factory))
        document = json.loads(raw)
        assert set(document["collections"]) == {"animes", "episodes", "bookmarks", "users", "comments"}
        assert document["collections"]["animes"][0]["pageSlug"] == "one-piece"
        assert document["collections"]["animes"][0]["episodes"][1]["url"] == "/one-piece/2"
        await source.dispose()

        target = Database(f"sqlite+aiosqlite:///{tmp_path / 'restored.db'}")
        await target.create_all()
        async with target.session_factory() as session:
            session.add(Anime(page_slug="stale", title="Stale", info={}))
            session.add_all([User(id=1, username="old", password_hash="x"), User(id=2, username="gone", password_hash="x")])
            await session.flush()
            session.add_all(
                [
                    Report(page_url="x", page_path="/x", message="orphaned", user_id=2),
                    Report(page_url="y", page_path="/y", message="kept", user_id=user.id),
                ]
            )
            await session.commit()

        summary = await BackupService(target.session_factory).import_backup(raw)
        assert (summary.animes, summary.episodes, summary.users, summary.bookmarks) == (3, 3, 1, 1)

        async with target.session_factory() as session:
            slugs = set((await session.scalars(select(Anime.page_slug))).all())
            refs = await session.scalar(select(func.count(AnimeEpisode.id)))
            episodes = await session.scalar(select(func.count(Episode.id)))
            restored_user = await session.scalar(select(User))
            bookmark = await session.scalar(select(Bookmark))
            reports = dict((await session.execute(select(Report.message, Report.user_id))).all())
        assert slugs == {"one-piece", "frieren", "kimi-no-na-wa"}
        assert refs == 3 and episodes == 3
        assert restored_user.id == user.id and restored_user.check_password("ohara123")
        assert bookmark.anime_id == ids["frieren"]
        assert reports == {"orphaned": None, "kept": user.id}

        restored = AccountService(target.session_factory)
        assert await restored.is_bookmarked(user.id, ids["frieren"])

        await target.dispose()

    asyncio.run(runner())


@pytest.mark.parametrize("raw", ["not json", '{"collections": {"animes": "nope"}}', "{}"])
def test_invalid_backup_is_rejected_without_changes(settings, seed_catalog, raw) -> None:
    async def runner() -> None:
        database = Database(settings.database_url)
        await database.create_all()
        await seed_catalog(database.session_factory)

        with pytest.raises(ValueError, match="Invalid backup file"):
            await BackupService(database.session_factory).import_backup(raw)

        async with database.session_factory() as session:
            assert await session.scalar(select(func.count(Anime.id))) == 3

        await database.dispose()

    asyncio.run(runner())
