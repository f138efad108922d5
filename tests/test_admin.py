"""Back-office catalog operations."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import Database
from app.db_models import Anime, AnimeEpisode, Bookmark, Comment, Episode, Report, User
from app.services.admin import (
    AdminService,
    AnimeForm,
    EpisodeForm,
    ImageUpload,
    format_download_lines,
    parse_download_lines,
    parse_stream_lines,
    split_genres,
    strip_mirrors,
)
from app.services.images import ImageStore


async def _admin(settings, seed_catalog) -> tuple[Database, AdminService]:
    database = Database(settings.database_url)
    await database.create_all()
    await seed_catalog(database.session_factory)
    return database, AdminService(database.session_factory, ImageStore(settings.upload_dir))


def test_form_line_parsers() -> None:
    assert split_genres(" Action, ,Drama ") == ["Action", "Drama"]
    assert parse_stream_lines("Main|https://a\nbroken\n|https://b\nAlt | https://c ") == [
        {"name": "Main", "url": "https://a"},
        {"name": "Alt", "url": "https://c"},
    ]
    downloads = parse_download_lines(
        "720p|Host A|https://a\n480p|Host B|https://b\n720p|Host C|https://c\nbad|line"
    )
    assert downloads == [
        {"quality": "720p", "links": [{"host": "Host A", "url": "https://a"}, {"host": "Host C", "url": "https://c"}]},
        {"quality": "480p", "links": [{"host": "Host B", "url": "https://b"}]},
    ]
    assert format_download_lines(downloads).splitlines()[1] == "720p|Host C|https://c"


def test_strip_mirrors_keeps_original_sources() -> None:
    streams, downloads = strip_mirrors(
        [{"name": "Main", "url": "a"}, {"name": "Mirror", "url": "b"}],
        [{"quality": "1080p", "links": []}, {"quality": "480p", "links": []}],
    )
    assert streams == [{"name": "Main", "url": "a"}]
    assert downloads == [{"quality": "1080p", "links": []}]


def test_create_and_update_anime(settings, seed_catalog) -> None:
    async def runner() -> None:
        database, admin = await _admin(settings, seed_catalog)

        slug = await admin.create_anime(
            AnimeForm(
                title="Dandadan",
                page_slug="dandadan",
                info={"Type": "TV", "Studio": " Science SARU ", "Released": ""},
                genres=["Action", "Comedy", "Action"],
            ),
            ImageUpload(filename="cover.webp", content_type="image/webp", data=b"img"),
        )
        assert slug == "dandadan"

        detail = await admin.get_anime("dandadan")
        assert detail.genres == ["Action", "Comedy"]
        assert detail.info["Status"] == "Unknown"
        assert detail.info["Studio"] == "Science SARU"
        assert "Released" not in detail.info
        assert (settings.upload_dir / "dandadan.webp").exists()

        with pytest.raises(ValueError, match="already in use"):
            await admin.create_anime(AnimeForm(title="Again", page_slug="dandadan"))
        with pytest.raises(ValueError, match="lowercase"):
            await admin.create_anime(AnimeForm(title="Bad", page_slug="Bad Slug"))
        with pytest.raises(ValueError, match="required"):
            await admin.create_anime(AnimeForm(title="", page_slug="empty"))

        await admin.update_anime(
            "dandadan",
            AnimeForm(title="", synopsis="Ghosts and aliens", info={"Status": "Ongoing"}, genres=["Comedy"]),
        )
        updated = await admin.get_anime("dandadan")
        assert updated.title == "Dandadan"
        assert updated.synopsis == "Ghosts and aliens"
        assert updated.info["Status"] == "Ongoing"
        assert updated.genres == ["Comedy"]

        with pytest.raises(KeyError):
            await admin.update_anime("missing", AnimeForm())

        listing = await admin.list_anime(search="DANDA")
        assert [card.page_slug for card in listing.items] == ["dandadan"]

        await database.dispose()

    asyncio.run(runner())


def test_create_anime_losing_slug_race_removes_upload(settings, seed_catalog, monkeypatch) -> None:
    async def missed_duplicate_check(self, statement, *args, **kwargs):
        return None

    async def runner() -> None:
        database, admin = await _admin(settings, seed_catalog)

        # Another writer took the slug after the duplicate check ran.
        monkeypatch.setattr(AsyncSession, "scalar", missed_duplicate_check)
        with pytest.raises(ValueError, match="already in use"):
            await admin.create_anime(
                AnimeForm(title="Impostor", page_slug="one-piece"),
                ImageUpload(filename="cover.png", content_type="image/png", data=b"img"),
            )
        monkeypatch.undo()

        assert not (settings.upload_dir / "one-piece.png").exists()
        async with database.session_factory() as session:
            titles = (
                await session.scalars(select(Anime.title).where(Anime.page_slug == "one-piece"))
            ).all()
        assert titles == ["One Piece"]

        await database.dispose()

    asyncio.run(runner())


def test_add_episode_appends_reference(settings, seed_catalog) -> None:
    async def runner() -> None:
        database, admin = await _admin(settings, seed_catalog)

        slug = await admin.add_episode("one-piece", number="4", episode_date="02/01/2024")
        assert slug == "/one-piece/4"
        assert await admin.add_episode("frieren", episode_slug="frieren/1") == "/frieren/1"

        with pytest.raises(ValueError, match="already in use"):
            await admin.add_episode("one-piece", number="4")
        with pytest.raises(ValueError, match="required"):
            await admin.add_episode("one-piece")
        with pytest.raises(ValueError, match="must look like"):
            await admin.add_episode("one-piece", episode_slug="/one-piece/4/extra")
        with pytest.raises(KeyError):
            await admin.add_episode("missing", number="1")

        detail = await admin.get_anime("one-piece")
        assert [ref.url for ref in detail.episodes] == [
            "/one-piece/1",
            "/one-piece/2",
            "/one-piece/3",
            "/one-piece/4",
        ]
        episode = await admin.get_episode("/one-piece/4")
        assert episode.title == "One Piece Episode 4"
        assert episode.anime_slug == "one-piece"

        await database.dispose()

    asyncio.run(runner())


def test_update_episode_replaces_links(settings, seed_catalog) -> None:
    async def runner() -> None:
        database, admin = await _admin(settings, seed_catalog)

        await admin.update_episode(
            "/one-piece/1",
            EpisodeForm(
                title=" ",
                streaming=[{"name": "New", "url": "https://new"}, {"name": "", "url": "x"}],
                downloads=[
                    {"quality": "1080p", "links": [{"host": "H", "url": "https://h"}]},
                    {"quality": "480p", "links": []},
                ],
            ),
        )
        episode = await admin.get_episode("/one-piece/1")
        assert episode.title == "One Piece Episode 1"
        assert episode.streaming == [{"name": "New", "url": "https://new"}]
        assert episode.downloads == [
            {"quality": "1080p", "links": [{"host": "H", "url": "https://h"}]}
        ]

        await database.dispose()

    asyncio.run(runner())


def test_delete_episode_reindexes_parent(settings, seed_catalog) -> None:
    async def runner() -> None:
        database, admin = await _admin(settings, seed_catalog)
        async with database.session_factory() as session:
            episode_id = await session.scalar(
                select(Episode.id).where(Episode.episode_slug == "/one-piece/2")
            )
            session.add(Comment(episode_id=episode_id, content="Great"))
            session.add(Report(page_url="x", page_path="/anime/one-piece/2", message="broken"))
            session.add(Report(page_url="y", page_path="/anime/one-piece/20", message="other"))
            await session.commit()

        summary = await admin.delete_episode("/one-piece/2")
        assert summary.episodes == 1
        assert summary.comments == 1
        assert summary.reports == 1

        async with database.session_factory() as session:
            refs = (
                await session.scalars(select(AnimeEpisode).order_by(AnimeEpisode.position))
            ).all()
            remaining_reports = await session.scalar(select(func.count(Report.id)))
        assert [(ref.url, ref.position) for ref in refs] == [
            ("/one-piece/1", 0),
            ("/one-piece/3", 1),
        ]
        assert remaining_reports == 1

        with pytest.raises(KeyError):
            await admin.delete_episode("/one-piece/2")

        await database.dispose()

    asyncio.run(runner())


def test_delete_anime_cascades(settings, seed_catalog) -> None:
    async def runner() -> None:
        database, admin = await _admin(settings, seed_catalog)
        async with database.session_factory() as session:
            user = User(username="zoro", password_hash="x")
            session.add(user)
            await session.flush()
            anime_id = await session.scalar(select(Anime.id).where(Anime.page_slug == "one-piece"))
            session.add(Bookmark(user_id=user.id, anime_id=anime_id))
            session.add(Report(page_url="x", page_path="/anime/one-piece", message="typo"))
            session.add(Report(page_url="y", page_path="/anime/one-piece-film", message="keep"))
            await session.commit()

        summary = await admin.delete_anime("one-piece")
        assert summary.episodes == 3
        assert summary.bookmarks == 1
        assert summary.reports == 1
        assert summary.image_deleted is False

        async with database.session_factory() as session:
            assert await session.scalar(select(func.count(Episode.id))) == 0
            assert await session.scalar(select(func.count(AnimeEpisode.id))) == 0
            assert await session.scalar(select(func.count(Anime.id))) == 2
            assert await session.scalar(select(func.count(Report.id))) == 1

        with pytest.raises(KeyError):
            await admin.delete_anime("one-piece")

        await database.dispose()

    asyncio.run(runner())


def test_clear_mirrors_and_reports(settings, seed_catalog) -> None:
    async def runner() -> None:
        database, admin = await _admin(settings, seed_catalog)

        assert await admin.clear_mirrors() == 3
        assert await admin.clear_mirrors() == 0
        episode = await admin.get_episode("/one-piece/1")
        assert [stream["name"] for stream in episode.streaming] == ["Main", "Bonus"]
        assert episode.downloads == []

        async with database.session_factory() as session:
            report = Report(page_url="x", page_path="/x", message="m")
            session.add(report)
            await session.commit()
            report_id = report.id

        assert [item.id for item in await admin.list_reports()] == [report_id]
        await admin.delete_report(report_id)
        with pytest.raises(KeyError):
            await admin.delete_report(report_id)

        counts = await admin.dashboard_counts()
        assert counts.total_anime == 3
        assert counts.total_episodes == 3
        assert counts.total_reports == 0

        await database.dispose()

    asyncio.run(runner())
