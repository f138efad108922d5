"""Pytest configuration and test helpers."""

from __future__ import annotations

import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Awaitable, Callable

import pytest


# Ensure the application package is importable when running tests without an
# editable install. This mirrors the expected runtime layout where ``app`` sits
# at the project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.config import Settings  # noqa: E402
from app.db_models import Anime, AnimeEpisode, Episode  # noqa: E402

SeedCatalog = Callable[[Any], Awaitable[dict[str, int]]]

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway SQLite database and upload dir."""

    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'animehub.db'}",
        SITE_URL="https://animehub.test",
        UPLOAD_DIR=str(tmp_path / "images"),
        ITEMS_PER_PAGE=2,
        ADMIN_USERNAME="admin",
        ADMIN_PASSWORD="s3cret",
    )  # type: ignore[call-arg]


def _anime(
    page_slug: str,
    title: str,
    *,
    info: dict[str, str],
    genres: list[str],
    created_offset: int,
    view_count: int = 0,
    image_url: str | None = None,
) -> Anime:
    created = BASE_TIME + timedelta(days=created_offset)
    anime = Anime(
        page_slug=page_slug,
        title=title,
        image_url=image_url,
        synopsis=f"{title} synopsis",
        info=info,
        view_count=view_count,
        created_at=created,
        updated_at=created,
    )
    anime.set_genres(genres)
    anime.episode_refs = []
    return anime


async def _seed_catalog(session_factory) -> dict[str, int]:
    """Insert a small catalog: three series, three episodes of the first."""

    async with session_factory() as session:
        one_piece = _anime(
            "one-piece",
            "One Piece",
            info={
                "Status": "Ongoing",
                "Type": "TV",
                "Studio": "Toei Animation",
                "Released": "Oct 20, 1999",
            },
            genres=["Action", "Adventure", "Shōnen"],
            created_offset=0,
            view_count=50,
            image_url="/images/one piece.jpg",
        )
        frieren = _anime(
            "frieren",
            "Frieren: Beyond Journey's End",
            info={"Status": "Completed", "Type": "TV", "Studio": "Madhouse", "Released": "2023"},
            genres=["Adventure", "Fantasy"],
            created_offset=1,
            view_count=120,
        )
        kimi = _anime(
            "kimi-no-na-wa",
            "Kimi no Na wa",
            info={"Status": "Completed", "Type": "Movie", "Studio": "CoMix Wave", "Released": "2016"},
            genres=["Romance", "Uncensored Drama"],
            created_offset=2,
            view_count=5,
        )
        session.add_all([one_piece, frieren, kimi])
        await session.flush()

        for number in (1, 2, 3):
            slug = f"/one-piece/{number}"
            episode = Episode(
                episode_slug=slug,
                title=f"One Piece Episode {number}",
                streaming=[
                    {"name": "Main", "url": f"https://video.test/{number}"},
                    {"name": "Bonus", "url": "https://bonus.test/x"},
                ],
                downloads=[
                    {"quality": "720p", "links": [{"host": "Host", "url": f"https://dl.test/{number}"}]}
                ],
                anime_title="One Piece",
                anime_slug="one-piece",
                anime_image_url="/images/one piece.jpg",
                created_at=BASE_TIME + timedelta(hours=number),
                updated_at=BASE_TIME + timedelta(hours=number),
            )
            session.add(episode)
            await session.flush()
            one_piece.episode_refs.append(
                AnimeEpisode(
                    title=f"Episode {number}",
                    url=slug,
                    date="01/01/2024",
                    episode_id=episode.id,
                    position=number - 1,
                )
            )
        await session.commit()
        return {"one-piece": one_piece.id, "frieren": frieren.id, "kimi-no-na-wa": kimi.id}


@pytest.fixture
def seed_catalog() -> SeedCatalog:
    return _seed_catalog
