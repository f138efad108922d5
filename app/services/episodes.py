"""Episode lookup and previous/next navigation."""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence
from urllib.parse import quote

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import Anime, AnimeEpisode, Episode
from ..models import AnimeDetail, EpisodeNav, EpisodeRefView, EpisodeView, WatchPage
from ..utils import build_episode_slug
from .catalog import CatalogService

logger = logging.getLogger(__name__)


def build_episode_nav(
    refs: Sequence[AnimeEpisode], episode_url: str, parent_slug: str | None
) -> EpisodeNav:
    """Return prev/next/all links for ``episode_url`` within ``refs``.

    ``refs`` must already be in display order. When the URL is not among the
    refs only the ``all`` link is filled in.
    """

    if parent_slug is None:
        return EpisodeNav()
    nav = EpisodeNav(all=f"/anime/{quote(parent_slug, safe='')}")
    urls = [ref.url for ref in refs]
    try:
        index = urls.index(episode_url)
    except ValueError:
        return nav
    if index > 0:
        nav.prev = EpisodeRefView.from_record(refs[index - 1])
    if index < len(refs) - 1:
        nav.next = EpisodeRefView.from_record(refs[index + 1])
    return nav


class EpisodeService:
    """Resolves watch pages for ``/anime/<slug>/<number>``."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        catalog: CatalogService,
        *,
        recommendation_size: int = 7,
    ):
        self._session_factory = session_factory
        self._catalog = catalog
        self._recommendation_size = recommendation_size

    async def get_watch_page(self, anime_slug: str, number: str | int) -> WatchPage:
        """Return the episode, its navigation and the sidebar listings.

        Raises ``KeyError`` when no episode has the requested slug. A missing
        parent entry only empties the navigation.
        """

        episode_slug = build_episode_slug(anime_slug, number)
        async with self._session_factory() as session:
            episode = (
                await session.scalars(
                    select(Episode).where(Episode.episode_slug == episode_slug)
                )
            ).one_or_none()
            if episode is None:
                logger.warning("Episode %s not found", episode_slug)
                raise KeyError(f"Episode not found: {episode_slug}")
            parent = (
                await session.scalars(
                    select(Anime)
                    .join(AnimeEpisode, AnimeEpisode.anime_id == Anime.id)
                    .where(AnimeEpisode.url == episode_slug)
                    .order_by(Anime.id)
                    .limit(1)
                )
            ).one_or_none()

            episode_view = EpisodeView.from_record(episode)
            if parent is not None:
                nav = build_episode_nav(parent.episode_refs, episode_slug, parent.page_slug)
                parent_view = AnimeDetail.from_record(parent)
            else:
                nav = EpisodeNav()
                parent_view = None

        recommendations, latest = await asyncio.gather(
            self._catalog.recommendations(
                exclude_id=parent_view.id if parent_view else None,
                size=self._recommendation_size,
            ),
            self._catalog.latest_series(),
        )
        return WatchPage(
            episode=episode_view,
            nav=nav,
            parent=parent_view,
            recommendations=recommendations,
            latest_series=latest,
        )
