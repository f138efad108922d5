"""Pydantic models describing public payloads.

Every catalog entry and episode leaves the service through one of these
models. Their ``from_record`` constructors apply the image URL encoding and
the base64 link encoding, so no endpoint can surface a raw stored value.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .db_models import Anime, AnimeEpisode, Episode
from .utils import (
    DEFAULT_THUMBNAIL_URL,
    encode_image_url,
    encode_link_url,
    format_compact_number,
)

CARD_INFO_KEYS = ("Type", "Status", "Released")
HIDDEN_STREAM_NAMES = frozenset({"bonus"})


class ApiModel(BaseModel):
    """Base model serialising to camelCase for the web and mobile clients."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class StreamLink(ApiModel):
    name: str
    url: str | None = None


class DownloadLink(ApiModel):
    host: str
    url: str | None = None


class DownloadGroup(ApiModel):
    quality: str
    links: list[DownloadLink] = Field(default_factory=list)


class EpisodeRefView(ApiModel):
    """Entry of a catalog entry's ordered episode list."""

    title: str
    url: str
    watch_url: str
    date: str | None = None

    @classmethod
    def from_record(cls, ref: AnimeEpisode) -> "EpisodeRefView":
        return cls(
            title=ref.title,
            url=ref.url,
            watch_url=f"/anime{ref.url}",
            date=ref.date,
        )


class AnimeCard(ApiModel):
    """Compact catalog entry used by every listing."""

    id: int
    page_slug: str
    page_slug_encoded: str
    title: str
    image_url: str
    info: dict[str, str] = Field(default_factory=dict)
    genres: list[str] = Field(default_factory=list)
    view_count: int = 0
    view_count_label: str = "0"

    @classmethod
    def from_record(cls, anime: Anime) -> "AnimeCard":
        return cls(**_card_fields(anime))


class AnimeDetail(AnimeCard):
    """Full catalog entry for the detail page and API."""

    alternative_title: str | None = None
    synopsis: str = ""
    episodes: list[EpisodeRefView] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_record(cls, anime: Anime) -> "AnimeDetail":
        fields = _card_fields(anime)
        fields["info"] = {
            str(key): str(value)
            for key, value in (anime.info or {}).items()
            if value is not None
        }
        return cls(
            **fields,
            alternative_title=anime.alternative_title,
            synopsis=anime.synopsis or "",
            episodes=[EpisodeRefView.from_record(ref) for ref in anime.episode_refs],
            created_at=anime.created_at,
            updated_at=anime.updated_at,
        )

    def short_description(self, length: int = 160) -> str:
        return f"{self.synopsis[:length]}..."


def _card_fields(anime: Anime) -> dict[str, Any]:
    info = anime.info or {}
    return {
        "id": anime.id,
        "page_slug": anime.page_slug,
        "page_slug_encoded": quote(anime.page_slug, safe=""),
        "title": anime.title or anime.page_slug,
        "image_url": encode_image_url(anime.image_url),
        "info": {key: str(info[key]) for key in CARD_INFO_KEYS if info.get(key)},
        "genres": anime.genres,
        "view_count": anime.view_count or 0,
        "view_count_label": format_compact_number(anime.view_count),
    }


def encode_catalog_image_urls(entries: Iterable[Anime]) -> list[AnimeCard]:
    """Serialise catalog entries with their image URLs encoded."""

    return [AnimeCard.from_record(entry) for entry in entries]


class EpisodeCard(ApiModel):
    """Episode tile on the home feed."""

    watch_url: str
    title: str
    image_url: str
    quality: str = "720p"
    year: str
    created_at: datetime

    @classmethod
    def from_record(cls, episode: Episode) -> "EpisodeCard":
        return cls(
            watch_url=f"/anime{episode.episode_slug}",
            title=episode.title or episode.episode_slug,
            image_url=encode_image_url(episode.anime_image_url),
            year=str(episode.created_at.year),
            created_at=episode.created_at,
        )


class EpisodeView(ApiModel):
    """Watch-page payload. Mirror and download URLs are base64 encoded."""

    episode_slug: str
    title: str
    anime_title: str | None = None
    anime_slug: str | None = None
    thumbnail_url: str
    episode_date: str | None = None
    streaming: list[StreamLink] = Field(default_factory=list)
    downloads: list[DownloadGroup] = Field(default_factory=list)

    @classmethod
    def from_record(cls, episode: Episode) -> "EpisodeView":
        streams = [
            StreamLink(
                name=str(stream.get("name") or ""),
                url=encode_link_url(stream.get("url")),
            )
            for stream in episode.streaming or []
            if str(stream.get("name") or "").strip().lower() not in HIDDEN_STREAM_NAMES
        ]
        downloads = [
            DownloadGroup(
                quality=str(group.get("quality") or ""),
                links=[
                    DownloadLink(
                        host=str(link.get("host") or ""),
                        url=encode_link_url(link.get("url")),
                    )
                    for link in group.get("links") or []
                ],
            )
            for group in episode.downloads or []
        ]
        return cls(
            episode_slug=episode.episode_slug,
            title=episode.title or episode.episode_slug,
            anime_title=episode.anime_title,
            anime_slug=episode.anime_slug,
            thumbnail_url=encode_image_url(
                episode.thumbnail_url, default=DEFAULT_THUMBNAIL_URL
            ),
            episode_date=episode.episode_date,
            streaming=streams,
            downloads=downloads,
        )


class EpisodeNav(ApiModel):
    prev: EpisodeRefView | None = None
    next: EpisodeRefView | None = None
    all: str | None = None


class Pagination(ApiModel):
    current_page: int
    total_pages: int
    total_results: int


class AnimePage(ApiModel):
    """One page of a filtered catalog listing."""

    items: list[AnimeCard] = Field(default_factory=list)
    total_count: int = 0
    total_pages: int = 0
    current_page: int = 1

    @property
    def pagination(self) -> Pagination:
        return Pagination(
            current_page=self.current_page,
            total_pages=self.total_pages,
            total_results=self.total_count,
        )

    def to_results_payload(self, *, title: str | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if title is not None:
            payload["title"] = title
        payload["pagination"] = self.pagination.to_payload()
        payload["results"] = [item.to_payload() for item in self.items]
        return payload


class HomeFeed(ApiModel):
    """Latest episodes plus the newest catalog entries."""

    episodes: list[EpisodeCard] = Field(default_factory=list)
    latest_series: list[AnimeCard] = Field(default_factory=list)
    current_page: int = 1
    total_pages: int = 0
    total_episodes: int = 0


class WatchPage(ApiModel):
    """Everything the watch page needs for one episode."""

    episode: EpisodeView
    nav: EpisodeNav
    parent: AnimeDetail | None = None
    recommendations: list[AnimeCard] = Field(default_factory=list)
    latest_series: list[AnimeCard] = Field(default_factory=list)
