"""Back-office operations: catalog CRUD, mirrors and reports."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import raiseload

from ..db_models import (
    Anime,
    AnimeEpisode,
    Bookmark,
    Comment,
    Episode,
    Report,
    User,
)
from ..models import AnimeCard, AnimeDetail, Pagination, StreamLink
from ..utils import (
    DEFAULT_IMAGE_URL,
    DEFAULT_THUMBNAIL_URL,
    build_episode_slug,
    is_valid_episode_slug,
    page_offset,
    parse_page,
    slugify,
    total_pages,
    utcnow,
)
from .dood import DoodClient
from .images import ImageStore

logger = logging.getLogger(__name__)

ADMIN_PAGE_SIZE = 30
MIRROR_STREAM_NAMES = frozenset({"Mirror", "Viplay", "EarnVids"})
MIRROR_DOWNLOAD_QUALITIES = frozenset({"Mirror", "Viplay", "EarnVids", "480p", "720p"})
INFO_FORM_KEYS = ("Alternatif", "Type", "Episode", "Status", "Released", "Studio", "Producers")


class AnimeForm(BaseModel):
    """Fields accepted by the add/edit anime forms."""

    title: str = ""
    page_slug: str = ""
    alternative_title: str | None = None
    image_url: str | None = None
    synopsis: str | None = None
    info: dict[str, str] = Field(default_factory=dict)
    genres: list[str] = Field(default_factory=list)


class EpisodeForm(BaseModel):
    """Fields accepted by the edit episode form."""

    title: str | None = None
    thumbnail_url: str | None = None
    episode_date: str | None = None
    streaming: list[dict[str, str]] = Field(default_factory=list)
    downloads: list[dict[str, Any]] = Field(default_factory=list)


@dataclass(slots=True)
class ImageUpload:
    filename: str | None
    content_type: str | None
    data: bytes


@dataclass(slots=True)
class DashboardCounts:
    total_anime: int
    total_episodes: int
    total_users: int
    total_comments: int
    total_reports: int


@dataclass(slots=True)
class AdminAnimeList:
    items: list[AnimeCard]
    pagination: Pagination
    search: str = ""


@dataclass(slots=True)
class AdminEpisodeList:
    items: list[Episode]
    pagination: Pagination


@dataclass(slots=True)
class DeletionSummary:
    """Row counts removed by a cascading delete."""

    episodes: int = 0
    comments: int = 0
    reports: int = 0
    bookmarks: int = 0
    image_deleted: bool = False


def split_genres(raw: str | None) -> list[str]:
    return [genre.strip() for genre in (raw or "").split(",") if genre.strip()]


def parse_stream_lines(raw: str | None) -> list[dict[str, str]]:
    """Parse ``name|url`` lines, skipping incomplete ones."""

    streams = []
    for line in (raw or "").splitlines():
        name, sep, url = line.partition("|")
        if sep and name.strip() and url.strip():
            streams.append({"name": name.strip(), "url": url.strip()})
    return streams


def parse_download_lines(raw: str | None) -> list[dict[str, Any]]:
    """Parse ``quality|host|url`` lines into quality groups, in first-seen order."""

    groups: dict[str, list[dict[str, str]]] = {}
    for line in (raw or "").splitlines():
        parts = [part.strip() for part in line.split("|", 2)]
        if len(parts) != 3 or not all(parts):
            continue
        quality, host, url = parts
        groups.setdefault(quality, []).append({"host": host, "url": url})
    return [{"quality": quality, "links": links} for quality, links in groups.items()]


def format_stream_lines(streams: list[dict[str, Any]] | None) -> str:
    return "\n".join(
        f"{stream.get('name', '')}|{stream.get('url', '')}" for stream in streams or []
    )


def format_download_lines(downloads: list[dict[str, Any]] | None) -> str:
    lines = []
    for group in downloads or []:
        for link in group.get("links") or []:
            lines.append(f"{group.get('quality', '')}|{link.get('host', '')}|{link.get('url', '')}")
    return "\n".join(lines)


def strip_mirrors(
    streaming: list[dict[str, Any]] | None, downloads: list[dict[str, Any]] | None
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    kept_streams = [s for s in streaming or [] if s.get("name") not in MIRROR_STREAM_NAMES]
    kept_downloads = [
        g for g in downloads or [] if g.get("quality") not in MIRROR_DOWNLOAD_QUALITIES
    ]
    return kept_streams, kept_downloads


def _page_path_filter(column, path: str):
    """Match ``path`` itself or anything below it."""

    return or_(column == path, column.startswith(f"{path}/", autoescape=True))


class AdminService:
    """Mutating operations behind the admin surface."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        images: ImageStore,
        dood: DoodClient | None = None,
    ):
        self._session_factory = session_factory
        self._images = images
        self._dood = dood

    async def dashboard_counts(self) -> DashboardCounts:
        async def _count(model) -> int:
            async with self._session_factory() as session:
                return int(await session.scalar(select(func.count(model.id))) or 0)

        anime, episodes, users, comments, reports = await asyncio.gather(
            _count(Anime), _count(Episode), _count(User), _count(Comment), _count(Report)
        )
        return DashboardCounts(
            total_anime=anime,
            total_episodes=episodes,
            total_users=users,
            total_comments=comments,
            total_reports=reports,
        )

    async def list_anime(self, search: str = "", page: object = 1) -> AdminAnimeList:
        """Entries ordered by last update, optionally filtered by title or slug."""

        current_page = parse_page(page)
        cleaned = (search or "").strip()
        criteria = []
        if cleaned:
            criteria.append(
                or_(
                    Anime.title.icontains(cleaned, autoescape=True),
                    Anime.page_slug.icontains(cleaned, autoescape=True),
                )
            )
        async with self._session_factory() as session:
            total = int(
                await session.scalar(select(func.count(Anime.id)).where(*criteria)) or 0
            )
            stmt = (
                select(Anime)
                .options(raiseload(Anime.episode_refs))
                .where(*criteria)
                .order_by(Anime.updated_at.desc(), Anime.id.desc())
                .offset(page_offset(current_page, ADMIN_PAGE_SIZE))
                .limit(ADMIN_PAGE_SIZE)
            )
            records = (await session.scalars(stmt)).all()
            items = [AnimeCard.from_record(record) for record in records]
        return AdminAnimeList(
            items=items,
            pagination=Pagination(
                current_page=current_page,
                total_pages=total_pages(total, ADMIN_PAGE_SIZE),
                total_results=total,
            ),
            search=cleaned,
        )

    async def get_anime(self, page_slug: str) -> AnimeDetail:
        async with self._session_factory() as session:
            anime = await self._anime_by_slug(session, page_slug)
            return AnimeDetail.from_record(anime)

    async def create_anime(self, form: AnimeForm, upload: ImageUpload | None = None) -> str:
        """Create an entry and return its slug.

        Raises ``ValueError`` for a missing title, a malformed or taken slug,
        or a rejected image upload.
        """

        title = form.title.strip()
        page_slug = form.page_slug.strip()
        if not title or not page_slug:
            raise ValueError("Title and slug are required")
        if page_slug != slugify(page_slug):
            raise ValueError(f'Slug "{page_slug}" must be lowercase letters, digits and hyphens')

        async with self._session_factory() as session:
            existing = await session.scalar(
                select(Anime.id).where(Anime.page_slug == page_slug)
            )
            if existing is not None:
                raise ValueError(f'Slug "{page_slug}" is already in use')

            image_url = (form.image_url or "").strip() or DEFAULT_IMAGE_URL
            uploaded = upload is not None and bool(upload.data)
            if uploaded:
                image_url = self._images.save(
                    page_slug, upload.filename, upload.content_type, upload.data
                )

            info = {key: value.strip() for key, value in form.info.items() if value and value.strip()}
            info.setdefault("Status", "Unknown")
            anime = Anime(
                page_slug=page_slug,
                title=title,
                alternative_title=(form.alternative_title or "").strip() or None,
                image_url=image_url,
                synopsis=(form.synopsis or "").strip(),
                info=info,
            )
            anime.set_genres(form.genres)
            session.add(anime)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                if uploaded:
                    self._images.delete_for_url(image_url)
                logger.warning("Slug %s was taken while creating the entry", page_slug)
                raise ValueError(f'Slug "{page_slug}" is already in use') from exc
        logger.info("Created anime %s", page_slug)
        return page_slug

    async def update_anime(self, page_slug: str, form: AnimeForm) -> None:
        """Apply the non-blank fields of ``form``; genres are always replaced."""

        async with self._session_factory() as session:
            anime = await self._anime_by_slug(session, page_slug)
            if form.title.strip():
                anime.title = form.title.strip()
            if form.alternative_title and form.alternative_title.strip():
                anime.alternative_title = form.alternative_title.strip()
            if form.synopsis and form.synopsis.strip():
                anime.synopsis = form.synopsis.strip()
            if form.image_url and form.image_url.strip():
                anime.image_url = form.image_url.strip()
            info = dict(anime.info or {})
            for key, value in form.info.items():
                if value and value.strip():
                    info[key] = value.strip()
            anime.info = info
            anime.set_genres(form.genres)
            anime.updated_at = utcnow()
            await session.commit()
        logger.info("Updated anime %s", page_slug)

    async def delete_anime(self, page_slug: str) -> DeletionSummary:
        """Delete an entry with its episodes, comments, reports, bookmarks and image."""

        async with self._session_factory() as session:
            anime = await self._anime_by_slug(session, page_slug)
            image_url = anime.image_url
            episode_urls = [ref.url for ref in anime.episode_refs]
            episode_ids = list(
                (
                    await session.scalars(
                        select(Episode.id).where(
                            or_(
                                Episode.anime_slug == page_slug,
                                Episode.episode_slug.in_(episode_urls),
                            )
                        )
                    )
                ).all()
            )

            summary = DeletionSummary()
            if episode_ids:
                summary.comments = (
                    await session.execute(delete(Comment).where(Comment.episode_id.in_(episode_ids)))
                ).rowcount or 0
                summary.episodes = (
                    await session.execute(delete(Episode).where(Episode.id.in_(episode_ids)))
                ).rowcount or 0
            summary.reports = (
                await session.execute(
                    delete(Report).where(_page_path_filter(Report.page_path, f"/anime/{page_slug}"))
                )
            ).rowcount or 0
            summary.bookmarks = (
                await session.execute(delete(Bookmark).where(Bookmark.anime_id == anime.id))
            ).rowcount or 0
            await session.delete(anime)
            await session.commit()

        summary.image_deleted = self._images.delete_for_url(image_url)
        logger.info(
            "Deleted anime %s (%d episodes, %d comments, %d reports, %d bookmarks)",
            page_slug,
            summary.episodes,
            summary.comments,
            summary.reports,
            summary.bookmarks,
        )
        return summary

    async def add_episode(
        self,
        anime_slug: str,
        *,
        title: str | None = None,
        number: str | None = None,
        episode_slug: str | None = None,
        episode_date: str | None = None,
    ) -> str:
        """Create an episode under ``anime_slug`` and append its reference.

        The slug is ``episode_slug`` when given, otherwise built from the
        parent slug and ``number``. Raises ``ValueError`` for a malformed or
        taken slug and ``KeyError`` when the parent does not exist.
        """

        slug = (episode_slug or "").strip()
        if slug and not slug.startswith("/"):
            slug = f"/{slug}"
        if not slug:
            number = (number or "").strip()
            if not number:
                raise ValueError("Episode number or slug is required")
            slug = build_episode_slug(anime_slug, number)
        if not is_valid_episode_slug(slug):
            raise ValueError(f'Episode slug "{slug}" must look like /<anime>/<number>')

        async with self._session_factory() as session:
            parent = await self._anime_by_slug(session, anime_slug)
            existing = await session.scalar(
                select(Episode.id).where(Episode.episode_slug == slug)
            )
            if existing is not None:
                raise ValueError(f'Episode slug "{slug}" is already in use')

            episode_title = (title or "").strip() or f"{parent.title} Episode {slug.rsplit('/', 1)[-1]}"
            date = (episode_date or "").strip() or utcnow().strftime("%d/%m/%Y")
            episode = Episode(
                episode_slug=slug,
                title=episode_title,
                streaming=[],
                downloads=[],
                thumbnail_url=DEFAULT_THUMBNAIL_URL,
                anime_title=parent.title,
                anime_slug=parent.page_slug,
                anime_image_url=parent.image_url,
                episode_date=date,
            )
            session.add(episode)
            await session.flush()
            parent.episode_refs.append(
                AnimeEpisode(
                    title=episode_title,
                    url=slug,
                    date=date,
                    episode_id=episode.id,
                    position=len(parent.episode_refs),
                )
            )
            parent.updated_at = utcnow()
            await session.commit()
        logger.info("Added episode %s to %s", slug, anime_slug)
        return slug

    async def list_episodes(self, page: object = 1) -> AdminEpisodeList:
        current_page = parse_page(page)
        async with self._session_factory() as session:
            total = int(await session.scalar(select(func.count(Episode.id))) or 0)
            stmt = (
                select(Episode)
                .order_by(Episode.updated_at.desc(), Episode.id.desc())
                .offset(page_offset(current_page, ADMIN_PAGE_SIZE))
                .limit(ADMIN_PAGE_SIZE)
            )
            items = list((await session.scalars(stmt)).all())
        return AdminEpisodeList(
            items=items,
            pagination=Pagination(
                current_page=current_page,
                total_pages=total_pages(total, ADMIN_PAGE_SIZE),
                total_results=total,
            ),
        )

    async def get_episode(self, episode_slug: str) -> Episode:
        """Return the stored episode with its raw links."""

        async with self._session_factory() as session:
            return await self._episode_by_slug(session, episode_slug)

    async def update_episode(self, episode_slug: str, form: EpisodeForm) -> None:
        """Replace the streams and download groups and apply non-blank fields."""

        async with self._session_factory() as session:
            episode = await self._episode_by_slug(session, episode_slug)
            if form.title and form.title.strip():
                episode.title = form.title.strip()
            if form.thumbnail_url and form.thumbnail_url.strip():
                episode.thumbnail_url = form.thumbnail_url.strip()
            if form.episode_date and form.episode_date.strip():
                episode.episode_date = form.episode_date.strip()
            episode.streaming = [
                {"name": s["name"].strip(), "url": s["url"].strip()}
                for s in form.streaming
                if s.get("name") and s.get("url")
            ]
            downloads = []
            for group in form.downloads:
                quality = str(group.get("quality") or "").strip()
                links = [
                    {"host": link["host"].strip(), "url": link["url"].strip()}
                    for link in group.get("links") or []
                    if link.get("host") and link.get("url")
                ]
                if quality and links:
                    downloads.append({"quality": quality, "links": links})
            episode.downloads = downloads
            await session.commit()
        logger.info("Updated episode %s", episode_slug)

    async def delete_episode(self, episode_slug: str) -> DeletionSummary:
        """Delete an episode, its parent reference, comments and reports."""

        async with self._session_factory() as session:
            episode = await session.scalar(
                select(Episode).where(Episode.episode_slug == episode_slug)
            )
            refs = list(
                (
                    await session.scalars(
                        select(AnimeEpisode).where(AnimeEpisode.url == episode_slug)
                    )
                ).all()
            )
            if episode is None and not refs:
                logger.warning("Episode %s not found anywhere", episode_slug)
                raise KeyError(f"Episode not found: {episode_slug}")

            summary = DeletionSummary()
            if episode is not None:
                summary.comments = (
                    await session.execute(delete(Comment).where(Comment.episode_id == episode.id))
                ).rowcount or 0
                await session.delete(episode)
                summary.episodes = 1
            for ref in refs:
                parent = await session.get(Anime, ref.anime_id)
                if parent is not None:
                    parent.episode_refs.remove(ref)
                    for position, remaining in enumerate(parent.episode_refs):
                        remaining.position = position
                    parent.updated_at = utcnow()
                else:
                    await session.delete(ref)
            summary.reports = (
                await session.execute(
                    delete(Report).where(
                        _page_path_filter(Report.page_path, f"/anime{episode_slug}")
                    )
                )
            ).rowcount or 0
            await session.commit()
        logger.info(
            "Deleted episode %s (%d refs, %d comments, %d reports)",
            episode_slug,
            len(refs),
            summary.comments,
            summary.reports,
        )
        return summary

    async def attach_remote_mirror(self, episode_slug: str, video_url: str) -> StreamLink:
        """Queue ``video_url`` on the video host and attach the new mirror."""

        episode_slug = (episode_slug or "").strip()
        video_url = (video_url or "").strip()
        if not episode_slug or not video_url:
            raise ValueError("Episode slug and video URL are required")
        if self._dood is None or not self._dood.configured:
            raise ValueError("DOOD_API_KEY is not configured on the server")

        async with self._session_factory() as session:
            await self._episode_by_slug(session, episode_slug)

        upload = await self._dood.remote_upload(video_url)
        stream = {"name": "Mirror", "url": upload.embed_url}
        download_group = {
            "quality": "480p",
            "links": [{"host": "DoodStream", "url": upload.download_url}],
        }
        async with self._session_factory() as session:
            episode = await self._episode_by_slug(session, episode_slug)
            episode.streaming = [*(episode.streaming or []), stream]
            episode.downloads = [*(episode.downloads or []), download_group]
            await session.commit()
        logger.info("Attached mirror %s to %s", upload.embed_url, episode_slug)
        return StreamLink(name=stream["name"], url=stream["url"])

    async def clear_mirrors(self) -> int:
        """Strip host mirrors from every episode and return how many changed."""

        modified = 0
        async with self._session_factory() as session:
            result = await session.stream_scalars(
                select(Episode).execution_options(yield_per=200)
            )
            async for episode in result:
                streaming, downloads = strip_mirrors(episode.streaming, episode.downloads)
                if streaming != (episode.streaming or []) or downloads != (episode.downloads or []):
                    episode.streaming = streaming
                    episode.downloads = downloads
                    modified += 1
            await session.commit()
        logger.info("Cleared mirrors from %d episodes", modified)
        return modified

    async def list_reports(self) -> list[Report]:
        async with self._session_factory() as session:
            stmt = select(Report).order_by(Report.created_at.desc(), Report.id.desc())
            return list((await session.scalars(stmt)).all())

    async def delete_report(self, report_id: int) -> None:
        async with self._session_factory() as session:
            result = await session.execute(delete(Report).where(Report.id == report_id))
            await session.commit()
        if not result.rowcount:
            raise KeyError(f"Report not found: {report_id}")

    @staticmethod
    async def _anime_by_slug(session: AsyncSession, page_slug: str) -> Anime:
        anime = await session.scalar(select(Anime).where(Anime.page_slug == page_slug))
        if anime is None:
            logger.warning("Anime %s not found", page_slug)
            raise KeyError(f"Anime not found: {page_slug}")
        return anime

    @staticmethod
    async def _episode_by_slug(session: AsyncSession, episode_slug: str) -> Episode:
        episode = await session.scalar(
            select(Episode).where(Episode.episode_slug == episode_slug)
        )
        if episode is None:
            logger.warning("Episode %s not found", episode_slug)
            raise KeyError(f"Episode not found: {episode_slug}")
        return episode
