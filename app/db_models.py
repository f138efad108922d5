"""SQLAlchemy ORM models backing the persistent state."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base
from .utils import utcnow, verify_password


class Anime(Base):
    """A catalog entry. ``page_slug`` is its immutable public identity."""

    __tablename__ = "anime"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    page_slug: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    title: Mapped[str] = mapped_column(String(255), default="")
    alternative_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    synopsis: Mapped[str] = mapped_column(Text, default="")
    info: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    view_count: Mapped[int] = mapped_column(Integer, default=0, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    genre_tags: Mapped[list["AnimeGenre"]] = relationship(
        back_populates="anime",
        cascade="all, delete-orphan",
        order_by="AnimeGenre.position",
        lazy="selectin",
    )
    episode_refs: Mapped[list["AnimeEpisode"]] = relationship(
        back_populates="anime",
        cascade="all, delete-orphan",
        order_by="AnimeEpisode.position",
        lazy="selectin",
    )

    @property
    def genres(self) -> list[str]:
        return [tag.name for tag in self.genre_tags]

    def set_genres(self, names: list[str]) -> None:
        """Replace the genre tags, keeping the given order and dropping duplicates."""

        seen: set[str] = set()
        tags: list[AnimeGenre] = []
        for name in names:
            cleaned = name.strip()
            if not cleaned or cleaned in seen:
                continue
            seen.add(cleaned)
            tags.append(AnimeGenre(name=cleaned, position=len(tags)))
        self.genre_tags = tags


class AnimeGenre(Base):
    """Genre tag attached to a catalog entry."""

    __tablename__ = "anime_genres"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    anime_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("anime.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(120), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)

    anime: Mapped[Anime] = relationship(back_populates="genre_tags")


class AnimeEpisode(Base):
    """Ordered episode reference embedded in a catalog entry."""

    __tablename__ = "anime_episodes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    anime_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("anime.id", ondelete="CASCADE"), index=True
    )
    position: Mapped[int] = mapped_column(Integer, default=0)
    title: Mapped[str] = mapped_column(String(255), default="")
    url: Mapped[str] = mapped_column(String(255), index=True)
    date: Mapped[str | None] = mapped_column(String(64), nullable=True)
    episode_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    anime: Mapped[Anime] = relationship(back_populates="episode_refs")


class Episode(Base):
    """Watchable episode with its streaming mirrors and download groups."""

    __tablename__ = "episodes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    episode_slug: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    title: Mapped[str] = mapped_column(String(255), default="")
    streaming: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    downloads: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    anime_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    anime_slug: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    anime_image_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    episode_date: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )


class User(Base):
    """Registered site member."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def check_password(self, password: str) -> bool:
        return verify_password(password, self.password_hash)


class Bookmark(Base):
    """A user's saved catalog entry."""

    __tablename__ = "bookmarks"
    __table_args__ = (
        UniqueConstraint("user_id", "anime_id", name="uq_bookmark_user_anime"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    anime_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("anime.id", ondelete="CASCADE"), index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Report(Base):
    """Error report submitted from a public page."""

    __tablename__ = "reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    page_url: Mapped[str] = mapped_column(String(1024))
    page_path: Mapped[str] = mapped_column(String(1024), default="", index=True)
    message: Mapped[str] = mapped_column(Text)
    user_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(32), default="new")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    user: Mapped[User | None] = relationship(lazy="selectin")


class Comment(Base):
    """User comment on an episode."""

    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    episode_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("episodes.id", ondelete="CASCADE"), index=True
    )
    user_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    content: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class SessionRecord(Base):
    """Server-side session payload keyed by a hashed cookie token."""

    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    expires_at: Mapped[datetime] = mapped_column(DateTime, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )
