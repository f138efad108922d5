"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal
from urllib.parse import urlparse

from pydantic import AliasChoices, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    site_name: str = Field(default="AnimeHub", alias="SITE_NAME")
    site_url: str = Field(default="http://localhost:3000", alias="SITE_URL")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    # No default: the service must not start without a database.
    database_url: str = Field(
        alias="DATABASE_URL",
        validation_alias=AliasChoices("DATABASE_URL", "DB_URI"),
    )

    session_secret: str = Field(
        default="fallback_secret_please_change", alias="SESSION_SECRET"
    )
    session_ttl_days: int = Field(default=14, alias="SESSION_TTL_DAYS", ge=1, le=365)

    admin_username: str | None = Field(default=None, alias="ADMIN_USERNAME")
    admin_password: str | None = Field(default=None, alias="ADMIN_PASSWORD")

    items_per_page: int = Field(default=20, alias="ITEMS_PER_PAGE", ge=1, le=200)
    taxonomy_cache_seconds: int = Field(
        default=3_600, alias="TAXONOMY_CACHE_TTL", ge=1
    )

    upload_dir: Path = Field(
        default=Path("./public/images"),
        alias="UPLOAD_DIR",
        validation_alias=AliasChoices("UPLOAD_DIR", "RENDER_DISK_PATH"),
    )
    max_upload_bytes: int = Field(default=5 * 1024 * 1024, alias="MAX_UPLOAD_BYTES")

    dood_api_key: str | None = Field(default=None, alias="DOOD_API_KEY")
    dood_api_url: HttpUrl = Field(
        default="https://doodapi.co/api", alias="DOOD_API_URL"
    )
    dood_embed_url: HttpUrl = Field(
        default="https://dsvplay.com", alias="DOOD_EMBED_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("database_url")
    @classmethod
    def _require_database_url(cls, value: str) -> str:
        cleaned = (value or "").strip()
        if not cleaned:
            raise ValueError("DATABASE_URL must not be empty")
        return cleaned

    @field_validator("site_url")
    @classmethod
    def _strip_site_url(cls, value: str) -> str:
        """Drop trailing slashes so paths can be appended directly."""

        cleaned = (value or "").strip().rstrip("/")
        parsed = urlparse(cleaned)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("SITE_URL must be an absolute http(s) URL")
        return cleaned

    @property
    def site_hostname(self) -> str:
        return urlparse(self.site_url).hostname or ""

    @property
    def admin_enabled(self) -> bool:
        return bool(self.admin_username and self.admin_password)

    @property
    def secure_cookies(self) -> bool:
        return self.environment == "production"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance.

    Raises a validation error when no database URL is configured.
    """

    return Settings()  # type: ignore[call-arg]
