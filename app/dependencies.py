"""Request-scoped accessors shared by the route modules."""

from __future__ import annotations

import json
from typing import Any, TypeVar
from urllib.parse import urlparse

from fastapi import HTTPException, Request

from .config import Settings
from .services.accounts import AccountService
from .services.admin import AdminService
from .services.backup import BackupService
from .services.catalog import CatalogService
from .services.episodes import EpisodeService
from .services.images import ImageStore
from .services.sessions import SessionData
from .services.sitemap import SitemapService

T = TypeVar("T")


class AdminLoginRequired(Exception):
    """Raised when an admin-only route is hit without an admin session."""


def _service(request: Request, name: str, expected: type[T]) -> T:
    service = getattr(request.app.state, name, None)
    if not isinstance(service, expected):
        raise RuntimeError(f"{expected.__name__} not initialised")
    return service


def get_settings_from(request: Request) -> Settings:
    return _service(request, "settings", Settings)


def get_catalog_service(request: Request) -> CatalogService:
    return _service(request, "catalog_service", CatalogService)


def get_episode_service(request: Request) -> EpisodeService:
    return _service(request, "episode_service", EpisodeService)


def get_sitemap_service(request: Request) -> SitemapService:
    return _service(request, "sitemap_service", SitemapService)


def get_account_service(request: Request) -> AccountService:
    return _service(request, "account_service", AccountService)


def get_admin_service(request: Request) -> AdminService:
    return _service(request, "admin_service", AdminService)


def get_backup_service(request: Request) -> BackupService:
    return _service(request, "backup_service", BackupService)


def get_image_store(request: Request) -> ImageStore:
    return _service(request, "image_store", ImageStore)


def get_session(request: Request) -> SessionData:
    session = getattr(request.state, "session", None)
    if session is None:
        # Requests that bypass the session middleware get a throwaway session.
        session = SessionData()
        request.state.session = session
    return session


def current_user(request: Request) -> dict[str, Any] | None:
    return get_session(request).user


def require_user(request: Request) -> dict[str, Any]:
    """Return the logged-in member or raise a 401."""

    user = current_user(request)
    if user is None:
        raise HTTPException(status_code=401, detail="You must be logged in to do this")
    return user


def require_admin(request: Request) -> None:
    if not get_session(request).is_admin:
        raise AdminLoginRequired()


def check_same_origin_referer(request: Request) -> None:
    """Reject requests whose ``Referer`` is missing or points at another host."""

    settings = get_settings_from(request)
    referer = request.headers.get("referer")
    if not referer:
        raise HTTPException(status_code=403, detail="Access denied (direct access)")
    try:
        hostname = urlparse(referer).hostname
    except ValueError:
        hostname = None
    if not hostname:
        raise HTTPException(status_code=403, detail="Access denied (invalid referer)")
    if hostname != settings.site_hostname:
        raise HTTPException(status_code=403, detail="Access denied (hotlinking)")


async def read_json_object(request: Request) -> dict[str, Any]:
    """Parse the request body as a JSON object; an empty body counts as ``{}``."""

    try:
        payload = await request.json()
    except json.JSONDecodeError:
        payload = {}
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")
    return payload


def coerce_int(value: Any, *, default: int | None = None) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
