"""Entry point for the FastAPI-powered anime streaming site."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from .config import Settings, get_settings
from .database import Database
from .dependencies import AdminLoginRequired
from .routes.admin import register_admin_routes
from .routes.api import register_api_routes
from .routes.api_v1 import register_api_v1_routes
from .routes.public import register_public_routes
from .routes.seo import register_seo_routes
from .services.accounts import AccountService
from .services.admin import AdminService
from .services.backup import BackupService
from .services.catalog import CatalogService
from .services.dood import DoodClient, build_dood_http_client
from .services.episodes import EpisodeService
from .services.images import ImageStore
from .services.sessions import SESSION_COOKIE, SessionData, SessionStore
from .services.sitemap import SitemapService
from .services.taxonomy import TaxonomyCache
from .web import render_error_page

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


def wants_json(path: str) -> bool:
    return path.startswith("/api/") or path.startswith("/admin/api/")


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    settings: Settings = fastapi_app.state.settings_override or get_settings()
    exit_stack = AsyncExitStack()
    dood_http_client = await exit_stack.enter_async_context(
        build_dood_http_client(settings)
    )
    database = Database(settings.database_url)
    await database.create_all()

    session_factory = database.session_factory
    taxonomy = TaxonomyCache(session_factory, ttl_seconds=settings.taxonomy_cache_seconds)
    images = ImageStore(settings.upload_dir, max_bytes=settings.max_upload_bytes)
    images.ensure_directory()
    dood = DoodClient(settings, dood_http_client)
    catalog_service = CatalogService(settings, session_factory, taxonomy)
    session_store = SessionStore(
        session_factory,
        secret=settings.session_secret,
        ttl=timedelta(days=settings.session_ttl_days),
    )

    state = fastapi_app.state
    state.settings = settings
    state.database = database
    state.taxonomy = taxonomy
    state.image_store = images
    state.dood_client = dood
    state.session_store = session_store
    state.catalog_service = catalog_service
    state.episode_service = EpisodeService(session_factory, catalog_service)
    state.sitemap_service = SitemapService(settings, session_factory, taxonomy)
    state.account_service = AccountService(session_factory)
    state.admin_service = AdminService(session_factory, images, dood)
    state.backup_service = BackupService(session_factory)

    await session_store.purge_expired()
    if not settings.admin_enabled:
        logger.warning("ADMIN_USERNAME/ADMIN_PASSWORD not set; admin login is disabled")
    logger.info("%s ready at %s", settings.site_name, settings.site_url)

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await catalog_service.drain_background_tasks()
        await database.dispose()
        await exit_stack.aclose()


def create_app(settings: Settings | None = None) -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.site_name if settings else "AnimeHub",
        description="Anime streaming catalog with a JSON API and admin back office",
        version="1.0.0",
        lifespan=lifespan,
    )
    fastapi_app.state.settings_override = settings

    register_session_middleware(fastapi_app)
    register_exception_handlers(fastapi_app)
    register_seo_routes(fastapi_app)
    register_api_v1_routes(fastapi_app)
    register_api_routes(fastapi_app)
    register_admin_routes(fastapi_app)
    register_public_routes(fastapi_app)
    return fastapi_app


def register_session_middleware(fastapi_app: FastAPI) -> None:
    @fastapi_app.middleware("http")
    async def session_middleware(request: Request, call_next) -> Response:
        store: SessionStore | None = getattr(request.app.state, "session_store", None)
        if store is None:
            request.state.session = SessionData()
            return await call_next(request)

        token = request.cookies.get(SESSION_COOKIE)
        session = await store.load(token)
        request.state.session = session

        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Unhandled error on %s %s", request.method, request.url.path)
            if wants_json(request.url.path):
                response = JSONResponse({"error": "Internal server error"}, status_code=500)
            else:
                response = PlainTextResponse("Internal server error", status_code=500)

        if session.destroyed:
            await store.destroy(token)
            response.delete_cookie(SESSION_COOKIE, path="/")
            return response
        if not session.modified:
            return response

        if session.rotate or session.is_new:
            if token and session.rotate:
                await store.destroy(token)
            token = None
        token = await store.save(token, session)
        settings: Settings = request.app.state.settings
        response.set_cookie(
            SESSION_COOKIE,
            token,
            max_age=store.max_age_seconds,
            path="/",
            httponly=True,
            samesite="lax",
            secure=settings.secure_cookies,
        )
        return response


def register_exception_handlers(fastapi_app: FastAPI) -> None:
    @fastapi_app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
        headers = getattr(exc, "headers", None)
        if wants_json(request.url.path):
            return JSONResponse(
                {"error": str(exc.detail)}, status_code=exc.status_code, headers=headers
            )
        settings: Settings | None = getattr(request.app.state, "settings", None)
        if settings is None:
            return PlainTextResponse(str(exc.detail), status_code=exc.status_code)
        session = getattr(request.state, "session", None)
        html = render_error_page(
            settings,
            exc.status_code,
            str(exc.detail),
            path=request.url.path,
            user=session.user if session is not None else None,
        )
        return HTMLResponse(html, status_code=exc.status_code, headers=headers)

    @fastapi_app.exception_handler(AdminLoginRequired)
    async def admin_login_required_handler(
        request: Request, exc: AdminLoginRequired
    ) -> RedirectResponse:
        return RedirectResponse("/admin/login", status_code=303)

    @fastapi_app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> Response:
        message = "Invalid request"
        errors = exc.errors()
        if errors:
            message = str(errors[0].get("msg") or message)
        if wants_json(request.url.path):
            return JSONResponse({"error": message}, status_code=400)
        return PlainTextResponse(message, status_code=400)


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    server_settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=server_settings.server_host,
        port=server_settings.server_port,
        reload=server_settings.environment == "development",
    )
