"""Server-rendered public pages and legacy URL redirects."""

from __future__ import annotations

import logging
from urllib.parse import quote, urlencode

from fastapi import FastAPI, Form, HTTPException, Request
from fastapi.responses import FileResponse, HTMLResponse, RedirectResponse

from ..dependencies import (
    current_user,
    get_account_service,
    get_catalog_service,
    get_episode_service,
    get_image_store,
    get_session,
    get_settings_from,
)
from ..services.catalog import TaxonomyKind
from ..utils import decode_outbound_link
from ..web import (
    render_anime_detail,
    render_auth_page,
    render_bookmarks,
    render_genre_index,
    render_home,
    render_landing,
    render_listing,
    render_safelink,
    render_schedule,
    render_watch_page,
    render_year_index,
)

logger = logging.getLogger(__name__)

TAXONOMY_ROUTES: tuple[TaxonomyKind, ...] = ("genre", "status", "type", "studio")


def _redirect(url: str, status_code: int = 303) -> RedirectResponse:
    return RedirectResponse(url, status_code=status_code)


def _paged(base_path: str, page: int | None) -> str:
    if page is None:
        return base_path
    return f"{base_path}?page={page}"


def register_public_routes(fastapi_app: FastAPI) -> None:
    async def _taxonomy_page(
        request: Request, kind: TaxonomyKind, slug: str, page: str | None
    ) -> HTMLResponse:
        service = get_catalog_service(request)
        try:
            listing = await service.list_by_taxonomy(kind, slug, page)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=f"{kind.title()} not found") from exc
        html = render_listing(
            get_settings_from(request),
            title=listing.title,
            page=listing.page,
            base_url=f"/{kind}/{quote(slug, safe='')}",
            user=current_user(request),
        )
        return HTMLResponse(html)

    @fastapi_app.get("/", response_class=HTMLResponse)
    async def landing(request: Request) -> HTMLResponse:
        return HTMLResponse(render_landing(get_settings_from(request), user=current_user(request)))

    @fastapi_app.get("/home", response_class=HTMLResponse)
    async def home(request: Request, page: str | None = None) -> HTMLResponse:
        feed = await get_catalog_service(request).home_feed(page)
        return HTMLResponse(
            render_home(get_settings_from(request), feed, user=current_user(request))
        )

    @fastapi_app.get("/anime-list", response_class=HTMLResponse)
    async def anime_list(request: Request, page: str | None = None) -> HTMLResponse:
        listing = await get_catalog_service(request).full_list(page)
        html = render_listing(
            get_settings_from(request),
            title="Anime List",
            page=listing,
            base_url="/anime-list",
            user=current_user(request),
        )
        return HTMLResponse(html)

    @fastapi_app.get("/search", response_class=HTMLResponse)
    async def search(request: Request, q: str = "", page: str | None = None) -> HTMLResponse:
        query = q.strip()
        if not query:
            return _redirect("/home")
        listing = await get_catalog_service(request).search(query, page)
        html = render_listing(
            get_settings_from(request),
            title=f"Search results for: {query}",
            page=listing,
            base_url=f"/search?{urlencode({'q': query})}",
            query=query,
            noindex=True,
            user=current_user(request),
        )
        return HTMLResponse(html)

    @fastapi_app.get("/genre-list", response_class=HTMLResponse)
    async def genre_list(request: Request) -> HTMLResponse:
        genres = await get_catalog_service(request).genre_index()
        return HTMLResponse(
            render_genre_index(get_settings_from(request), genres, user=current_user(request))
        )

    @fastapi_app.get("/year-list", response_class=HTMLResponse)
    async def year_list(request: Request) -> HTMLResponse:
        years = await get_catalog_service(request).year_index()
        return HTMLResponse(
            render_year_index(get_settings_from(request), years, user=current_user(request))
        )

    @fastapi_app.get("/genre/{slug}", response_class=HTMLResponse)
    async def genre_page(request: Request, slug: str, page: str | None = None) -> HTMLResponse:
        return await _taxonomy_page(request, "genre", slug, page)

    @fastapi_app.get("/status/{slug}", response_class=HTMLResponse)
    async def status_page(request: Request, slug: str, page: str | None = None) -> HTMLResponse:
        return await _taxonomy_page(request, "status", slug, page)

    @fastapi_app.get("/type/{slug}", response_class=HTMLResponse)
    async def type_page(request: Request, slug: str, page: str | None = None) -> HTMLResponse:
        return await _taxonomy_page(request, "type", slug, page)

    @fastapi_app.get("/studio/{slug}", response_class=HTMLResponse)
    async def studio_page(request: Request, slug: str, page: str | None = None) -> HTMLResponse:
        return await _taxonomy_page(request, "studio", slug, page)

    @fastapi_app.get("/year/{year}", response_class=HTMLResponse)
    async def year_page(request: Request, year: str, page: str | None = None) -> HTMLResponse:
        service = get_catalog_service(request)
        try:
            listing = await service.list_by_taxonomy("year", year, page)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Invalid year") from exc
        html = render_listing(
            get_settings_from(request),
            title=f"Anime released in {year}",
            page=listing.page,
            base_url=f"/year/{year}",
            user=current_user(request),
        )
        return HTMLResponse(html)

    @fastapi_app.get("/anime/{slug}", response_class=HTMLResponse)
    async def anime_detail(request: Request, slug: str) -> HTMLResponse:
        service = get_catalog_service(request)
        try:
            detail = await service.get_anime(slug)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Anime not found") from exc
        recommendations = await service.recommendations(exclude_id=detail.id, size=8)
        html = render_anime_detail(
            get_settings_from(request), detail, recommendations, user=current_user(request)
        )
        return HTMLResponse(html)

    @fastapi_app.get("/anime/{slug}/{number}", response_class=HTMLResponse)
    async def watch_episode(request: Request, slug: str, number: str) -> HTMLResponse:
        try:
            watch = await get_episode_service(request).get_watch_page(slug, number)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Episode not found") from exc
        return HTMLResponse(
            render_watch_page(get_settings_from(request), watch, user=current_user(request))
        )

    @fastapi_app.get("/random")
    async def random_anime(request: Request) -> RedirectResponse:
        slug = await get_catalog_service(request).random_slug()
        if not slug:
            logger.warning("Random anime requested but the catalog is empty")
            return _redirect("/", 302)
        return _redirect(f"/anime/{quote(slug, safe='')}", 302)

    @fastapi_app.get("/schedule", response_class=HTMLResponse)
    async def schedule(request: Request) -> HTMLResponse:
        return HTMLResponse(render_schedule(get_settings_from(request), user=current_user(request)))

    @fastapi_app.get("/safelink", response_class=HTMLResponse)
    async def safelink(request: Request, url: str = "") -> HTMLResponse:
        try:
            decode_outbound_link(url)
        except ValueError as exc:
            logger.warning("Rejected safelink target %r", url[:200])
            raise HTTPException(status_code=404, detail="Link not found") from exc
        return HTMLResponse(
            render_safelink(get_settings_from(request), url, user=current_user(request))
        )

    @fastapi_app.get("/bookmarks", response_class=HTMLResponse)
    async def bookmarks(request: Request) -> HTMLResponse:
        return HTMLResponse(render_bookmarks(get_settings_from(request), user=current_user(request)))

    @fastapi_app.get("/login", response_class=HTMLResponse)
    async def login_page(request: Request, error: str | None = None):
        if current_user(request):
            return _redirect("/bookmarks")
        return HTMLResponse(render_auth_page(get_settings_from(request), mode="login", error=error))

    @fastapi_app.post("/login")
    async def login(
        request: Request, username: str = Form(""), password: str = Form("")
    ) -> RedirectResponse:
        try:
            user = await get_account_service(request).authenticate(username, password)
        except ValueError as exc:
            return _redirect(f"/login?{urlencode({'error': str(exc)})}")
        session = get_session(request)
        session.regenerate()
        session.update(user_id=user.id, username=user.username)
        return _redirect("/bookmarks")

    @fastapi_app.get("/register", response_class=HTMLResponse)
    async def register_page(request: Request, error: str | None = None):
        if current_user(request):
            return _redirect("/bookmarks")
        return HTMLResponse(
            render_auth_page(get_settings_from(request), mode="register", error=error)
        )

    @fastapi_app.post("/register")
    async def register(
        request: Request, username: str = Form(""), password: str = Form("")
    ) -> RedirectResponse:
        try:
            user = await get_account_service(request).register(username, password)
        except ValueError as exc:
            return _redirect(f"/register?{urlencode({'error': str(exc)})}")
        session = get_session(request)
        session.regenerate()
        session.update(user_id=user.id, username=user.username)
        return _redirect("/bookmarks")

    @fastapi_app.get("/logout")
    async def logout(request: Request) -> RedirectResponse:
        get_session(request).destroy()
        return _redirect("/home")

    @fastapi_app.get("/images/{name}")
    async def image(request: Request, name: str) -> FileResponse:
        path = get_image_store(request).resolve(name)
        if path is None:
            raise HTTPException(status_code=404, detail="Image not found")
        return FileResponse(path)

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    # Legacy URLs, permanently redirected to their canonical routes.

    @fastapi_app.get("/anime-list/page/{page:int}")
    async def legacy_anime_list(page: int) -> RedirectResponse:
        return _redirect(_paged("/anime-list", page), 301)

    @fastapi_app.get("/{kind}/{slug}/page/{page:int}")
    async def legacy_taxonomy_page(kind: str, slug: str, page: int) -> RedirectResponse:
        if kind == "tahun":
            kind = "year"
        if kind not in (*TAXONOMY_ROUTES, "year"):
            raise HTTPException(status_code=404, detail="Page not found")
        return _redirect(_paged(f"/{kind}/{quote(slug, safe='')}", page), 301)

    @fastapi_app.get("/tahun/{year}")
    async def legacy_year(year: str) -> RedirectResponse:
        return _redirect(f"/year/{quote(year, safe='')}", 301)

    @fastapi_app.get("/tahun-list")
    async def legacy_year_list() -> RedirectResponse:
        return _redirect("/year-list", 301)

    @fastapi_app.get("/jadwal")
    async def legacy_schedule() -> RedirectResponse:
        return _redirect("/schedule", 301)

    @fastapi_app.get("/page/{page:int}")
    async def legacy_home_page(page: int) -> RedirectResponse:
        return _redirect(_paged("/home", page), 301)

    @fastapi_app.get("/nonton/{episode_path:path}")
    async def legacy_watch(episode_path: str) -> RedirectResponse:
        cleaned = episode_path.strip("/")
        if not cleaned:
            return _redirect("/", 301)
        return _redirect(f"/anime/{quote(cleaned, safe='/')}", 301)

    @fastapi_app.get("/{slug}-episode-{number:int}-subtitle-indonesia")
    async def legacy_episode(slug: str, number: int) -> RedirectResponse:
        return _redirect(f"/anime/{quote(slug, safe='')}/{number}", 301)
