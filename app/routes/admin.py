"""Back-office pages and actions, all behind the admin session flag."""

from __future__ import annotations

import logging
import secrets
from typing import Any
from urllib.parse import quote, urlencode

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, StreamingResponse
from starlette.datastructures import FormData, UploadFile

from ..admin_web import (
    render_add_anime,
    render_admin_anime_list,
    render_admin_episode_list,
    render_admin_login,
    render_backup_page,
    render_clear_mirrors,
    render_dashboard,
    render_edit_anime,
    render_edit_episode,
    render_import_result,
    render_remote_upload,
    render_reports,
)
from ..dependencies import (
    coerce_int,
    get_admin_service,
    get_backup_service,
    get_session,
    get_settings_from,
    read_json_object,
    require_admin,
)
from ..services.admin import (
    INFO_FORM_KEYS,
    AnimeForm,
    EpisodeForm,
    ImageUpload,
    parse_download_lines,
    parse_stream_lines,
    split_genres,
)
from ..services.backup import backup_filename
from ..services.dood import UpstreamError

logger = logging.getLogger(__name__)


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=303)


def _with_error(path: str, message: str) -> RedirectResponse:
    return _redirect(f"{path}?{urlencode({'error': message})}")


def _text(form: FormData, name: str) -> str:
    value = form.get(name)
    return value.strip() if isinstance(value, str) else ""


def _anime_form(form: FormData) -> AnimeForm:
    info = {key: _text(form, f"info.{key}") for key in INFO_FORM_KEYS}
    return AnimeForm(
        title=_text(form, "title"),
        page_slug=_text(form, "pageSlug"),
        alternative_title=_text(form, "alternativeTitle") or None,
        image_url=_text(form, "imageUrl") or None,
        synopsis=_text(form, "synopsis") or None,
        info={key: value for key, value in info.items() if value},
        genres=split_genres(_text(form, "genres")),
    )


async def _image_upload(form: FormData) -> ImageUpload | None:
    upload = form.get("animeImage")
    if not isinstance(upload, UploadFile) or not upload.filename:
        return None
    data = await upload.read()
    if not data:
        return None
    return ImageUpload(filename=upload.filename, content_type=upload.content_type, data=data)


def _anime_path(page_slug: str) -> str:
    return f"/admin/anime/{quote(page_slug, safe='')}"


def _episode_slug(raw: str) -> str:
    return "/" + raw.strip("/")


def register_admin_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/admin/login", response_class=HTMLResponse)
    async def admin_login_page(request: Request, error: str | None = None):
        if get_session(request).is_admin:
            return _redirect("/admin")
        return HTMLResponse(render_admin_login(get_settings_from(request), error=error))

    @fastapi_app.post("/admin/login")
    async def admin_login(request: Request) -> RedirectResponse:
        settings = get_settings_from(request)
        if not settings.admin_enabled:
            logger.warning("Admin login attempted but no admin credentials are configured")
            return _with_error("/admin/login", "Admin login is disabled")
        form = await request.form()
        username_ok = secrets.compare_digest(
            _text(form, "username").encode(), (settings.admin_username or "").encode()
        )
        password_ok = secrets.compare_digest(
            _text(form, "password").encode(), (settings.admin_password or "").encode()
        )
        if not (username_ok and password_ok):
            logger.warning("Failed admin login for %r", _text(form, "username"))
            return _with_error("/admin/login", "Invalid username or password")
        session = get_session(request)
        session.regenerate()
        session["is_admin"] = True
        logger.info("Admin logged in")
        return _redirect("/admin")

    @fastapi_app.get("/admin/logout")
    async def admin_logout(request: Request) -> RedirectResponse:
        get_session(request).destroy()
        return _redirect("/admin/login")

    @fastapi_app.get("/admin", response_class=HTMLResponse)
    async def dashboard(request: Request) -> HTMLResponse:
        require_admin(request)
        counts = await get_admin_service(request).dashboard_counts()
        return HTMLResponse(render_dashboard(get_settings_from(request), counts))

    @fastapi_app.get("/admin/anime", response_class=HTMLResponse)
    async def anime_list(
        request: Request, search: str = "", page: str | None = None
    ) -> HTMLResponse:
        require_admin(request)
        listing = await get_admin_service(request).list_anime(search, page)
        return HTMLResponse(render_admin_anime_list(get_settings_from(request), listing))

    @fastapi_app.get("/admin/anime/add", response_class=HTMLResponse)
    async def add_anime_page(request: Request, error: str | None = None) -> HTMLResponse:
        require_admin(request)
        return HTMLResponse(render_add_anime(get_settings_from(request), error=error))

    @fastapi_app.post("/admin/anime/add")
    async def add_anime(request: Request) -> RedirectResponse:
        require_admin(request)
        form = await request.form()
        try:
            page_slug = await get_admin_service(request).create_anime(
                _anime_form(form), await _image_upload(form)
            )
        except ValueError as exc:
            return _with_error("/admin/anime/add", str(exc))
        return _redirect(f"{_anime_path(page_slug)}/edit")

    @fastapi_app.get("/admin/anime/{slug}/edit", response_class=HTMLResponse)
    async def edit_anime_page(
        request: Request, slug: str, error: str | None = None
    ) -> HTMLResponse:
        require_admin(request)
        try:
            detail = await get_admin_service(request).get_anime(slug)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Anime not found") from exc
        return HTMLResponse(render_edit_anime(get_settings_from(request), detail, error=error))

    @fastapi_app.post("/admin/anime/{slug}/edit")
    async def edit_anime(request: Request, slug: str) -> RedirectResponse:
        require_admin(request)
        form = await request.form()
        try:
            await get_admin_service(request).update_anime(slug, _anime_form(form))
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Anime not found") from exc
        except ValueError as exc:
            return _with_error(f"{_anime_path(slug)}/edit", str(exc))
        return _redirect(f"{_anime_path(slug)}/edit")

    @fastapi_app.post("/admin/anime/{slug}/delete")
    async def delete_anime(request: Request, slug: str) -> RedirectResponse:
        require_admin(request)
        try:
            await get_admin_service(request).delete_anime(slug)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Anime not found") from exc
        return _redirect("/admin/anime")

    @fastapi_app.post("/admin/anime/{slug}/episodes/add")
    async def add_episode(request: Request, slug: str) -> RedirectResponse:
        require_admin(request)
        form = await request.form()
        try:
            await get_admin_service(request).add_episode(
                slug,
                title=_text(form, "episodeTitle") or None,
                number=_text(form, "episodeNumber") or None,
                episode_slug=_text(form, "episodeSlug") or None,
                episode_date=_text(form, "episodeDate") or None,
            )
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Anime not found") from exc
        except ValueError as exc:
            return _with_error(f"{_anime_path(slug)}/edit", str(exc))
        return _redirect(f"{_anime_path(slug)}/edit")

    @fastapi_app.get("/admin/episodes", response_class=HTMLResponse)
    async def episode_list(request: Request, page: str | None = None) -> HTMLResponse:
        require_admin(request)
        listing = await get_admin_service(request).list_episodes(page)
        return HTMLResponse(render_admin_episode_list(get_settings_from(request), listing))

    @fastapi_app.get("/admin/episode/{slug:path}/edit", response_class=HTMLResponse)
    async def edit_episode_page(
        request: Request, slug: str, error: str | None = None
    ) -> HTMLResponse:
        require_admin(request)
        try:
            episode = await get_admin_service(request).get_episode(_episode_slug(slug))
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Episode not found") from exc
        return HTMLResponse(render_edit_episode(get_settings_from(request), episode, error=error))

    @fastapi_app.post("/admin/episode/{slug:path}/edit")
    async def edit_episode(request: Request, slug: str) -> RedirectResponse:
        require_admin(request)
        episode_slug = _episode_slug(slug)
        form = await request.form()
        episode_form = EpisodeForm(
            title=_text(form, "title") or None,
            thumbnail_url=_text(form, "thumbnailUrl") or None,
            episode_date=_text(form, "episodeDate") or None,
            streaming=parse_stream_lines(_text(form, "streams")),
            downloads=parse_download_lines(_text(form, "downloads")),
        )
        try:
            await get_admin_service(request).update_episode(episode_slug, episode_form)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Episode not found") from exc
        return _redirect(f"/admin/episode/{quote(episode_slug.lstrip('/'), safe='/')}/edit")

    @fastapi_app.post("/admin/episode/{slug:path}/delete")
    async def delete_episode(request: Request, slug: str) -> RedirectResponse:
        require_admin(request)
        try:
            await get_admin_service(request).delete_episode(_episode_slug(slug))
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Episode not found") from exc
        return _redirect("/admin/episodes")

    @fastapi_app.get("/admin/backup", response_class=HTMLResponse)
    async def backup_page(request: Request, error: str | None = None) -> HTMLResponse:
        require_admin(request)
        return HTMLResponse(render_backup_page(get_settings_from(request), error=error))

    @fastapi_app.get("/admin/backup/export")
    async def backup_export(request: Request) -> StreamingResponse:
        require_admin(request)
        filename = backup_filename(get_settings_from(request).site_name)
        logger.info("Starting backup export %s", filename)
        return StreamingResponse(
            get_backup_service(request).stream_export(),
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @fastapi_app.post("/admin/backup/import", response_class=HTMLResponse)
    async def backup_import(request: Request):
        require_admin(request)
        form = await request.form()
        upload = form.get("backupFile")
        if not isinstance(upload, UploadFile) or not upload.filename:
            return _with_error("/admin/backup", "No backup file was uploaded")
        raw = await upload.read()
        try:
            summary = await get_backup_service(request).import_backup(raw)
        except ValueError as exc:
            return _with_error("/admin/backup", str(exc))
        return HTMLResponse(render_import_result(get_settings_from(request), summary))

    @fastapi_app.get("/admin/batch-upload", response_class=HTMLResponse)
    async def batch_upload_page(request: Request) -> HTMLResponse:
        require_admin(request)
        settings = get_settings_from(request)
        return HTMLResponse(
            render_remote_upload(settings, configured=bool(settings.dood_api_key))
        )

    @fastapi_app.post("/admin/api/remote-upload")
    async def remote_upload(request: Request) -> JSONResponse:
        require_admin(request)
        payload = await read_json_object(request)
        try:
            stream = await get_admin_service(request).attach_remote_mirror(
                str(payload.get("episodeSlug") or ""), str(payload.get("videoUrl") or "")
            )
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Episode not found") from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except UpstreamError as exc:
            logger.error("Remote upload failed: %s", exc)
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return JSONResponse({"success": True, "newLink": stream.to_payload()})

    @fastapi_app.get("/admin/clear-mirrors", response_class=HTMLResponse)
    async def clear_mirrors_page(request: Request) -> HTMLResponse:
        require_admin(request)
        return HTMLResponse(render_clear_mirrors(get_settings_from(request)))

    @fastapi_app.post("/admin/api/clear-mirrors-start")
    async def clear_mirrors(request: Request) -> dict[str, Any]:
        require_admin(request)
        modified = await get_admin_service(request).clear_mirrors()
        return {"success": True, "modifiedCount": modified}

    @fastapi_app.get("/admin/reports", response_class=HTMLResponse)
    async def reports(request: Request) -> HTMLResponse:
        require_admin(request)
        items = await get_admin_service(request).list_reports()
        return HTMLResponse(render_reports(get_settings_from(request), items))

    @fastapi_app.post("/admin/report/delete/{report_id}")
    async def delete_report(request: Request, report_id: str) -> RedirectResponse:
        require_admin(request)
        parsed = coerce_int(report_id)
        if parsed is None:
            raise HTTPException(status_code=400, detail="Invalid report id")
        try:
            await get_admin_service(request).delete_report(parsed)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Report not found") from exc
        return _redirect("/admin/reports")
