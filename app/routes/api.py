"""Same-site JSON endpoints used by the page scripts."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from ..dependencies import (
    check_same_origin_referer,
    coerce_int,
    get_account_service,
    get_catalog_service,
    read_json_object,
    require_user,
)

logger = logging.getLogger(__name__)


def _anime_id(value: Any) -> int:
    anime_id = coerce_int(value)
    if anime_id is None or anime_id <= 0:
        raise HTTPException(status_code=400, detail="A valid animeId is required")
    return anime_id


def register_api_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/api/popular")
    async def popular(request: Request, range: str = "weekly") -> JSONResponse:
        check_same_origin_referer(request)
        cards = await get_catalog_service(request).popular(range)
        return JSONResponse([card.to_payload() for card in cards])

    @fastapi_app.get("/api/this-year")
    async def this_year(request: Request) -> JSONResponse:
        check_same_origin_referer(request)
        cards = await get_catalog_service(request).released_this_year()
        return JSONResponse([card.to_payload() for card in cards])

    @fastapi_app.get("/api/genre/uncensored")
    async def uncensored(request: Request) -> JSONResponse:
        check_same_origin_referer(request)
        cards = await get_catalog_service(request).genre_strip("uncensored")
        return JSONResponse([card.to_payload() for card in cards])

    @fastapi_app.get("/api/bookmark-status")
    async def bookmark_status(request: Request, animeId: str | None = None) -> dict[str, bool]:
        user = require_user(request)
        bookmarked = await get_account_service(request).is_bookmarked(
            user["id"], _anime_id(animeId)
        )
        return {"isBookmarked": bookmarked}

    @fastapi_app.post("/api/bookmarks")
    async def add_bookmark(request: Request) -> dict[str, bool]:
        user = require_user(request)
        payload = await read_json_object(request)
        anime_id = _anime_id(payload.get("animeId"))
        try:
            await get_account_service(request).add_bookmark(user["id"], anime_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Anime not found") from exc
        return {"success": True, "isBookmarked": True}

    @fastapi_app.delete("/api/bookmarks")
    async def remove_bookmark(request: Request, animeId: str | None = None) -> dict[str, bool]:
        user = require_user(request)
        await get_account_service(request).remove_bookmark(user["id"], _anime_id(animeId))
        return {"success": True, "isBookmarked": False}

    @fastapi_app.get("/api/my-bookmarks")
    async def my_bookmarks(request: Request) -> JSONResponse:
        user = require_user(request)
        cards = await get_account_service(request).list_bookmarks(user["id"])
        return JSONResponse([card.to_payload() for card in cards])

    @fastapi_app.delete("/api/bookmarks/all")
    async def clear_bookmarks(request: Request) -> dict[str, Any]:
        user = require_user(request)
        deleted = await get_account_service(request).clear_bookmarks(user["id"])
        logger.info("Cleared %s bookmarks for user %s", deleted, user["id"])
        return {"success": True, "deletedCount": deleted}

    @fastapi_app.post("/api/report-error")
    async def report_error(request: Request) -> JSONResponse:
        user = require_user(request)
        payload = await read_json_object(request)
        try:
            await get_account_service(request).submit_report(
                payload.get("pageUrl"), payload.get("message"), user["id"]
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse(
            {"success": True, "message": "Report sent. Thank you!"}, status_code=201
        )
