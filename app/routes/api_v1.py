"""Versioned JSON API for external clients."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, HTTPException, Request

from ..dependencies import get_catalog_service, get_episode_service
from ..services.catalog import TaxonomyKind


def register_api_v1_routes(fastapi_app: FastAPI) -> None:
    async def _taxonomy_results(
        request: Request, kind: TaxonomyKind, slug: str, page: str | None
    ) -> dict[str, Any]:
        try:
            listing = await get_catalog_service(request).list_by_taxonomy(kind, slug, page)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc.args[0])) from exc
        return listing.page.to_results_payload(title=listing.title)

    @fastapi_app.get("/api/v1/home")
    async def home(request: Request, page: str | None = None) -> dict[str, Any]:
        feed = await get_catalog_service(request).home_feed(page, episode_limit=18)
        return {
            "episodes": [card.to_payload() for card in feed.episodes],
            "latestSeries": [card.to_payload() for card in feed.latest_series],
            "pagination": {
                "currentPage": feed.current_page,
                "totalPages": feed.total_pages,
                "totalEpisodes": feed.total_episodes,
            },
        }

    @fastapi_app.get("/api/v1/anime/{slug}")
    async def anime(request: Request, slug: str) -> dict[str, Any]:
        try:
            detail = await get_catalog_service(request).get_anime(slug, count_view=False)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Anime not found") from exc
        return detail.to_payload()

    @fastapi_app.get("/api/v1/search")
    async def search(request: Request, q: str = "", page: str | None = None) -> dict[str, Any]:
        try:
            listing = await get_catalog_service(request).search(q, page)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return listing.to_results_payload()

    @fastapi_app.get("/api/v1/episode/{anime_slug}/{number}")
    async def episode(request: Request, anime_slug: str, number: str) -> dict[str, Any]:
        try:
            watch = await get_episode_service(request).get_watch_page(anime_slug, number)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Episode not found") from exc
        payload = watch.episode.to_payload()
        payload["nav"] = watch.nav.to_payload()
        return payload

    @fastapi_app.get("/api/v1/genre/{slug}")
    async def genre(request: Request, slug: str, page: str | None = None) -> dict[str, Any]:
        return await _taxonomy_results(request, "genre", slug, page)

    @fastapi_app.get("/api/v1/status/{slug}")
    async def status(request: Request, slug: str, page: str | None = None) -> dict[str, Any]:
        return await _taxonomy_results(request, "status", slug, page)

    @fastapi_app.get("/api/v1/type/{slug}")
    async def type_(request: Request, slug: str, page: str | None = None) -> dict[str, Any]:
        return await _taxonomy_results(request, "type", slug, page)

    @fastapi_app.get("/api/v1/studio/{slug}")
    async def studio(request: Request, slug: str, page: str | None = None) -> dict[str, Any]:
        return await _taxonomy_results(request, "studio", slug, page)

    @fastapi_app.get("/api/v1/year/{year}")
    async def year(request: Request, year: str, page: str | None = None) -> dict[str, Any]:
        return await _taxonomy_results(request, "year", year, page)
