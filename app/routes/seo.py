"""robots.txt and XML sitemaps."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse

from ..dependencies import get_sitemap_service

XML_MEDIA_TYPE = "application/xml"


def register_seo_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/robots.txt", response_class=PlainTextResponse)
    async def robots(request: Request) -> PlainTextResponse:
        return PlainTextResponse(get_sitemap_service(request).robots_txt())

    @fastapi_app.get("/sitemap_index.xml")
    async def sitemap_index(request: Request) -> Response:
        return Response(get_sitemap_service(request).sitemap_index(), media_type=XML_MEDIA_TYPE)

    @fastapi_app.get("/sitemap-static.xml")
    async def sitemap_static(request: Request) -> Response:
        return Response(get_sitemap_service(request).static_sitemap(), media_type=XML_MEDIA_TYPE)

    @fastapi_app.get("/sitemap-anime.xml")
    async def sitemap_anime(request: Request) -> StreamingResponse:
        return StreamingResponse(
            get_sitemap_service(request).stream_anime_sitemap(), media_type=XML_MEDIA_TYPE
        )

    @fastapi_app.get("/sitemap-episode.xml")
    async def sitemap_episode(request: Request) -> StreamingResponse:
        return StreamingResponse(
            get_sitemap_service(request).stream_episode_sitemap(), media_type=XML_MEDIA_TYPE
        )

    @fastapi_app.get("/sitemap-taxonomies.xml")
    async def sitemap_taxonomies(request: Request) -> Response:
        body = await get_sitemap_service(request).taxonomy_sitemap()
        return Response(body, media_type=XML_MEDIA_TYPE)
