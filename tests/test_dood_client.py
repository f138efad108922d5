"""Video host remote-upload client tests."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from app.config import Settings
from app.database import Database
from app.services.admin import AdminService
from app.services.dood import DoodClient, UpstreamError
from app.services.images import ImageStore


def _settings(tmp_path, api_key: str | None = "dood-key") -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'dood.db'}",
        DOOD_API_KEY=api_key,
        DOOD_API_URL="https://doodapi.test/api",
        DOOD_EMBED_URL="https://embed.test",
    )  # type: ignore[call-arg]


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="https://doodapi.test/api"
    )


@pytest.mark.anyio
async def test_remote_upload_builds_embed_and_download_links(tmp_path) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"status": 200, "result": {"filecode": "abc123"}})

    async with _client(handler) as http_client:
        client = DoodClient(_settings(tmp_path), http_client)
        upload = await client.remote_upload("https://files.test/video.mp4")

    assert upload.file_code == "abc123"
    assert upload.embed_url == "https://embed.test/e/abc123"
    assert upload.download_url == "https://embed.test/d/abc123"
    assert seen[0].url.path == "/api/upload/url"
    assert seen[0].url.params["key"] == "dood-key"
    assert seen[0].url.params["url"] == "https://files.test/video.mp4"


@pytest.mark.anyio
async def test_remote_upload_accepts_list_results(tmp_path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": 200, "result": [{"filecode": "xyz"}]})

    async with _client(handler) as http_client:
        upload = await DoodClient(_settings(tmp_path), http_client).remote_upload("u")

    assert upload.embed_url.endswith("/e/xyz")


@pytest.mark.anyio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"status": 403, "msg": "Wrong Auth"}),
        httpx.Response(200, json={"status": 200, "result": {}}),
        httpx.Response(502, text="bad gateway"),
        httpx.Response(200, text="<html>"),
    ],
)
async def test_remote_upload_errors_raise_upstream_error(tmp_path, response) -> None:
    async with _client(lambda request: response) as http_client:
        client = DoodClient(_settings(tmp_path), http_client)
        with pytest.raises(UpstreamError):
            await client.remote_upload("u")


@pytest.mark.anyio
async def test_unconfigured_client_refuses_uploads(tmp_path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    async with _client(handler) as http_client:
        client = DoodClient(_settings(tmp_path, api_key=None), http_client)
        assert client.configured is False
        with pytest.raises(ValueError, match="DOOD_API_KEY"):
            await client.remote_upload("u")


def test_attach_remote_mirror_updates_episode(tmp_path, seed_catalog) -> None:
    settings = _settings(tmp_path)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": 200, "result": {"filecode": "m1"}})

    async def runner() -> None:
        database = Database(settings.database_url)
        await database.create_all()
        await seed_catalog(database.session_factory)

        async with _client(handler) as http_client:
            admin = AdminService(
                database.session_factory,
                ImageStore(tmp_path / "images"),
                DoodClient(settings, http_client),
            )
            link = await admin.attach_remote_mirror("/one-piece/1", "https://files.test/1.mp4")
            assert link.url == "https://embed.test/e/m1"

            episode = await admin.get_episode("/one-piece/1")
            assert episode.streaming[-1] == {"name": "Mirror", "url": "https://embed.test/e/m1"}
            assert episode.downloads[-1] == {
                "quality": "480p",
                "links": [{"host": "DoodStream", "url": "https://embed.test/d/m1"}],
            }

            with pytest.raises(KeyError):
                await admin.attach_remote_mirror("/one-piece/99", "https://files.test/x.mp4")
            with pytest.raises(ValueError):
                await admin.attach_remote_mirror("", "https://files.test/x.mp4")

        await database.dispose()

    asyncio.run(runner())
