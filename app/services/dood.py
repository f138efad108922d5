"""Client for the DoodStream remote-upload API."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from ..config import Settings

logger = logging.getLogger(__name__)

DOOD_TIMEOUT = httpx.Timeout(60.0)


class UpstreamError(RuntimeError):
    """Raised when a third-party service rejects or fails a request."""


@dataclass(slots=True)
class RemoteUpload:
    """Links for a file queued on the video host."""

    file_code: str
    embed_url: str
    download_url: str


class DoodClient:
    """Queues remote uploads on the video host and builds the mirror links."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client
        self._embed_base = str(settings.dood_embed_url).rstrip("/")

    @property
    def configured(self) -> bool:
        return bool(self._settings.dood_api_key)

    async def remote_upload(self, video_url: str) -> RemoteUpload:
        """Ask the host to fetch ``video_url`` and return the resulting links.

        Raises ``ValueError`` when the client is not configured and
        ``UpstreamError`` when the host reports a failure.
        """

        if not self.configured:
            raise ValueError("DOOD_API_KEY is not configured on the server")
        params = {"key": self._settings.dood_api_key, "url": video_url}
        try:
            response = await self._client.get("/upload/url", params=params)
        except httpx.HTTPError as exc:
            logger.warning("Remote upload request failed: %s", exc)
            raise UpstreamError(f"DoodAPI request failed: {exc}") from exc

        if response.status_code >= 400:
            logger.warning(
                "Remote upload rejected with HTTP %s: %s",
                response.status_code,
                response.text,
            )
            raise UpstreamError(f"DoodAPI returned HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError("DoodAPI returned an invalid response") from exc

        if not isinstance(payload, dict):
            raise UpstreamError("DoodAPI returned an invalid response")
        result = payload.get("result")
        if payload.get("status") != 200 or not result:
            message = payload.get("msg") or "Failed to start the upload"
            raise UpstreamError(f"DoodAPI error: {message}")
        if isinstance(result, list):
            result = result[0] if result else {}
        file_code = result.get("filecode") if isinstance(result, dict) else None
        if not file_code:
            raise UpstreamError("DoodAPI reported success without a filecode")

        upload = RemoteUpload(
            file_code=str(file_code),
            embed_url=f"{self._embed_base}/e/{file_code}",
            download_url=f"{self._embed_base}/d/{file_code}",
        )
        logger.info("Remote upload queued, embed URL %s", upload.embed_url)
        return upload


def build_dood_http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=str(settings.dood_api_url).rstrip("/"), timeout=DOOD_TIMEOUT
    )
