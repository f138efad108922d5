"""Local storage for uploaded cover images."""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath

from ..utils import DEFAULT_IMAGE_URL, DEFAULT_THUMBNAIL_URL

logger = logging.getLogger(__name__)

PROTECTED_IMAGES = frozenset({DEFAULT_IMAGE_URL, DEFAULT_THUMBNAIL_URL})

IMAGE_WEB_PREFIX = "/images/"
ALLOWED_IMAGE_TYPES: dict[str, str] = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}
_ALLOWED_SUFFIXES = {".jpg", ".jpeg", ".png", ".webp"}


class ImageStore:
    """Saves uploaded images as ``<slug><ext>`` under the upload directory."""

    def __init__(self, directory: Path, *, max_bytes: int = 5 * 1024 * 1024):
        self._directory = Path(directory)
        self._max_bytes = max_bytes

    def ensure_directory(self) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)

    def save(self, slug: str, filename: str | None, content_type: str | None, data: bytes) -> str:
        """Write an upload and return its public URL.

        Raises ``ValueError`` for unsupported types, empty files and files over
        the size limit.
        """

        if content_type not in ALLOWED_IMAGE_TYPES:
            raise ValueError("Only .jpg, .png or .webp images are allowed")
        if not data:
            raise ValueError("Uploaded image is empty")
        if len(data) > self._max_bytes:
            raise ValueError(
                f"Uploaded image exceeds {self._max_bytes // (1024 * 1024)} MB"
            )

        suffix = PurePosixPath(filename or "").suffix.lower()
        if suffix not in _ALLOWED_SUFFIXES:
            suffix = ALLOWED_IMAGE_TYPES[content_type]
        name = f"{slug}{suffix}"
        self.ensure_directory()
        target = self._directory / name
        target.write_bytes(data)
        logger.info("Saved uploaded image to %s", target)
        return f"{IMAGE_WEB_PREFIX}{name}"

    def resolve(self, name: str) -> Path | None:
        """Return the path of a stored image, or ``None`` when it is absent."""

        if not name or "/" in name or "\\" in name or name.startswith("."):
            return None
        path = self._directory / name
        return path if path.is_file() else None

    def delete_for_url(self, image_url: str | None) -> bool:
        """Remove the local file behind an ``/images/...`` URL, if any."""

        if not image_url or not image_url.startswith(IMAGE_WEB_PREFIX):
            return False
        name = PurePosixPath(image_url).name
        if f"{IMAGE_WEB_PREFIX}{name}" in PROTECTED_IMAGES:
            return False
        path = self.resolve(name)
        if path is None:
            return False
        try:
            path.unlink()
        except OSError as exc:
            logger.warning("Failed to delete image %s: %s", path, exc)
            return False
        logger.info("Deleted image file %s", path)
        return True
