"""Utility helpers for the AnimeHub service."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import math
import re
import secrets
import unicodedata
from datetime import datetime, timezone
from urllib.parse import quote, unquote, urlsplit, urlunsplit

DEFAULT_IMAGE_URL = "/images/default.jpg"
DEFAULT_THUMBNAIL_URL = "/images/default_thumb.jpg"

EPISODE_SLUG_RE = re.compile(r"^/([^/\s]+)/([^/\s]+)$")
YEAR_RE = re.compile(r"(\d{4})")

_PASSWORD_ALGORITHM = "pbkdf2_sha256"
_PASSWORD_ITERATIONS = 120_000
_URL_PATH_SAFE = "/:@!$&'()*+,;=-._~"


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime for DB columns."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def slugify(value: str) -> str:
    """Return a URL-friendly slug.

    Accents and case are folded away, so ``slugify`` is idempotent and
    ``"Shōnen"``/``"shonen"`` map to the same slug.
    """

    value = unicodedata.normalize("NFKD", value or "")
    value = value.encode("ascii", "ignore").decode("ascii")
    value = re.sub(r"[^a-zA-Z0-9]+", "-", value)
    value = value.strip("-")
    value = re.sub(r"-+", "-", value)
    return value.lower()


def format_compact_number(value: int | float | None) -> str:
    """Render view counters as ``999``, ``1.2K``, ``3.4M``."""

    number = float(value or 0)
    for threshold, suffix in ((1_000_000_000, "B"), (1_000_000, "M"), (1_000, "K")):
        if abs(number) >= threshold:
            scaled = f"{number / threshold:.1f}".rstrip("0").rstrip(".")
            return f"{scaled}{suffix}"
    return str(int(number))


def encode_image_url(url: str | None, *, default: str = DEFAULT_IMAGE_URL) -> str:
    """Percent-encode the path of an image URL so it can be embedded safely.

    Already-encoded paths are left as they are.
    """

    value = (url or "").strip()
    if not value:
        return default
    parts = urlsplit(value)
    path = quote(unquote(parts.path), safe=_URL_PATH_SAFE)
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))


def absolute_url(site_url: str, path: str) -> str:
    """Compose an absolute URL for ``path`` unless it already is one."""

    if urlsplit(path).scheme in {"http", "https"}:
        return path
    if not path.startswith("/"):
        path = f"/{path}"
    return f"{site_url.rstrip('/')}{path}"


def encode_link_url(url: str | None) -> str | None:
    """Base64-encode a mirror/download URL for the client-side player."""

    if not url:
        return None
    return base64.b64encode(url.encode("utf-8")).decode("ascii")


def decode_link_url(value: str) -> str:
    """Reverse :func:`encode_link_url`."""

    try:
        return base64.b64decode(value.encode("ascii"), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeError) as exc:
        raise ValueError("Invalid encoded link") from exc


def decode_outbound_link(value: str) -> str:
    """Decode a safelink target, accepting only absolute http(s) URLs."""

    target = decode_link_url(value)
    parts = urlsplit(target)
    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        raise ValueError("Unsupported link target")
    return target


def parse_page(raw: object) -> int:
    """Return a 1-based page number, falling back to 1 on bad input."""

    try:
        page = int(str(raw).strip())
    except (TypeError, ValueError):
        return 1
    return page if page > 0 else 1


def page_offset(page: int, page_size: int) -> int:
    return (page - 1) * page_size


def total_pages(total_count: int, page_size: int) -> int:
    if page_size <= 0:
        return 0
    return math.ceil(total_count / page_size)


def extract_years(values: list[str]) -> list[str]:
    """Return unique four-digit years found in release strings, newest first."""

    years: set[str] = set()
    for value in values:
        match = YEAR_RE.search(value or "")
        if match:
            years.add(match.group(1))
    return sorted(years, reverse=True)


def build_episode_slug(anime_slug: str, number: str | int) -> str:
    return f"/{anime_slug}/{number}"


def is_valid_episode_slug(value: str) -> bool:
    return bool(EPISODE_SLUG_RE.match(value or ""))


def normalize_page_path(url: str) -> str:
    """Return the path portion of a reported page URL without a trailing slash."""

    path = urlsplit((url or "").strip()).path or "/"
    path = unquote(path)
    if len(path) > 1:
        path = path.rstrip("/")
    return path


def hash_password(password: str) -> str:
    """Return a salted PBKDF2 hash in ``algorithm$iterations$salt$digest`` form."""

    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt.encode("ascii"), _PASSWORD_ITERATIONS
    )
    return f"{_PASSWORD_ALGORITHM}${_PASSWORD_ITERATIONS}${salt}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        algorithm, iterations, salt, expected = encoded.split("$", 3)
        rounds = int(iterations)
    except (AttributeError, ValueError):
        return False
    if algorithm != _PASSWORD_ALGORITHM:
        return False
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt.encode("ascii"), rounds
    )
    return hmac.compare_digest(digest.hex(), expected)
