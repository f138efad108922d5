"""Process-wide cache of distinct taxonomy values and slug resolution."""

from __future__ import annotations

import logging
import time
from typing import Callable

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import Anime, AnimeGenre
from ..utils import slugify

logger = logging.getLogger(__name__)

GENRES = "genres"
STATUS = "info.Status"
TYPE = "info.Type"
STUDIO = "info.Studio"
RELEASED = "info.Released"

TAXONOMY_FIELDS: tuple[str, ...] = (GENRES, STATUS, TYPE, STUDIO, RELEASED)


def distinct_values_query(field: str) -> Select:
    """Return the ``SELECT DISTINCT`` statement backing a taxonomy field."""

    if field == GENRES:
        return select(AnimeGenre.name).distinct()
    if field.startswith("info.") and field in TAXONOMY_FIELDS:
        key = field.split(".", 1)[1]
        return select(Anime.info[key].as_string()).distinct()
    raise ValueError(f"Unknown taxonomy field: {field}")


class TaxonomyCache:
    """Caches the distinct values of taxonomy fields with a fixed TTL.

    There is no locking: concurrent misses each run the same read-only query
    and the last writer wins. Catalog writes do not invalidate entries, so new
    values become visible once the entry expires.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        ttl_seconds: float = 3_600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session_factory = session_factory
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[list[str], float]] = {}

    async def get_distinct_values(self, field: str) -> list[str]:
        """Return the distinct values for ``field``, loading them on a miss."""

        if field not in TAXONOMY_FIELDS:
            raise ValueError(f"Unknown taxonomy field: {field}")
        cached = self._entries.get(field)
        now = self._clock()
        if cached is not None and now < cached[1]:
            return cached[0]

        logger.info("Taxonomy cache miss for %s, loading from database", field)
        values = await self._load(field)
        self._entries[field] = (values, self._clock() + self._ttl_seconds)
        return values

    async def resolve_slug(self, field: str, candidate_slug: str) -> str | None:
        """Map a slug back to the first stored value that slugifies to it."""

        wanted = (candidate_slug or "").strip().lower()
        if not wanted:
            return None
        for value in await self.get_distinct_values(field):
            if slugify(value) == wanted:
                return value
        return None

    async def _load(self, field: str) -> list[str]:
        async with self._session_factory() as session:
            result = await session.execute(distinct_values_query(field))
            values: list[str] = []
            for (value,) in result.all():
                if value is None:
                    continue
                text = str(value).strip()
                if text and text not in values:
                    values.append(text)
            return values
