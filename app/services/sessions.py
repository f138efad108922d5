"""Server-side cookie sessions stored in the database."""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import timedelta
from typing import Any

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import SessionRecord
from ..utils import utcnow

logger = logging.getLogger(__name__)

SESSION_COOKIE = "animehub.sid"


class SessionData(dict):
    """Mutable session payload that remembers whether it changed."""

    def __init__(self, initial: dict[str, Any] | None = None, *, is_new: bool = True):
        super().__init__(initial or {})
        self.is_new = is_new
        self.modified = False
        self.destroyed = False
        self.rotate = False

    def __setitem__(self, key: str, value: Any) -> None:
        super().__setitem__(key, value)
        self.modified = True

    def __delitem__(self, key: str) -> None:
        super().__delitem__(key)
        self.modified = True

    def pop(self, key: str, *default: Any) -> Any:
        self.modified = True
        return super().pop(key, *default)

    def update(self, *args: Any, **kwargs: Any) -> None:
        super().update(*args, **kwargs)
        self.modified = True

    def clear(self) -> None:
        super().clear()
        self.modified = True

    def regenerate(self) -> None:
        """Issue a fresh cookie token on the next save."""

        self.rotate = True
        self.modified = True

    def destroy(self) -> None:
        super().clear()
        self.destroyed = True

    @property
    def user(self) -> dict[str, Any] | None:
        if self.get("user_id") is None:
            return None
        return {"id": self["user_id"], "username": self.get("username")}

    @property
    def is_admin(self) -> bool:
        return bool(self.get("is_admin"))


class SessionStore:
    """Persists session payloads keyed by a keyed hash of the cookie token.

    The raw token only ever lives in the cookie, so a leaked table does not
    expose usable session identifiers.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        secret: str,
        ttl: timedelta = timedelta(days=14),
    ):
        self._session_factory = session_factory
        self._secret = secret.encode("utf-8")
        self._ttl = ttl

    @property
    def max_age_seconds(self) -> int:
        return int(self._ttl.total_seconds())

    def _key(self, token: str) -> str:
        return hmac.new(self._secret, token.encode("utf-8"), hashlib.sha256).hexdigest()

    async def load(self, token: str | None) -> SessionData:
        """Return the payload for ``token`` or an empty session."""

        if not token:
            return SessionData()
        async with self._session_factory() as session:
            record = await session.get(SessionRecord, self._key(token))
            if record is None:
                return SessionData()
            if record.expires_at <= utcnow():
                await session.delete(record)
                await session.commit()
                return SessionData()
            return SessionData(dict(record.data or {}), is_new=False)

    async def save(self, token: str | None, data: dict[str, Any]) -> str:
        """Write ``data`` and return the cookie token it is stored under."""

        token = token or secrets.token_urlsafe(32)
        key = self._key(token)
        expires_at = utcnow() + self._ttl
        async with self._session_factory() as session:
            record = await session.get(SessionRecord, key)
            if record is None:
                session.add(SessionRecord(id=key, data=dict(data), expires_at=expires_at))
            else:
                record.data = dict(data)
                record.expires_at = expires_at
            await session.commit()
        return token

    async def destroy(self, token: str | None) -> None:
        if not token:
            return
        async with self._session_factory() as session:
            await session.execute(
                delete(SessionRecord).where(SessionRecord.id == self._key(token))
            )
            await session.commit()

    async def purge_expired(self) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(SessionRecord).where(SessionRecord.expires_at <= utcnow())
            )
            await session.commit()
        purged = result.rowcount or 0
        if purged:
            logger.info("Purged %d expired sessions", purged)
        return purged

