"""Server-side session store tests."""

from __future__ import annotations

import asyncio
from datetime import timedelta

from sqlalchemy import select

from app.database import Database
from app.db_models import SessionRecord
from app.services.sessions import SessionData, SessionStore


def test_session_data_tracks_changes() -> None:
    session = SessionData()
    assert session.is_new and not session.modified
    assert session.user is None
    assert session.is_admin is False

    session.update(user_id=7, username="robin")
    assert session.modified
    assert session.user == {"id": 7, "username": "robin"}

    session.regenerate()
    assert session.rotate

    session.destroy()
    assert session.destroyed
    assert session.user is None


def test_store_round_trip_hashes_the_token(settings) -> None:
    async def runner() -> None:
        database = Database(settings.database_url)
        await database.create_all()
        store = SessionStore(database.session_factory, secret="unit-test")

        token = await store.save(None, {"user_id": 3, "username": "chopper"})
        loaded = await store.load(token)
        assert loaded.user == {"id": 3, "username": "chopper"}
        assert loaded.is_new is False

        async with database.session_factory() as session:
            keys = list((await session.scalars(select(SessionRecord.id))).all())
        assert keys and token not in keys

        same = await store.save(token, {"is_admin": True})
        assert same == token
        assert (await store.load(token)).is_admin

        await store.destroy(token)
        assert (await store.load(token)) == {}
        assert (await store.load(None)).is_new

        await database.dispose()

    asyncio.run(runner())


def test_expired_sessions_are_ignored_and_purged(settings) -> None:
    async def runner() -> None:
        database = Database(settings.database_url)
        await database.create_all()
        expired_store = SessionStore(
            database.session_factory, secret="unit-test", ttl=timedelta(seconds=-1)
        )
        stale = await expired_store.save(None, {"user_id": 1})
        await expired_store.save(None, {"user_id": 2})

        assert (await expired_store.load(stale)) == {}
        assert await expired_store.purge_expired() == 1

        await database.dispose()

    asyncio.run(runner())
