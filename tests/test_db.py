import asyncio

import pytest
from sqlalchemy import select

from keystead.app.core.config import Settings
from keystead.app.core.exceptions import TransientFailureError
from keystead.app.db.session import (
    OPERATION_TIMEOUT_KEY,
    commit_or_raise,
    create_engine_for,
    create_session_factory,
)
from keystead.app.main import create_app
from keystead.app.models.user import User
from tests.helpers import API, KDF_PARAMS, client_password_hash


class StalledSession:
    """Stands in for an AsyncSession whose commit never finishes."""

    def __init__(self, timeout):
        self.info = {OPERATION_TIMEOUT_KEY: timeout}
        self.rolled_back = False

    async def commit(self):
        await asyncio.sleep(1)

    async def rollback(self):
        self.rolled_back = True


def test_app_uses_the_database_it_is_given(tmp_path, database_url):
    settings = Settings(_env_file=None, DATABASE_URL=database_url, DB_OPERATION_TIMEOUT_SECONDS=0.5)

    app = create_app(settings)
    try:
        assert app.state.engine.url.database == str(tmp_path / "keystead-test.db")
        assert app.state.session_factory.kw["info"][OPERATION_TIMEOUT_KEY] == 0.5
    finally:
        asyncio.run(app.state.engine.dispose())


def test_writes_land_in_the_configured_database(client, settings):
    response = client.post(
        f"{API}/users",
        json={
            "username": "alice",
            "email": "alice@example.com",
            "passwordHash": client_password_hash("correct horse"),
            "kdfParams": KDF_PARAMS,
        },
    )
    assert response.status_code == 201

    async def stored_usernames():
        engine = create_engine_for(settings)
        try:
            async with create_session_factory(engine, settings)() as session:
                result = await session.execute(select(User.username))
                return result.scalars().all()
        finally:
            await engine.dispose()

    assert asyncio.run(stored_usernames()) == ["alice"]


async def test_commit_timeout_comes_from_the_session():
    session = StalledSession(timeout=0.01)

    with pytest.raises(TransientFailureError):
        await commit_or_raise(session)

    assert session.rolled_back


async def test_explicit_commit_timeout_wins():
    session = StalledSession(timeout=30)

    with pytest.raises(TransientFailureError):
        await commit_or_raise(session, timeout=0.01)

    assert session.rolled_back
